"""
Step timing for run logs.

A cache build is logged as nested steps (``populate`` around one
``collection`` step per collection). :func:`log_step` wraps a step:

- ``<step>.start`` at DEBUG when the step begins
- ``<step>.end`` with ``duration_ms`` and any metrics the step recorded
- ``<step>.error`` with the exception type and message, then re-raises

Each step gets a span id; a step opened inside another records the outer
span as ``parent_span_id`` so JSON logs can be stitched back into a tree.
"""

import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from moredis.framework.logging.context import get_context, get_logger, push_context


@dataclass
class StepTimer:
    """Clock and metrics for one logged step."""

    step: str
    parent_span_id: str | None = None
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    metrics: dict[str, Any] = field(default_factory=dict)
    failure: BaseException | None = None
    _started: float = field(default_factory=time.perf_counter, repr=False)
    _stopped: float | None = field(default=None, repr=False)

    @property
    def duration_ms(self) -> float:
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return (end - self._started) * 1000

    @property
    def finished(self) -> bool:
        return self._stopped is not None

    def add_metric(self, key: str, value: Any) -> "StepTimer":
        self.metrics[key] = value
        return self

    def finish(self, failure: BaseException | None = None) -> None:
        if self._stopped is None:
            self._stopped = time.perf_counter()
        if failure is not None:
            self.failure = failure

    def fields(self) -> dict[str, Any]:
        """Key/value pairs for the ``.end`` or ``.error`` event."""
        out: dict[str, Any] = {"span_id": self.span_id, "duration_ms": round(self.duration_ms, 2)}
        if self.parent_span_id:
            out["parent_span_id"] = self.parent_span_id
        out.update(self.metrics)
        if self.failure is not None:
            out["error_type"] = type(self.failure).__name__
            out["error_message"] = str(self.failure)
        return out


@contextmanager
def log_step(event: str, log_start: bool = True, level: str = "info", **metrics: Any) -> Iterator[StepTimer]:
    """
    Log ``event`` as a timed step.

    Usage:
        with log_step("collection", collection="users") as timer:
            stats = process()
            timer.add_metric("written", stats.written)

    Args:
        event: Step name, used as the event prefix
        log_start: Emit ``<event>.start`` at DEBUG
        level: Level of the ``<event>.end`` event
        **metrics: Fields included in every event of the step
    """
    log = get_logger("moredis.timing")
    timer = StepTimer(step=event, parent_span_id=get_context().span_id, metrics=dict(metrics))
    token = push_context(span_id=timer.span_id, parent_span_id=timer.parent_span_id, step=event)
    try:
        if log_start:
            log.debug(f"{event}.start", span_id=timer.span_id, **metrics)
        yield timer
    except Exception as e:
        timer.finish(e)
        log.error(f"{event}.error", **timer.fields())
        raise
    finally:
        timer.finish()
        token.restore()

    getattr(log, level)(f"{event}.end", **timer.fields())
