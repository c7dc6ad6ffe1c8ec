"""
CLI utility helpers: output formatting and error reporting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from moredis.core.errors import MoredisError
from moredis.framework.populator import PopulateReport

console = Console()
err_console = Console(stderr=True)


# ── Error output ─────────────────────────────────────────────────────────


def fail(exc: MoredisError) -> typer.Exit:
    """Print ``exc`` with its context to stderr; return the exit to raise."""
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
    for key, value in exc.context.to_dict().items():
        err_console.print(f"  [cyan]{key}[/cyan]: {escape(str(value))}")
    return typer.Exit(code=1)


# ── Report output ────────────────────────────────────────────────────────


def output_report(report: PopulateReport, *, as_json: bool = False) -> None:
    """Render a finished run to the terminal."""
    if as_json:
        payload = asdict(report)
        payload.update(records=report.records, written=report.written, skipped=report.skipped)
        console.print_json(json.dumps(payload, default=str))
        return

    table = Table(title=f"cache {report.cache} (run {report.run_id})", pad_edge=False)
    for column in ("collection", "records", "written", "skipped", "flushes", "duration_ms"):
        table.add_column(column, overflow="fold")
    for item in report.collections:
        table.add_row(
            item.collection,
            str(item.stats.processed),
            str(item.stats.written),
            str(item.stats.skipped),
            str(item.flushes),
            f"{item.duration_ms:.2f}",
        )
    console.print(table)

    for swap in report.swaps:
        previous = f" (was {escape(swap.old_key)})" if swap.old_key else ""
        console.print(f"  [cyan]{escape(swap.pointer)}[/cyan] -> {escape(swap.new_key)}{previous}")


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {escape(str(v))}")
