"""
Templated MongoDB query construction.

A collection's ``query`` (and optional ``projection``) is a template that
must render to a JSON object. Keys must be strings, so Mongo operators are
quoted (``"$or"``) and ObjectIds are written as their hex string; any string
value shaped exactly like an ObjectId is converted back so the driver
compares identifiers, not strings.

Usage:
    from moredis.core.query import build_query

    built = build_query(collection_spec, {"district": "5f0c..."})
    cursor = source.find(collection_spec.collection, built.filter, built.projection)
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bson import ObjectId

from moredis.core.errors import QueryParseError
from moredis.core.templating import apply_template

if TYPE_CHECKING:
    from moredis.core.config.models import CollectionSpec

OBJECT_ID_RE = re.compile(r"[0-9a-f]{24}")


@dataclass(frozen=True)
class BuiltQuery:
    """Filter and optional projection ready to hand to the source."""

    filter: dict[str, Any]
    projection: dict[str, Any] | None = None


def is_object_id_hex(value: str) -> bool:
    """True for a 24-character lowercase hex string."""
    return OBJECT_ID_RE.fullmatch(value) is not None


def coerce_object_ids(document: dict[str, Any]) -> dict[str, Any]:
    """
    Replace ObjectId-shaped strings with :class:`bson.ObjectId`, in place.

    Descends into nested objects only. Lists are left untouched, including
    objects inside lists.
    """
    for key, value in document.items():
        if isinstance(value, str):
            if is_object_id_hex(value):
                document[key] = ObjectId(value)
        elif isinstance(value, dict):
            coerce_object_ids(value)
    return document


def parse_templated_json(text: str, params: Mapping[str, str]) -> dict[str, Any]:
    """
    Render ``text`` against ``params`` and parse it as a JSON object.

    Raises:
        TemplateSyntaxError / TemplateExecutionError: Template failures.
        QueryParseError: The rendered text is not a JSON object.
    """
    rendered = apply_template(text, params)
    try:
        parsed = json.loads(rendered)
    except ValueError as exc:
        raise QueryParseError(f"rendered query is not valid JSON: {exc}", rendered=rendered, cause=exc) from exc
    if not isinstance(parsed, dict):
        raise QueryParseError(
            f"rendered query must be a JSON object, got {type(parsed).__name__}", rendered=rendered
        )
    return coerce_object_ids(parsed)


def build_query(collection: CollectionSpec, params: Mapping[str, str]) -> BuiltQuery:
    """Build the filter and projection for one collection."""
    query = parse_templated_json(collection.query, params)
    projection = None
    if collection.projection:
        projection = parse_templated_json(collection.projection, params)
    return BuiltQuery(filter=query, projection=projection)


__all__ = [
    "BuiltQuery",
    "build_query",
    "coerce_object_ids",
    "is_object_id_hex",
    "parse_templated_json",
]
