"""Pydantic models for the cache mapping config file.

Example YAML::

    caches:
      - name: users
        collections:
          - collection: users
            query: '{"district": "{{.district}}"}'
            projection: '{"email": 1}'
            maps:
              - name: "{{.district}}:users_by_email"
                key: "{{toLower .email}}"
                val: "{{toString ._id}}"

Usage::

    from moredis.core.config.models import MoredisConfig

    config = MoredisConfig.from_yaml_file("config.yml")
    cache = config.get_cache("users")

Every model is frozen: a loaded definition never changes during a run.
Allocating a hash key returns a new :class:`MapSpec`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from moredis.core.errors import CacheNotFoundError, InvalidConfigError, InvalidParamsError

RunParameters = Mapping[str, str]


class MapSpec(BaseModel):
    """One Redis hash built from a collection, and the pointer that names it."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Pointer-name template, rendered with run params")
    key: str = Field(..., description="Hash field template, rendered with each document")
    value: str = Field(..., alias="val", description="Hash value template, rendered with each document")
    hash_key: str = Field(default="", description="Allocated per run; empty until then")

    def with_hash_key(self, hash_key: str) -> MapSpec:
        """Return a copy carrying ``hash_key``. A hash key is assigned once."""
        if self.hash_key:
            raise ValueError(f"map {self.name!r} already has hash key {self.hash_key!r}")
        return self.model_copy(update={"hash_key": hash_key})


class CollectionSpec(BaseModel):
    """A source collection, the query selecting its documents, and its maps."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    collection: str = Field(..., min_length=1, description="Source collection name")
    query: str = Field(default="{}", description="Filter template; must render to a JSON object")
    projection: str | None = Field(default=None, description="Optional projection template")
    maps: tuple[MapSpec, ...] = Field(default=(), description="Maps built from this collection")


class CacheDefinition(BaseModel):
    """A named cache: an ordered list of collections to process."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    collections: tuple[CollectionSpec, ...] = Field(default=())


class MoredisConfig(BaseModel):
    """Top level of the config file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    caches: tuple[CacheDefinition, ...] = Field(default=())

    def get_cache(self, name: str) -> CacheDefinition:
        """Return the cache called ``name``.

        Raises:
            CacheNotFoundError: No cache with that name is defined.
        """
        for cache in self.caches:
            if cache.name == name:
                return cache
        raise CacheNotFoundError(name)

    @property
    def cache_names(self) -> list[str]:
        return [cache.name for cache in self.caches]

    @classmethod
    def from_yaml(cls, content: str, *, source: str | None = None) -> MoredisConfig:
        """Parse and validate YAML text."""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise InvalidConfigError(f"config is not valid YAML: {exc}", cause=exc).with_context(
                config_file=source
            ) from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfigError("config must be a YAML mapping").with_context(config_file=source)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigError(f"invalid config: {exc}", cause=exc).with_context(
                config_file=source
            ) from exc

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> MoredisConfig:
        """Read, parse and validate a YAML config file."""
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise InvalidConfigError(f"cannot read config file {path}: {exc}", cause=exc).with_context(
                config_file=str(path)
            ) from exc
        return cls.from_yaml(content, source=str(path))


def load_config(path: str | Path) -> MoredisConfig:
    """Load the config file at ``path``."""
    return MoredisConfig.from_yaml_file(path)


def parse_params(raw: str | None) -> dict[str, str]:
    """Parse run parameters from a JSON object of strings.

    An empty or missing value yields no parameters.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        data: Any = json.loads(raw)
    except ValueError as exc:
        raise InvalidParamsError(f"params must be a JSON object: {exc}", cause=exc) from exc
    if not isinstance(data, dict):
        raise InvalidParamsError(f"params must be a JSON object, got {type(data).__name__}")
    bad = sorted(key for key, value in data.items() if not isinstance(value, str))
    if bad:
        raise InvalidParamsError(f"params values must be strings: {', '.join(bad)}")
    return dict(data)


__all__ = [
    "CacheDefinition",
    "CollectionSpec",
    "MapSpec",
    "MoredisConfig",
    "RunParameters",
    "load_config",
    "parse_params",
]
