"""Tests for moredis.core.config.models module."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from moredis.core.config.models import (
    CollectionSpec,
    MapSpec,
    MoredisConfig,
    load_config,
    parse_params,
)
from moredis.core.errors import CacheNotFoundError, InvalidConfigError, InvalidParamsError

CONFIG_YAML = """
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
  - name: empty
"""


class TestMapSpec:
    def test_val_alias(self):
        spec = MapSpec(name="n", key="k", val="v")
        assert spec.value == "v"
        assert spec.hash_key == ""

    def test_populate_by_field_name(self):
        assert MapSpec(name="n", key="k", value="v").value == "v"

    def test_frozen(self):
        spec = MapSpec(name="n", key="k", val="v")
        with pytest.raises(ValidationError):
            spec.hash_key = "x"

    def test_with_hash_key_returns_copy(self):
        spec = MapSpec(name="n", key="k", val="v")
        allocated = spec.with_hash_key("moredis:maps:1")
        assert allocated.hash_key == "moredis:maps:1"
        assert spec.hash_key == ""

    def test_hash_key_is_write_once(self):
        allocated = MapSpec(name="n", key="k", val="v").with_hash_key("moredis:maps:1")
        with pytest.raises(ValueError):
            allocated.with_hash_key("moredis:maps:2")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            MapSpec(name="n", key="k", val="v", ttl=5)


class TestCollectionSpec:
    def test_defaults(self):
        spec = CollectionSpec(collection="users")
        assert spec.query == "{}"
        assert spec.projection is None
        assert spec.maps == ()


class TestMoredisConfig:
    def test_from_yaml(self):
        config = MoredisConfig.from_yaml(CONFIG_YAML)
        assert config.cache_names == ["users", "empty"]
        users = config.get_cache("users")
        collection = users.collections[0]
        assert collection.collection == "users"
        assert collection.projection == '{"email": 1}'
        assert collection.maps[0].value == "{{toString ._id}}"

    def test_cache_not_found(self):
        config = MoredisConfig.from_yaml(CONFIG_YAML)
        with pytest.raises(CacheNotFoundError, match="cache not found in config: missing"):
            config.get_cache("missing")

    def test_empty_document(self):
        assert MoredisConfig.from_yaml("").caches == ()

    def test_invalid_yaml(self):
        with pytest.raises(InvalidConfigError):
            MoredisConfig.from_yaml("caches: [", source="conf.yml")

    def test_not_a_mapping(self):
        with pytest.raises(InvalidConfigError):
            MoredisConfig.from_yaml("- a\n- b\n")

    def test_schema_violation(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            MoredisConfig.from_yaml("caches:\n  - collections: []\n", source="conf.yml")
        assert exc_info.value.context.metadata["config_file"] == "conf.yml"

    def test_from_file(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text(CONFIG_YAML, encoding="utf-8")
        assert load_config(path).get_cache("users").name == "users"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(InvalidConfigError, match="cannot read config file"):
            load_config(tmp_path / "nope.yml")


class TestParseParams:
    def test_object_of_strings(self):
        assert parse_params('{"district": "north"}') == {"district": "north"}

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty(self, raw):
        assert parse_params(raw) == {}

    @pytest.mark.parametrize("raw", ["not json", "[1]", '"s"', '{"n": 1}', '{"n": null}'])
    def test_rejected(self, raw):
        with pytest.raises(InvalidParamsError):
            parse_params(raw)
