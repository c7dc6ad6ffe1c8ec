"""Tests for moredis.core.config.settings module."""

import pytest
from pydantic import ValidationError

from moredis.core.config.settings import (
    MoredisSettings,
    apply_overrides,
    get_settings,
)


class TestDefaults:
    def test_defaults(self):
        settings = MoredisSettings(_env_file=None)
        assert settings.mongo_url == "localhost:27017"
        assert settings.redis_url == "localhost:6379"
        assert settings.config_file == "./config.yml"
        assert settings.key_prefix == "moredis"
        assert settings.flush_interval == 100
        assert settings.connect_timeout == 15.0
        assert settings.read_timeout == 10.0
        assert settings.log_level == "INFO"

    def test_frozen(self):
        settings = MoredisSettings(_env_file=None)
        with pytest.raises(ValidationError):
            settings.flush_interval = 5


class TestEnvironment:
    def test_bare_url_variables(self, monkeypatch):
        monkeypatch.setenv("MONGO_URL", "mongo.internal:27017")
        monkeypatch.setenv("REDIS_URL", "redis.internal:6379")
        settings = MoredisSettings(_env_file=None)
        assert settings.mongo_url == "mongo.internal:27017"
        assert settings.redis_url == "redis.internal:6379"

    def test_prefixed_url_variable(self, monkeypatch):
        monkeypatch.setenv("MOREDIS_REDIS_URL", "sentinel://s1:26379/main")
        assert MoredisSettings(_env_file=None).redis_url == "sentinel://s1:26379/main"

    def test_prefixed_fields(self, monkeypatch):
        monkeypatch.setenv("MOREDIS_FLUSH_INTERVAL", "500")
        monkeypatch.setenv("MOREDIS_KEY_PREFIX", "cache")
        settings = MoredisSettings(_env_file=None)
        assert settings.flush_interval == 500
        assert settings.key_prefix == "cache"

    def test_invalid_flush_interval(self, monkeypatch):
        monkeypatch.setenv("MOREDIS_FLUSH_INTERVAL", "0")
        with pytest.raises(ValidationError):
            MoredisSettings(_env_file=None)


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self):
        first = get_settings()
        assert get_settings(_force_reload=True) is not first


class TestApplyOverrides:
    def test_flag_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "from-env:6379")
        settings = apply_overrides(MoredisSettings(_env_file=None), redis_url="from-flag:6379")
        assert settings.redis_url == "from-flag:6379"

    def test_empty_values_fall_through(self, monkeypatch):
        monkeypatch.setenv("MONGO_URL", "from-env:27017")
        base = MoredisSettings(_env_file=None)
        assert apply_overrides(base, mongo_url=None, redis_url="") is base

    def test_returns_new_instance(self):
        base = MoredisSettings(_env_file=None)
        updated = apply_overrides(base, key_prefix="other")
        assert updated.key_prefix == "other"
        assert base.key_prefix == "moredis"

    def test_overrides_are_validated(self):
        with pytest.raises(ValidationError):
            apply_overrides(MoredisSettings(_env_file=None), log_level="LOUD")

    def test_unknown_override(self):
        with pytest.raises(ValueError, match="unknown settings"):
            apply_overrides(MoredisSettings(_env_file=None), colour="blue")
