"""Cache mapping config, runtime settings, and connection factories.

Quick start::

    from moredis.core.config import get_settings, load_config

    settings = get_settings()
    config = load_config(settings.config_file)
    cache = config.get_cache("users")

Architecture::

    models.py         MoredisConfig / CacheDefinition / CollectionSpec / MapSpec
    settings.py       MoredisSettings (pydantic-settings) + get_settings() cache
    factory.py        create_redis_connection / create_mongo_source

Guardrails:
    ❌ Reading MONGO_URL / REDIS_URL ad-hoc in the populator
    ✅ ``apply_overrides(get_settings(), redis_url=flag)`` once at startup
    ❌ Building redis / pymongo clients inline
    ✅ ``create_redis_connection(settings)`` via the factory layer
"""

from .factory import (
    create_mongo_source,
    create_redis_connection,
    resolve_redis_url,
)
from .models import (
    CacheDefinition,
    CollectionSpec,
    MapSpec,
    MoredisConfig,
    RunParameters,
    load_config,
    parse_params,
)
from .settings import (
    MoredisSettings,
    apply_overrides,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # models
    "CacheDefinition",
    "CollectionSpec",
    "MapSpec",
    "MoredisConfig",
    "RunParameters",
    "load_config",
    "parse_params",
    # settings
    "MoredisSettings",
    "apply_overrides",
    "clear_settings_cache",
    "get_settings",
    # factory
    "create_mongo_source",
    "create_redis_connection",
    "resolve_redis_url",
]
