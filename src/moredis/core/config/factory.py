"""
Connection factories for the two backing stores.

Each factory either returns a working connection or fails fast with
:class:`~moredis.core.errors.ConnectionSetupError`. There is no retry:
a run that cannot connect is simply not started.

Redis addresses may be:

* ``host:port`` (as accepted by the original command line),
* any ``redis://`` / ``rediss://`` / ``unix://`` URL,
* ``sentinel://host:port[,host:port...]/master-name``, resolved to the
  current master through Redis Sentinel.

Tags:
    moredis, configuration, factory-pattern, redis, mongodb

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import redis
from pymongo import MongoClient
from pymongo.errors import ConfigurationError, PyMongoError
from redis.sentinel import Sentinel

from moredis.core.errors import ConnectionSetupError
from moredis.core.sources import MongoSource
from moredis.framework.logging import get_logger

if TYPE_CHECKING:
    from .settings import MoredisSettings

log = get_logger(__name__)

_SENTINEL_RE = re.compile(r"sentinel://([^/]+)/(.*)")


def _with_scheme(address: str, scheme: str) -> str:
    if "://" in address:
        return address
    return f"{scheme}://{address}"


def _split_host_port(address: str, default_port: int) -> tuple[str, int]:
    host, _, port = address.rpartition(":")
    if not host:
        return address, default_port
    try:
        return host, int(port)
    except ValueError as exc:
        raise ConnectionSetupError(f"invalid sentinel address {address!r}", cause=exc) from exc


def resolve_redis_url(address: str, *, socket_timeout: float = 10.0) -> str:
    """Resolve ``sentinel://`` addresses to the master; pass others through.

    Raises:
        ConnectionSetupError: The address is malformed or no sentinel knows
            the master.
    """
    if not address.startswith("sentinel://"):
        return _with_scheme(address, "redis")

    match = _SENTINEL_RE.fullmatch(address)
    if match is None or not match.group(2):
        raise ConnectionSetupError(f"failed to parse sentinel address {address}")

    hosts = [_split_host_port(part.strip(), 26379) for part in match.group(1).split(",") if part.strip()]
    master_name = match.group(2)
    sentinel = Sentinel(hosts, socket_timeout=socket_timeout)
    try:
        host, port = sentinel.discover_master(master_name)
    except redis.RedisError as exc:
        raise ConnectionSetupError(f"failed to find master for sentinel address {address}", cause=exc) from exc

    log.info("redis.sentinel_resolved", master=master_name, host=host, port=port)
    return f"redis://{host}:{port}"


def create_redis_connection(settings: MoredisSettings) -> redis.Redis:
    """Connect to Redis and verify the connection with a ``PING``."""
    url = resolve_redis_url(settings.redis_url, socket_timeout=settings.read_timeout)
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=settings.connect_timeout,
            socket_timeout=settings.read_timeout,
        )
        client.ping()
    except (redis.RedisError, ValueError) as exc:
        raise ConnectionSetupError(f"failed to connect to redis at {url}: {exc}", cause=exc) from exc

    log.info("redis.connected", redis_url=url)
    return client


def create_mongo_source(settings: MoredisSettings) -> MongoSource:
    """Connect to MongoDB and wrap the database as a record source.

    The database named in the URL is used; ``settings.mongo_database``
    otherwise.
    """
    url = _with_scheme(settings.mongo_url, "mongodb")
    timeout_ms = int(settings.connect_timeout * 1000)
    try:
        client: MongoClient = MongoClient(
            url,
            connectTimeoutMS=timeout_ms,
            serverSelectionTimeoutMS=timeout_ms,
            socketTimeoutMS=int(settings.read_timeout * 1000),
        )
    except (ConfigurationError, ValueError) as exc:
        raise ConnectionSetupError(f"invalid mongo url {url}: {exc}", cause=exc) from exc

    try:
        client.admin.command("ping")
        database = client.get_default_database(default=settings.mongo_database)
    except PyMongoError as exc:
        client.close()
        raise ConnectionSetupError(f"failed to connect to mongo at {url}: {exc}", cause=exc) from exc

    log.info("mongo.connected", mongo_url=url, database=database.name)
    return MongoSource(database)


__all__ = [
    "create_mongo_source",
    "create_redis_connection",
    "resolve_redis_url",
]
