"""
Root Typer application for the moredis CLI.

Commands:
    moredis populate -c CACHE [-p PARAMS] [-f CONF] [-m MONGO] [-r REDIS]
    moredis validate [-f CONF] [-c CACHE]

Connection URLs resolve as: flag, then environment (``MONGO_URL`` /
``REDIS_URL`` or their ``MOREDIS_`` forms), then the defaults.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from rich.markup import escape
from typer import Typer

from moredis import __version__
from moredis.cli.utils import console, err_console, fail, output_report, print_dict
from moredis.core.config import CacheDefinition, apply_overrides, get_settings, load_config, parse_params
from moredis.core.config.settings import MoredisSettings
from moredis.core.errors import MoredisError
from moredis.core.templating import compile_template
from moredis.framework.logging import configure_logging, get_logger
from moredis.framework.populator import CompiledMap, build_cache

log = get_logger(__name__)

app = Typer(
    name="moredis",
    help="moredis: populate Redis caches from MongoDB.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("moredis")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"moredis {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """moredis CLI: build caches and check config files."""


# ── Settings ─────────────────────────────────────────────────────────────


def _load_settings(**overrides: str | None) -> MoredisSettings:
    """Environment settings with command line flags layered on top."""
    try:
        return apply_overrides(get_settings(), **overrides)
    except ValueError as e:
        err_console.print(f"[red]Configuration Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("populate")
def populate(
    cache: str = typer.Option(..., "--cache", "-c", help="Name of the cache to build"),
    params: str = typer.Option("{}", "--params", "-p", help="Run parameters as a JSON object of strings"),
    conf_file: str | None = typer.Option(None, "--conf-file", "-f", help="Config file [default: ./config.yml]"),
    mongo_url: str | None = typer.Option(None, "--mongo-url", "-m", help="MongoDB URL [env: MONGO_URL]"),
    redis_url: str | None = typer.Option(None, "--redis-url", "-r", help="Redis URL [env: REDIS_URL]"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_format: str | None = typer.Option(None, "--log-format", help="console or json"),
    as_json: bool = typer.Option(False, "--json", help="Print the run report as JSON"),
) -> None:
    """Build CACHE from MongoDB and swap it live in Redis."""
    settings = _load_settings(
        config_file=conf_file,
        mongo_url=mongo_url,
        redis_url=redis_url,
        log_level=log_level.upper() if log_level else None,
        log_format=log_format.lower() if log_format else None,
    )
    configure_logging(level=settings.log_level, format=settings.log_format, force=True)

    try:
        definition = load_config(settings.config_file).get_cache(cache)
        run_params = parse_params(params)
        report = build_cache(definition, run_params, settings)
    except MoredisError as e:
        log.error("cli.populate_failed", **e.to_dict())
        raise fail(e) from e

    output_report(report, as_json=as_json)


def _check_cache(definition: CacheDefinition) -> int:
    """Compile every template of ``definition``; return the number of maps."""
    maps = 0
    for collection in definition.collections:
        try:
            compile_template(collection.query, name=f"{collection.collection}:query")
            if collection.projection:
                compile_template(collection.projection, name=f"{collection.collection}:projection")
            for map_spec in collection.maps:
                try:
                    CompiledMap.compile(map_spec)
                except MoredisError as e:
                    e.with_context(map_name=map_spec.name)
                    raise
                maps += 1
        except MoredisError as e:
            e.with_context(cache=definition.name, collection=collection.collection)
            raise
    return maps


@app.command("validate")
def validate(
    conf_file: str | None = typer.Option(None, "--conf-file", "-f", help="Config file [default: ./config.yml]"),
    cache: str | None = typer.Option(None, "--cache", "-c", help="Only check this cache"),
) -> None:
    """Load the config file and compile every template, without connecting."""
    settings = _load_settings(config_file=conf_file)

    try:
        config = load_config(settings.config_file)
        caches = [config.get_cache(cache)] if cache else list(config.caches)
        summary = {
            definition.name: f"{len(definition.collections)} collections, {_check_cache(definition)} maps"
            for definition in caches
        }
    except MoredisError as e:
        raise fail(e) from e

    if not summary:
        console.print(f"[yellow]Warning:[/yellow] no caches defined in {settings.config_file}")
        return
    print_dict(summary, title=settings.config_file)
    console.print("[green]✓ Config is valid[/green]")
