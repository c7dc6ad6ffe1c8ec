"""
CLI layer for moredis.

Provides a Typer application whose commands delegate to
:func:`moredis.framework.populator.build_cache` and the config loader.
This package handles only terminal transport: argument parsing, settings
overrides, coloured output and exit codes.

Entry point::

    moredis --help
"""

from moredis.cli.app import app

__all__ = ["app"]
