"""
moredis framework - orchestration on top of the core primitives.

This package provides:
- Structured logging with run context (moredis.framework.logging)
- The cache populator and build_cache entry point (moredis.framework.populator)

Submodules are imported directly to keep ``moredis.framework.logging``
importable from the core without pulling in the populator.
"""
