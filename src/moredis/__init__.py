"""
moredis - populate Redis caches from MongoDB.

Layout:
- moredis.core: errors, templating, query building, key allocation,
  batched writes, pointer swaps, sources, config and settings
- moredis.framework: logging and the cache populator
- moredis.cli: the ``moredis`` command
"""

__version__ = "0.1.0"
