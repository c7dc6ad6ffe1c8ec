"""moredis core -- the cache-population primitives.

Architecture::

    errors.py          Structured error hierarchy (MoredisError and friends)
    templating.py      ``{{ ... }}`` template engine with toLower/toString/toSet
    query.py           Templated JSON query/projection + ObjectId coercion
    store.py           RedisStore / StorePipeline capability protocols
    sources.py         RecordCursor / DocumentSource protocols, MongoSource
    keys.py            HashKeyAllocator (INCR <prefix>:mapindexcounter)
    writer.py          BatchWriter (pipelined writes, auto flush)
    swap.py            ReferenceSwapper (GETSET pointer, DEL previous)
    config/            YAML config models, settings, connection factories

Modules are imported directly (``from moredis.core.keys import ...``); this
package re-exports nothing so importing one primitive never drags in the
drivers of another.
"""
