"""
parselocal is a client for Parse-style REST backends that answers queries from a local cache when it can.

Declare your models, build queries with a fluent DSL, and write with batched operations:

```python
from parselocal import Client, ParseSettingsDict, ParseObject

class Note(ParseObject):
    class_name = 'Note'
    expire_after = 60  # trust the local cache for a minute
    fields = {'title': str, 'votes': int}

client = Client(ParseSettingsDict(application_id='...', rest_key='...', cache_root='/tmp/notes'))
client.register(Note)
client.persistent(Note)  # fetch the whole class into the cache

# served from the cache: no request is made
client.query(Note).greater_than('votes', 10).order('-votes,title').limit(20).list()
```

A local query gives the same results the server would give.
When the cache can't answer (expired, incomplete, or the query needs the server), the query goes to the network.
"""

# Exceptions that are used here and there
from .exc import *

# Wire values, and records made of them
from .values import Value, Date, Bytes, File, Pointer, GeoPoint, ACL, ACLRule, decode, encode
from .record import Record

# The handlers: each one composes a section of a request, or applies it to cached records
from . import handlers
from .handlers import ConstraintSet, EqualTo, GreaterThan, LessThan, Exists, MatchRegex, In, NotIn, Or, \
    RelatedTo, MatchQuery, DoNotMatchQuery

# Queries, and the engine that decides where they run
from .query import Query
from .engine import QueryEngine

# Models and writes
from .model import ParseObject, User, Installation
from .operations import Operations

# The local cache
from .cache import CacheRegistry, LocalStore, MemoryBlobStore, FileBlobStore, SqlBlobStore, Relation

# Talking to the server
from .transport import Transport, RequestsTransport
from .client import Client

# Helpers
from .util import ParseSettingsDict, Scheduler, ThreadingScheduler
