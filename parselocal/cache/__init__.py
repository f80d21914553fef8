"""
The local cache

Records of cached classes are kept in a blob store, one blob per record plus an index per class.
Every read that the cache can't serve falls back to the network: the cache never fails a request.
"""

from .blobstore import BlobStore, MemoryBlobStore, FileBlobStore, SqlBlobStore, blob_store_from_settings
from .store import LocalStore, INDEX_KEY
from .fetch import ObjectFetchCache
from .relations import Relation, RelationCache
from .registry import CacheRegistry
