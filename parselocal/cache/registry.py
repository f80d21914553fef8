import threading
import time
from logging import getLogger

from .blobstore import MemoryBlobStore
from .fetch import ObjectFetchCache
from .relations import RelationCache
from .store import LocalStore
from ..util.scheduler import ThreadingScheduler

logger = getLogger(__name__)


class CacheRegistry:
    """ Everything cached by one client

        * which classes are cached, and for how long
        * the LocalStore of every cached class
        * the ObjectFetchCache of every class
        * memoized relations

        A class is cached when it has an `expire_after`: see `register()`.

        :param blob_store: Where the blobs go. Default: in memory
        :type blob_store: parselocal.cache.blobstore.BlobStore
        :param clock: The current time, as a unix timestamp
        :param scheduler: Runs the debounce timers. Default: threads
        :type scheduler: parselocal.util.scheduler.Scheduler
        :param fetch_debounce: Debounce window of get-by-id requests, seconds
    """

    def __init__(self, blob_store=None, clock=time.time, scheduler=None, fetch_debounce: float = 0.25):
        self.clock = clock
        self.blob_store = blob_store if blob_store is not None else MemoryBlobStore(clock)
        self.scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self.fetch_debounce = fetch_debounce

        #: Memoized relations
        self.relations = RelationCache()

        self._ttls = {}
        self._stores = {}
        self._fetch_caches = {}
        #: One lock per class, shared by every LocalStore of that class
        self._class_locks = {}
        self._lock = threading.Lock()

    def register(self, class_name: str, expire_after: float = None):
        """ Declare a class ; with `expire_after` (seconds), its records are cached locally """
        with self._lock:
            if expire_after is None:
                self._ttls.pop(class_name, None)
            else:
                assert expire_after >= 0
                self._ttls[class_name] = expire_after
            # Stores pick up the new setting on the next access
            self._stores.pop(class_name, None)
            self._fetch_caches.pop(class_name, None)

    def expire_after(self, class_name: str) -> float:
        """ The freshness window of a class ; `None` when it's not cached """
        return self._ttls.get(class_name)

    def store(self, class_name: str, expire_after: float = None) -> LocalStore:
        """ The LocalStore of a class ; `None` when it's not cached

            :param expire_after: Look at the same blobs with a different freshness window.
                This works for classes that are not registered, too.
        """
        with self._lock:
            lock = self._class_locks.get(class_name)
            if lock is None:
                lock = self._class_locks[class_name] = threading.RLock()

            if expire_after is not None and expire_after != self._ttls.get(class_name):
                return LocalStore(class_name, expire_after, self.blob_store, self.clock, lock)

            expire_after = self._ttls.get(class_name)
            if expire_after is None:
                return None
            store = self._stores.get(class_name)
            if store is None:
                store = self._stores[class_name] = LocalStore(class_name, expire_after, self.blob_store,
                                                              self.clock, lock)
            return store

    def fetch_cache(self, class_name: str, fetch_many) -> ObjectFetchCache:
        """ The ObjectFetchCache of a class

            :param fetch_many: callable(ids) -> records ; used when the cache is created
        """
        store = self.store(class_name)
        with self._lock:
            fetch_cache = self._fetch_caches.get(class_name)
            if fetch_cache is None:
                fetch_cache = self._fetch_caches[class_name] = ObjectFetchCache(
                    class_name, store, fetch_many, self.scheduler, self.fetch_debounce)
            return fetch_cache
