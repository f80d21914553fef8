"""
The local store of one class.

Layout, within the class' namespace of the blob store:

* `.list`: the index, a JSON array of objectIds, in server order
* `<objectId>`: one JSON object per record

Every blob is fresh while its age is within the class' `expire_after`: exactly at the boundary, it's still fresh.
The index expires independently of the records.

Deletions made through this client are removed from the index;
records deleted on the server by others stay in the cache until the next `populate_all()`.

Whatever the blob store raises becomes a `StorageError`.
Reads raise it, like any other `CacheError`; writes log it and carry on: the cache never fails a request.
"""

import json
import threading
import time
from logging import getLogger
from typing import Callable, Iterable, List

from ..exc import CacheError, Expired, NotFound, StorageError, WrongFormat
from ..record import Record

logger = getLogger(__name__)

#: Key of the index blob
INDEX_KEY = '.list'


class _Population:
    """ One population in flight, shared by every caller who asks for it meanwhile """

    __slots__ = ('event', 'waiters', 'result', 'error')

    def __init__(self):
        self.event = threading.Event()
        self.waiters = []
        self.result = None
        self.error = None


class LocalStore:
    """ Cached records of one class

        :param class_name: The class
        :param expire_after: Freshness window of every blob, seconds
        :param blob_store: Where the blobs are kept
        :type blob_store: parselocal.cache.blobstore.BlobStore
        :param clock: The current time, as a unix timestamp
        :param lock: The lock of the class' blobs.
            Stores that look at the same blobs with different freshness windows have to share it.
    """

    def __init__(self, class_name: str, expire_after: float, blob_store, clock=time.time, lock=None):
        self.class_name = class_name
        self.expire_after = expire_after
        self.blob_store = blob_store
        self.clock = clock

        # Guards blob writes against reads: a reader sees either the old snapshot or the new one
        self._lock = lock if lock is not None else threading.RLock()

        #: The population in flight, if any
        self._population = None

    def __repr__(self):
        return 'LocalStore({!r}, expire_after={})'.format(self.class_name, self.expire_after)

    # region Blobs

    def _read(self, key):
        try:
            return self.blob_store.read(self.class_name, key)
        except CacheError:
            raise
        except Exception as e:
            raise StorageError(self.class_name, key, e) from e

    def _load(self, key, expected_type, expected):
        data, mtime = self._read(key)

        # Freshness
        age = self.clock() - mtime
        if age > self.expire_after:
            raise Expired(self.class_name, key, age)

        # Format
        try:
            obj = json.loads(data.decode('utf-8'))
        except ValueError:
            obj = None
        if not isinstance(obj, expected_type):
            logger.warning('Corrupt cache blob %s/%s: not %s', self.class_name, key, expected)
            raise WrongFormat(self.class_name, key, expected)
        return obj

    def _save(self, key, obj):
        data = json.dumps(obj).encode('utf-8')
        try:
            self.blob_store.write(self.class_name, key, data)
        except Exception as e:
            raise StorageError(self.class_name, key, e) from e

    def _discard(self, key):
        try:
            self.blob_store.remove(self.class_name, key)
        except Exception as e:
            raise StorageError(self.class_name, key, e) from e

    def _drop_index(self):
        # A half-written snapshot must not be served: without an index, queries go remote
        try:
            self._discard(INDEX_KEY)
        except StorageError as e:
            logger.warning('Failed to drop the %s index: %s', self.class_name, e)

    # endregion

    def list_ids(self) -> List[str]:
        """ The ids in the index

            :raises Expired: the index is too old
            :raises NotFound: there's no index
            :raises WrongFormat: the index is not a list of strings
            :raises StorageError: the blob store failed
        """
        with self._lock:
            ids = self._load(INDEX_KEY, list, 'a list of ids')
        if not all(isinstance(id, str) for id in ids):
            raise WrongFormat(self.class_name, INDEX_KEY, 'a list of ids')
        return ids

    def get(self, object_id: str) -> Record:
        """ One record, regardless of the index

            :raises Expired, NotFound, WrongFormat, StorageError
        """
        with self._lock:
            return Record(self._load(object_id, dict, 'an object'))

    def load_all(self) -> List[Record]:
        """ Every record in the index, in index order

            The index and the records are read as one snapshot.

            :raises CacheError: the index, or any of the records, can't be served
        """
        with self._lock:
            return [self.get(object_id) for object_id in self.list_ids()]

    def persist(self, record: Record, enlist: bool = False):
        """ Write a record

            :param enlist: Also add its id to the index
        """
        with self._lock:
            try:
                self._save(record.object_id, record.to_json())
            except StorageError as e:
                logger.warning('Not caching %s/%s: %s', self.class_name, record.object_id, e)
                return
            if enlist:
                self.enlist([record.object_id])
        logger.debug('Cached %s/%s', self.class_name, record.object_id)

    def enlist(self, object_ids: Iterable[str], replace: bool = False):
        """ Add ids to the index

            :param replace: Reset the index to exactly these ids.
                Otherwise, the ids are appended to the current index, without duplicates.
                When the current index can't be read, it is left alone: writing it would make it look fresh.
        """
        with self._lock:
            if replace:
                ids = []
            else:
                try:
                    ids = self.list_ids()
                except CacheError as e:
                    logger.info('Not enlisting into %s: %s', self.class_name, e)
                    return

            for object_id in object_ids:
                if object_id not in ids:
                    ids.append(object_id)
            try:
                self._save(INDEX_KEY, ids)
            except StorageError as e:
                logger.warning('Failed to write the %s index: %s', self.class_name, e)

    def remove(self, object_id: str):
        """ Forget a record: its blob, and its index entry """
        with self._lock:
            try:
                self._discard(object_id)
            except StorageError as e:
                logger.warning('Failed to remove %s/%s: %s', self.class_name, object_id, e)
            try:
                ids = self.list_ids()
            except CacheError:
                return
            if object_id in ids:
                ids.remove(object_id)
                try:
                    self._save(INDEX_KEY, ids)
                except StorageError as e:
                    logger.warning('Failed to write the %s index: %s', self.class_name, e)

    def populate_all(self, fetch_all: Callable[[], List[Record]], done: Callable = None) -> List[Record]:
        """ Fetch the whole class, and replace the snapshot

            Only one population runs at a time: callers who come while one is in flight
            wait for it and share its result.
            The network part runs without the lock: reads are served from the old snapshot meanwhile.
            When the fetch fails, the old snapshot and index are left untouched.

            :param fetch_all: callable() -> list of every record of the class
            :param done: callback(records, error), called when the population completes
            :return: The records
        """
        with self._lock:
            population = self._population
            owner = population is None
            if owner:
                population = self._population = _Population()
            if done is not None:
                population.waiters.append(done)

        # Someone else is populating: wait for them
        if not owner:
            population.event.wait()
            if population.error is not None:
                raise population.error
            return population.result

        try:
            records = fetch_all()
            # Swap: records first, then the index
            with self._lock:
                try:
                    for record in records:
                        self._save(record.object_id, record.to_json())
                except StorageError as e:
                    logger.warning('Failed to cache %s: %s', self.class_name, e)
                    self._drop_index()
                else:
                    self.enlist([r.object_id for r in records], replace=True)
            population.result = records
            logger.info('Populated %s: %d records', self.class_name, len(records))
        except Exception as e:
            population.error = e
            logger.info('Failed to populate %s: %s', self.class_name, e)
        finally:
            with self._lock:
                self._population = None
                waiters = list(population.waiters)
            population.event.set()

        for done in waiters:
            done(population.result, population.error)

        if population.error is not None:
            raise population.error
        return population.result
