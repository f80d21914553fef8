import threading
from logging import getLogger
from typing import Callable, List

from ..exc import CacheError, ObjectNotFound
from ..record import Record

logger = getLogger(__name__)


class ObjectFetchCache:
    """ Get-by-id for one class, with request coalescing

        A fresh cached record is delivered right away.
        Otherwise, the request waits for the debounce window to pass: every request made within the window
        goes out as one `In(objectId, ids)` query. Every new request re-arms the window.

        Every callback is called exactly once: `callback(record, None)`, or `callback(None, error)`.
        An id the server did not return gets an `ObjectNotFound` error.

        :param class_name: The class
        :param store: The class' LocalStore ; `None` when the class is not cached
        :type store: parselocal.cache.store.LocalStore
        :param fetch_many: callable(ids) -> list of records, from the network
        :param scheduler: Where the debounce timer runs
        :type scheduler: parselocal.util.scheduler.Scheduler
        :param debounce: The window, seconds
    """

    def __init__(self, class_name: str, store, fetch_many: Callable[[List[str]], List[Record]],
                 scheduler, debounce: float = 0.25):
        self.class_name = class_name
        self.store = store
        self.fetch_many = fetch_many
        self.scheduler = scheduler
        self.debounce = debounce

        #: Requests waiting for the timer: [(objectId, callback)]
        self._pending = []
        #: The armed timer
        self._timer = None
        self._lock = threading.Lock()

    def get(self, object_id: str, callback: Callable):
        """ Get a record by id

            :param callback: callback(record, error)
        """
        # Fresh local record
        if self.store is not None:
            try:
                record = self.store.get(object_id)
            except CacheError as e:
                logger.debug('Fetching %s/%s: %s', self.class_name, object_id, e)
            else:
                callback(record, None)
                return

        # Wait for the others
        with self._lock:
            self._pending.append((object_id, callback))
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.scheduler.call_later(self.debounce, self.flush)

    def flush(self):
        """ Send the pending requests now """
        with self._lock:
            pending, self._pending = self._pending, []
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if not pending:
            return

        # One request
        ids = list(dict.fromkeys(object_id for object_id, _ in pending))
        logger.debug('Fetching %d %s objects', len(ids), self.class_name)
        try:
            records = self.fetch_many(ids)
        except Exception as e:
            logger.info('Failed to fetch %s objects: %s', self.class_name, e)
            for _, callback in pending:
                callback(None, e)
            return

        # Write through ; storage failures are logged by the store
        by_id = {}
        for record in records:
            by_id[record.object_id] = record
            if self.store is not None:
                self.store.persist(record, enlist=False)

        # Deliver
        for object_id, callback in pending:
            record = by_id.get(object_id)
            if record is not None:
                callback(record, None)
            else:
                callback(None, ObjectNotFound('{}/{} not found'.format(self.class_name, object_id)))
