"""
The query engine: runs queries against the local cache, or against the server.

```
query -> local feasible? --yes--> load the snapshot -> match -> sort -> skip/limit -> results
                          --no---> compose the request -> GET -> results
```

A query runs locally when all of these hold:

* its class is cached (has an `expire_after`), and the query did not opt out with `local(False)`;
* every constraint can be evaluated locally: no `RelatedTo`, no equality to a pointer;
* there's no `include`;
* the class index, and every record in it, is fresh.

Sub-queries (`MatchQuery`, `DoNotMatchQuery`) are resolved first, local-first as well,
and rewritten into `In` / `NotIn`.

When anything is wrong with the cache, the query goes to the network: cache errors are logged, never raised.
Remote list queries do not write to the cache: only get-by-id, `populate()`, and writes do.
"""

from functools import partial
from logging import getLogger
from typing import Callable, List

from .exc import CacheError
from .handlers.filter import ConstraintSet, In
from .handlers.limit import DEFAULT_LIMIT, MAX_LIMIT
from .model import path
from .record import Record
from .values import Value

logger = getLogger(__name__)


class QueryEngine:
    """ Runs queries

        :param transport: Talks to the server
        :type transport: parselocal.transport.Transport
        :param registry: The local cache
        :type registry: parselocal.cache.registry.CacheRegistry
        :param page_size: The size of a page when walking a whole class
        :param default_limit: The number of records returned when no limit is given
    """

    def __init__(self, transport, registry, page_size: int = MAX_LIMIT, default_limit: int = DEFAULT_LIMIT):
        assert 0 < page_size <= MAX_LIMIT
        self.transport = transport
        self.registry = registry
        self.page_size = page_size
        self.default_limit = default_limit

    # region Remote

    def request(self, method: str, path: str, params: dict = None) -> dict:
        return self.transport.request(method, path, params)

    def find(self, class_name: str, params: dict) -> dict:
        """ GET a class, with request parameters ; returns the raw response """
        return self.request('GET', path(class_name), params)

    def find_records(self, class_name: str, params: dict) -> List[Record]:
        response = self.find(class_name, params)
        return [Record(raw) for raw in response.get('results', [])]

    def fetch_pages(self, class_name: str, params: dict = None):
        """ Walk every page of results

            Pages are requested one after another: the next one is requested only after a full page.
            A short page is the last one.

            :return: generator of pages, lists of records
        """
        params = dict(params or {})
        skip = 0
        while True:
            page = self.find_records(class_name, dict(params, limit=self.page_size, skip=skip))
            yield page
            if len(page) < self.page_size:
                break
            skip += self.page_size

    def fetch_all(self, class_name: str, constraints: ConstraintSet = None) -> List[Record]:
        """ Every record that matches the constraints, from the network """
        params = {}
        if constraints is not None:
            where = constraints.compose_query()
            if where:
                params['where'] = where
        records = []
        for page in self.fetch_pages(class_name, params):
            records.extend(page)
        return records

    def fetch_many(self, class_name: str, object_ids: List[str]) -> List[Record]:
        """ Records by id: one request per `page_size` ids """
        records = []
        for start in range(0, len(object_ids), self.page_size):
            chunk = object_ids[start:start + self.page_size]
            constraints = ConstraintSet(class_name, [In('objectId', chunk)])
            records.extend(self.find_records(class_name, {'where': constraints.compose_query(),
                                                          'limit': len(chunk)}))
        return records

    # endregion

    # region Local

    def _store_for(self, class_name: str, expire_after=None):
        """ The LocalStore to search ; None when the class is not cached """
        if expire_after is False:
            return None
        return self.registry.store(class_name, expire_after)

    def match_local(self, constraints: ConstraintSet, expire_after=None) -> List[Record]:
        """ Search the local cache

            :param expire_after: Override the class' freshness window ; False: don't use the cache
            :return: The matching records, in index order ; None when the cache can't answer
        """
        store = self._store_for(constraints.class_name, expire_after)
        if store is None or not constraints.allows_local_search():
            return None

        try:
            records = store.load_all()
            constraints = constraints.replace_sub_queries(self.resolve_sub_query)
        except CacheError as e:
            logger.info('Searching %s remotely: %s', constraints.class_name, e)
            return None
        return [r for r in records if constraints.match(r)]

    def resolve_sub_query(self, match_key: str, inner: ConstraintSet) -> list:
        """ The values of `match_key` across the records that match `inner`: local-first, then the network """
        records = self.match_local(inner)
        if records is None:
            records = self.fetch_all(inner.class_name, inner)

        values = []
        for record in records:
            value = record.typed(match_key)
            # Objects without the key are not selected
            if isinstance(value, Value) and value.is_null:
                continue
            if value not in values:
                values.append(value)
        return values

    def _run_local(self, query):
        """ Run a query locally ; None when it can't be """
        if not query.allows_local_search():
            return None
        records = self.match_local(query.constraints, query.expire_after)
        if records is None:
            return None
        logger.debug('Found %d %s records locally', len(records), query.class_name)

        # Count: no need to sort or page
        if query.handler_count.count:
            return query.handler_count.apply_local(records)

        records = query.handler_sort.apply_local(records)
        records = query.handler_limit.apply_local(records)
        records = query.handler_project.apply_local(records)
        return records

    # endregion

    def data(self, query) -> List[Record]:
        """ Run a query: the matching records

            :type query: parselocal.query.Query
        """
        records = self._run_local(query)
        if records is not None:
            return records
        return self.find_records(query.class_name, query.compose_params())

    def count(self, query) -> int:
        """ Run a count query

            :type query: parselocal.query.Query
        """
        count = self._run_local(query)
        if count is not None:
            return count
        return self.find(query.class_name, query.compose_params()).get('count', 0)

    def each(self, query, callback: Callable[[Record], None]):
        """ Walk every record that matches the query, page by page, from the network

            :type query: parselocal.query.Query
        """
        params = query.compose_params()
        params.pop('skip', None)
        params.pop('limit', None)
        for page in self.fetch_pages(query.class_name, params):
            for record in page:
                callback(record)

    def get(self, class_name: str, object_id: str, callback: Callable):
        """ Get a record by id, through the coalescing fetch cache

            :param callback: callback(record, error)
        """
        fetch_cache = self.registry.fetch_cache(class_name, partial(self.fetch_many, class_name))
        fetch_cache.get(object_id, callback)

    def populate(self, class_name: str, done: Callable = None) -> List[Record]:
        """ Fetch the whole class into the local cache

            :param done: callback(records, error)
        """
        store = self.registry.store(class_name)
        if store is None:
            raise KeyError('{} is not cached: it has no expire_after'.format(class_name))
        return store.populate_all(partial(self.fetch_all, class_name), done)
