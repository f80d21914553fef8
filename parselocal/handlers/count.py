"""
### Count Operation

Return the number of matching records, without returning the records themselves.

On the wire, a count query is `count=1&limit=1`: the server responds with `{"count": N, "results": [...]}`.
Locally, the matching records are tallied, and sorting and paging are skipped.
"""

from .base import QueryHandlerBase
from ..exc import InvalidQueryError


class QueryCount(QueryHandlerBase):
    """ Count query

        Just give it:
        * count=True
    """

    param_name = 'count'

    def __init__(self):
        super(QueryCount, self).__init__()

        # On input
        self.count = False

    def input(self, count=True):
        super(QueryCount, self).input(count)
        if not isinstance(count, (int, bool)):
            raise InvalidQueryError('Count must be either true or false. Or at least a 1, or a 0')

        # Done
        self.count = bool(count)
        return self

    def compose_params(self, params):
        if self.count:
            params['count'] = 1
            params['limit'] = 1
        return params

    def apply_local(self, records):
        return len(records)
