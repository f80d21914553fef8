"""
### Slice Operation

Slicing corresponds to the `skip` and `limit` parameters of a request.

* `limit` limits the number of records returned
* `skip` shifts the "window" a number of records

Together, these two implement pagination.

The server returns 100 records when no limit is given, and never more than 1000.
The local path behaves the same.
"""

from .base import QueryHandlerBase
from ..exc import InvalidQueryError

#: The number of records returned when no limit is given
DEFAULT_LIMIT = 100

#: The largest page the server will return
MAX_LIMIT = 1000


class QueryLimit(QueryHandlerBase):
    """ Limits and offsets

        Handles two keys:
        * 'limit': None, or int
        * 'skip': None, or int
    """

    param_name = 'limit'

    def __init__(self, default_limit=DEFAULT_LIMIT):
        """ Init a limit

        :param default_limit: The number of records a local query returns when no limit is given
        """
        super(QueryLimit, self).__init__()

        # Config
        self.default_limit = default_limit
        assert self.default_limit > 0

        # On input
        self.skip = None
        self.limit = None

    def input(self, skip=None, limit=None):
        super(QueryLimit, self).input((skip, limit))

        # Validate
        if not isinstance(skip, (int, type(None))) or isinstance(skip, bool):
            raise InvalidQueryError('Skip must be either an integer, or null')
        if not isinstance(limit, (int, type(None))) or isinstance(limit, bool):
            raise InvalidQueryError('Limit must be either an integer, or null')
        if skip is not None and skip < 0:
            raise InvalidQueryError('Skip must be a non-negative integer')
        if limit is not None and not 0 <= limit <= MAX_LIMIT:
            raise InvalidQueryError('Limit must be between 0 and {}'.format(MAX_LIMIT))

        # Only overwrite what's given
        if skip is not None:
            self.skip = skip or None
        if limit is not None:
            self.limit = limit
        return self

    @property
    def effective_limit(self) -> int:
        return self.default_limit if self.limit is None else self.limit

    def compose_params(self, params):
        if self.skip:
            params['skip'] = self.skip
        if self.limit is not None:
            params['limit'] = self.limit
        return params

    def apply_local(self, records):
        start = self.skip or 0
        return records[start:start + self.effective_limit]
