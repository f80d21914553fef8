from copy import copy
import re

from . import handlers
from .exc import InvalidQueryError
from .handlers.filter import ConstraintSet, EqualTo, GreaterThan, LessThan, Exists, MatchRegex, \
    In, NotIn, Or, RelatedTo, MatchQuery, DoNotMatchQuery
from .values import Pointer, Value, to_parse_type


class Query:
    """ A query on one class

        Build it with the fluent methods, then run it:

            query = client.query(Note) \\
                .equal_to('tag', 'x') \\
                .greater_than('votes', 10) \\
                .order('-votes,title') \\
                .limit(20)

            query.list()  # -> [Note, ...]
            query.count()  # -> 42

        The query is served from the local cache when it can be: see QueryEngine.
        `q1 | q2` matches the records that match either query.

        :param class_name: The class to query
        :param engine: The engine to run the query with ; required to run it, but not to compose it
        :type engine: parselocal.engine.QueryEngine
        :param model: The model to wrap records with in list() and first()
        :type model: type[parselocal.model.ParseObject]
    """

    def __init__(self, class_name: str, engine=None, model=None):
        self.class_name = class_name
        self.engine = engine
        self.model = model

        #: Trust the local cache for this many seconds (overrides the class setting) ; False: never
        self.expire_after = None

        # Get ready: handlers
        self._init_handlers()

    def __copy__(self):
        """ Copy the query, so that it can be modified without affecting this one """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)

        # Copy handlers
        for name in self.HANDLER_ATTR_NAMES:
            setattr(result, name, copy(getattr(result, name)).with_query(result))
        return result

    def __repr__(self):
        return 'Query({!r}, {!r})'.format(self.class_name, self.compose_params())

    # region Handlers

    _HANDLER_FILTER = handlers.QueryFilter
    _HANDLER_SORT = handlers.QuerySort
    _HANDLER_LIMIT = handlers.QueryLimit
    _HANDLER_COUNT = handlers.QueryCount
    _HANDLER_PROJECT = handlers.QueryProject
    _HANDLER_INCLUDE = handlers.QueryInclude

    HANDLER_NAMES = ('filter', 'sort', 'limit', 'project', 'include', 'count')
    HANDLER_ATTR_NAMES = frozenset('handler_' + name for name in HANDLER_NAMES)

    # for IDE completion
    handler_filter = None  # type: handlers.QueryFilter
    handler_sort = None  # type: handlers.QuerySort
    handler_limit = None  # type: handlers.QueryLimit
    handler_count = None  # type: handlers.QueryCount
    handler_project = None  # type: handlers.QueryProject
    handler_include = None  # type: handlers.QueryInclude

    def _init_handlers(self):
        self.handler_filter = self._HANDLER_FILTER(self.class_name).with_query(self)
        self.handler_sort = self._HANDLER_SORT().with_query(self)
        if self.engine is not None:
            self.handler_limit = self._HANDLER_LIMIT(default_limit=self.engine.default_limit).with_query(self)
        else:
            self.handler_limit = self._HANDLER_LIMIT().with_query(self)
        self.handler_count = self._HANDLER_COUNT().with_query(self)
        self.handler_project = self._HANDLER_PROJECT().with_query(self)
        self.handler_include = self._HANDLER_INCLUDE().with_query(self)

    def _handlers(self):
        """ Get the list of all (handler_name, handler)

            The order matters for compose_params(): 'count' overrides the limit set by 'limit'.
        """
        return [(name, getattr(self, 'handler_' + name)) for name in self.HANDLER_NAMES]

    # endregion

    @property
    def constraints(self) -> ConstraintSet:
        return self.handler_filter.constraints

    # region Constraints

    def _constraint(self, constraint):
        self.handler_filter.input(constraint)
        return self

    def equal_to(self, key: str, value):
        """ `key` equals `value`

            For `objectId`, `value` can be an object or a pointer: it's compared by id.
            For other keys, an object is compared as a pointer.
        """
        if key == 'objectId' and not isinstance(value, (str, Value)):
            value = to_parse_type(value)
            if not isinstance(value, Pointer):
                raise InvalidQueryError('objectId can only be compared with a string, an object or a pointer')
            value = value.object_id
        return self._constraint(EqualTo(key, value))

    def greater_than(self, key: str, value):
        return self._constraint(GreaterThan(key, value))

    def less_than(self, key: str, value):
        return self._constraint(LessThan(key, value))

    def contained_in(self, key: str, values):
        return self._constraint(In(key, values))

    def not_contained_in(self, key: str, values):
        return self._constraint(NotIn(key, values))

    def exists(self, key: str, exists: bool = True):
        return self._constraint(Exists(key, exists))

    def matches_regex(self, key: str, pattern, flags: int = 0):
        """ `key` is a string that matches a regular expression

            :param pattern: A string, or a compiled pattern
            :param flags: `re` flags, for a string pattern. Use re.I for case-insensitive search.
        """
        if isinstance(pattern, str):
            pattern = re.compile(pattern, flags)
        return self._constraint(MatchRegex(key, pattern))

    def matches_key_in_query(self, key: str, match_key: str, query: 'Query'):
        """ `key` equals the `match_key` of some object that matches `query` """
        return self._constraint(MatchQuery(key, match_key, query.constraints.copy()))

    def does_not_match_key_in_query(self, key: str, match_key: str, query: 'Query'):
        """ `key` equals the `match_key` of no object that matches `query` """
        return self._constraint(DoNotMatchQuery(key, match_key, query.constraints.copy()))

    def related_to(self, key: str, owner):
        """ Objects in the `key` relation of `owner` (an object, or a pointer) """
        pointer = to_parse_type(owner)
        if not isinstance(pointer, Pointer):
            raise InvalidQueryError('related_to() expects an object or a pointer')
        return self._constraint(RelatedTo(key, pointer))

    def __or__(self, other: 'Query') -> 'Query':
        if not isinstance(other, Query):
            return NotImplemented
        if other.class_name != self.class_name:
            raise InvalidQueryError('Cannot OR queries on different classes: {} and {}'
                                    .format(self.class_name, other.class_name))
        result = Query(self.class_name, self.engine, self.model)
        result.expire_after = self.expire_after
        return result._constraint(Or(self.constraints.copy(), other.constraints.copy()))

    # endregion

    # region Options

    def keys(self, keys):
        """ Only load these fields: "a,b" or ['a', 'b'] """
        self.handler_project.input(keys)
        return self

    def include(self, keys):
        """ Expand these pointers: "author,author.team". Always runs remotely. """
        self.handler_include.input(keys)
        return self

    def skip(self, skip: int):
        self.handler_limit.input(skip=skip)
        return self

    def limit(self, limit: int):
        self.handler_limit.input(limit=limit)
        return self

    def order(self, order):
        """ Sort: "-age,name" or ['-age', 'name'] """
        self.handler_sort.input(order)
        return self

    def local(self, expire_after=True):
        """ Configure the local cache for this query

            :param expire_after:
                * True: use the class setting
                * False: never use the cache
                * a number: trust the cache for this many seconds
        """
        if expire_after is True:
            self.expire_after = None
        else:
            self.expire_after = expire_after
        return self

    # endregion

    def compose_params(self) -> dict:
        """ The request parameters of this query """
        params = {}
        for name, handler in self._handlers():
            handler.compose_params(params)
        return params

    def allows_local_search(self) -> bool:
        if self.expire_after is False:
            return False
        return all(handler.allows_local_search() for name, handler in self._handlers())

    # region Execution

    def _require_engine(self):
        if self.engine is None:
            raise InvalidQueryError('This query is not bound to a client')
        return self.engine

    def data(self) -> list:
        """ The matching records """
        return self._require_engine().data(self)

    def list(self) -> list:
        """ The matching objects, as model instances (or records, when there's no model) """
        records = self.data()
        if self.model is None:
            return records
        return [self.model.from_record(r) for r in records]

    def first(self):
        """ The first matching object ; None when there's none """
        query = copy(self).limit(1)
        results = query.list()
        return results[0] if results else None

    def count(self) -> int:
        """ The number of matching objects """
        query = copy(self)
        query.handler_count.input(True)
        return self._require_engine().count(query)

    def each(self, callback):
        """ Walk every matching record, page by page, from the network

            :param callback: callable(record)
        """
        self._require_engine().each(self, callback)

    # endregion
