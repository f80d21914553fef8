"""
### Filter Operation

Filtering corresponds to the `where` parameter of a request.

Every constraint can do two things:

* `compose_query()` it into the server's MongoDB-like grammar, and
* `match()` a cached record locally, with the same result the server would give.

Constraints are ANDed together in a `ConstraintSet`, which is scoped to one class:

```python
ConstraintSet('Note', [
    EqualTo('tag', Value('x')),
    GreaterThan('votes', Value(10)),
])
# -> {"tag": "x", "votes": {"$gt": 10}}
```

#### Constraints

* `EqualTo(key, value)`: `{key: value}`. On an array field: containment.
  With other conditions on the same key: `{key: {$eq: value, ...}}`
* `GreaterThan(key, value)`: `{key: {$gt: value}}`
* `LessThan(key, value)`: `{key: {$lt: value}}`
* `Exists(key, bool)`: `{key: {$exists: bool}}`
* `MatchRegex(key, pattern)`: `{key: {$regex: pattern, $options: "i"}}`
* `In(key, values)`: `{key: {$in: [...]}}`. On an array field: intersection.
* `NotIn(key, values)`: `{key: {$nin: [...]}}`
* `Or(left, right)`: `{$or: [left, right]}`
* `RelatedTo(key, pointer)`: `{$relatedTo: {object: pointer, key: key}}`
* `MatchQuery(key, match_key, inner)`: `{key: {$select: {key: match_key, query: {className, where}}}}`
* `DoNotMatchQuery(key, match_key, inner)`: `{key: {$dontSelect: ...}}`

Conditions on the same key are merged. When the same operator comes twice, the second one goes into `$and`.

Nulls, and values of different types, never satisfy `$gt` / `$lt`.

`RelatedTo` and equality to a pointer can't be evaluated against the cache:
a set containing them does not allow local search.
Sub-queries have to be rewritten into `In` / `NotIn` with `replace_sub_queries()` before matching.
"""

import re
from logging import getLogger
from typing import Callable, Iterable, List

from .base import QueryHandlerBase
from ..exc import RuntimeQueryError, InvalidQueryError
from ..record import Record
from ..values import ParseType, Value, Pointer, decode, to_parse_type

logger = getLogger(__name__)


# region Constraint Classes

def _candidates(record: Record, key: str) -> List[ParseType]:
    """ The values a field is compared by

        A scalar field gives itself.
        An array field gives itself, and every one of its elements: that's how the server treats arrays.
    """
    raw = record.get_raw(key)
    if isinstance(raw, list):
        return [decode(raw)] + [decode(v) for v in raw]
    return [record.typed(key)]


def _is_operator_dict(condition) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(k.startswith('$') for k in condition)


def _set_condition(where: dict, key: str, condition):
    """ Put a condition on a key, merging with the conditions the key already has

        {age: {$gt: 18}} + {age: {$lt: 25}} -> {age: {$gt: 18, $lt: 25}}
        {age: 20} + {age: {$gt: 18}} -> {age: {$eq: 20, $gt: 18}}

        When the same operator comes twice with different values, both have to hold:
        the second one goes into `$and`.
    """
    if key not in where:
        where[key] = condition
        return

    existing = where[key]
    if not _is_operator_dict(existing):
        existing = {'$eq': existing}
    if not _is_operator_dict(condition):
        condition = {'$eq': condition}

    if any(op in existing and existing[op] != v for op, v in condition.items()):
        where.setdefault('$and', []).append({key: condition})
    else:
        where[key] = dict(existing, **condition)


class Constraint:
    """ One predicate of a query """

    __slots__ = ('key',)

    def __init__(self, key: str):
        self.key = key

    def match(self, record: Record) -> bool:
        """ Evaluate this constraint against a record """
        raise NotImplementedError()

    def compose_query(self, where: dict):
        """ Put this constraint into a `where` object """
        raise NotImplementedError()

    def allows_local_search(self) -> bool:
        return True

    def has_sub_queries(self) -> bool:
        return False

    def replace_sub_queries(self, resolve) -> 'Constraint':
        return self

    def _identity(self):
        return tuple(getattr(self, name) for name in self._all_slots())

    @classmethod
    def _all_slots(cls):
        return [name for c in reversed(cls.__mro__) for name in getattr(c, '__slots__', ())]

    def __eq__(self, other):
        return type(other) is type(self) and self._identity() == other._identity()

    __hash__ = None

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, ', '.join(repr(v) for v in self._identity()))


class EqualTo(Constraint):
    __slots__ = ('value',)

    def __init__(self, key: str, value):
        super(EqualTo, self).__init__(key)
        self.value = to_parse_type(value)

    def match(self, record):
        return any(c == self.value for c in _candidates(record, self.key))

    def compose_query(self, where):
        _set_condition(where, self.key, self.value.json)

    def allows_local_search(self):
        # Pointer equality relies on server-side data we may not have
        return not isinstance(self.value, Pointer)


class GreaterThan(Constraint):
    __slots__ = ('value',)

    def __init__(self, key: str, value):
        super(GreaterThan, self).__init__(key)
        self.value = to_parse_type(value)

    def match(self, record):
        return any(c > self.value for c in _candidates(record, self.key))

    def compose_query(self, where):
        _set_condition(where, self.key, {'$gt': self.value.json})


class LessThan(Constraint):
    __slots__ = ('value',)

    def __init__(self, key: str, value):
        super(LessThan, self).__init__(key)
        self.value = to_parse_type(value)

    def match(self, record):
        return any(c < self.value for c in _candidates(record, self.key))

    def compose_query(self, where):
        _set_condition(where, self.key, {'$lt': self.value.json})


class Exists(Constraint):
    __slots__ = ('exists',)

    def __init__(self, key: str, exists: bool = True):
        super(Exists, self).__init__(key)
        self.exists = bool(exists)

    def match(self, record):
        return (record.get_raw(self.key) is not None) == self.exists

    def compose_query(self, where):
        _set_condition(where, self.key, {'$exists': self.exists})


class MatchRegex(Constraint):
    """ Regular expression search in a string field

        The pattern can be a string, or a compiled `re` pattern.
        Flags map onto `$options`: re.I -> i, re.M -> m, re.S -> s, re.X -> x
    """

    __slots__ = ('pattern',)

    _FLAG_OPTIONS = ((re.IGNORECASE, 'i'), (re.MULTILINE, 'm'), (re.DOTALL, 's'), (re.VERBOSE, 'x'))

    def __init__(self, key: str, pattern):
        super(MatchRegex, self).__init__(key)
        if isinstance(pattern, str):
            pattern = re.compile(pattern)
        if not isinstance(pattern, re.Pattern):
            raise InvalidQueryError('MatchRegex: pattern must be a string or a compiled regular expression')
        self.pattern = pattern

    @property
    def options(self) -> str:
        return ''.join(option for flag, option in self._FLAG_OPTIONS if self.pattern.flags & flag)

    def match(self, record):
        # Only strings can match, just like on the server
        for c in _candidates(record, self.key):
            if isinstance(c, Value) and c.string is not None and self.pattern.search(c.string):
                return True
        return False

    def compose_query(self, where):
        _set_condition(where, self.key, {'$regex': self.pattern.pattern, '$options': self.options})

    def _identity(self):
        return (self.key, self.pattern.pattern, self.options)


class In(Constraint):
    """ The field equals any of the values

        A pointer field is matched by its objectId as well:
        this is what `MatchQuery` rewrites into when the inner query selects `objectId`s.
    """

    __slots__ = ('values',)

    def __init__(self, key: str, values: Iterable):
        super(In, self).__init__(key)
        self.values = [to_parse_type(v) for v in values]

    def _contains(self, record) -> bool:
        values = set(self.values)
        for c in _candidates(record, self.key):
            if c in values:
                return True
            if isinstance(c, Pointer) and Value(c.object_id) in values:
                return True
        return False

    def match(self, record):
        return self._contains(record)

    def compose_query(self, where):
        _set_condition(where, self.key, {'$in': [v.json for v in self.values]})


class NotIn(In):
    __slots__ = ()

    def match(self, record):
        return not self._contains(record)

    def compose_query(self, where):
        _set_condition(where, self.key, {'$nin': [v.json for v in self.values]})


class Or(Constraint):
    """ Either of the two constraint sets """

    __slots__ = ('left', 'right')

    def __init__(self, left: 'ConstraintSet', right: 'ConstraintSet'):
        super(Or, self).__init__(None)
        self.left = left
        self.right = right

    def match(self, record):
        return self.left.match(record) or self.right.match(record)

    def compose_query(self, where):
        clause = [self.left.compose_query(), self.right.compose_query()]
        # Several disjunctions in one set are ANDed together
        if '$or' not in where:
            where['$or'] = clause
        else:
            where.setdefault('$and', []).append({'$or': clause})

    def allows_local_search(self):
        return self.left.allows_local_search() and self.right.allows_local_search()

    def has_sub_queries(self):
        return self.left.has_sub_queries() or self.right.has_sub_queries()

    def replace_sub_queries(self, resolve):
        return Or(self.left.replace_sub_queries(resolve), self.right.replace_sub_queries(resolve))

    def _identity(self):
        return (self.left, self.right)


class RelatedTo(Constraint):
    """ Objects that are in the `key` relation of the `pointer` object """

    __slots__ = ('pointer',)

    def __init__(self, key: str, pointer: Pointer):
        super(RelatedTo, self).__init__(key)
        self.pointer = pointer

    def match(self, record):
        raise RuntimeQueryError('RelatedTo can only be evaluated by the server')

    def compose_query(self, where):
        where['$relatedTo'] = {'object': self.pointer.json, 'key': self.key}

    def allows_local_search(self):
        return False


class MatchQuery(Constraint):
    """ `key` equals the `match_key` of some object matching the `inner` set """

    __slots__ = ('match_key', 'inner')

    #: Wire operator
    operator = '$select'

    def __init__(self, key: str, match_key: str, inner: 'ConstraintSet'):
        super(MatchQuery, self).__init__(key)
        self.match_key = match_key
        self.inner = inner

    def match(self, record):
        raise RuntimeQueryError('{} on `{}` has to be rewritten with replace_sub_queries() before matching'
                                .format(self.__class__.__name__, self.key))

    def compose_query(self, where):
        _set_condition(where, self.key, {self.operator: {
            'key': self.match_key,
            'query': {'className': self.inner.class_name, 'where': self.inner.compose_query()},
        }})

    def has_sub_queries(self):
        return True

    def replace_sub_queries(self, resolve):
        return In(self.key, resolve(self.match_key, self.inner))


class DoNotMatchQuery(MatchQuery):
    """ `key` equals the `match_key` of no object matching the `inner` set """

    __slots__ = ()

    operator = '$dontSelect'

    def replace_sub_queries(self, resolve):
        return NotIn(self.key, resolve(self.match_key, self.inner))

# endregion


class ConstraintSet:
    """ Constraints ANDed together, scoped to one class """

    __slots__ = ('class_name', 'constraints')

    def __init__(self, class_name: str, constraints: Iterable[Constraint] = ()):
        self.class_name = class_name
        self.constraints = list(constraints)

    def append(self, constraint: Constraint) -> 'ConstraintSet':
        self.constraints.append(constraint)
        return self

    def copy(self) -> 'ConstraintSet':
        return ConstraintSet(self.class_name, self.constraints)

    def __iter__(self):
        return iter(self.constraints)

    @property
    def is_empty(self) -> bool:
        return not self.constraints

    def match(self, record: Record) -> bool:
        for constraint in self.constraints:
            if not constraint.match(record):
                return False
        return True

    def compose_query(self) -> dict:
        where = {}
        for constraint in self.constraints:
            constraint.compose_query(where)
        return where

    def allows_local_search(self) -> bool:
        return all(c.allows_local_search() for c in self.constraints)

    def has_sub_queries(self) -> bool:
        return any(c.has_sub_queries() for c in self.constraints)

    def replace_sub_queries(self, resolve: Callable[[str, 'ConstraintSet'], List[ParseType]]) -> 'ConstraintSet':
        """ Rewrite MatchQuery into In, and DoNotMatchQuery into NotIn

            :param resolve: callable(match_key, inner_set) that returns the values of `match_key`
                across the records matching `inner_set`
            :return: a new ConstraintSet
        """
        if not self.has_sub_queries():
            return self
        replaced = ConstraintSet(self.class_name, [c.replace_sub_queries(resolve) for c in self.constraints])
        logger.debug('Replaced sub-queries on %s: %r', self.class_name, replaced.constraints)
        return replaced

    def __eq__(self, other):
        return isinstance(other, ConstraintSet) \
               and self.class_name == other.class_name \
               and self.constraints == other.constraints

    __hash__ = None

    def __repr__(self):
        return 'ConstraintSet({!r}, {!r})'.format(self.class_name, self.constraints)


class QueryFilter(QueryHandlerBase):
    """ The `where` section of a query """

    param_name = 'where'

    def __init__(self, class_name: str):
        super(QueryFilter, self).__init__()
        #: The constraints of the query
        self.constraints = ConstraintSet(class_name)

    def __copy__(self):
        result = super(QueryFilter, self).__copy__()
        result.constraints = self.constraints.copy()
        return result

    def input(self, constraint: Constraint):
        self.constraints.append(constraint)
        return self

    def compose_params(self, params):
        where = self.constraints.compose_query()
        if where:
            params[self.param_name] = where
        return params

    def allows_local_search(self):
        return self.constraints.allows_local_search()

    def apply_local(self, records):
        return [r for r in records if self.constraints.match(r)]
