"""
### Sort Operation

Sorting corresponds to the `order` parameter of a request.

```
order=-age,name  // by age, descending; then by name, ascending
```

#### Syntax

* String syntax: field names separated by commas, prefixed with `-` for descending order.
* Array syntax: `['-age', 'name']`

When sorting locally, values of different types are ordered by type:
null < numbers < strings < dates < everything else.
Records that tie on every key keep their original order.
"""

from collections import OrderedDict
from functools import cmp_to_key

from .base import QueryHandlerBase
from ..exc import InvalidQueryError


def parse_order(spec) -> OrderedDict:
    """ Parse an order expression into an OrderedDict: { key: +1 | -1 } """
    # Empty
    if not spec:
        return OrderedDict()

    # String syntax
    if isinstance(spec, str):
        spec = spec.split(',')

    if not isinstance(spec, (list, tuple)) or not all(isinstance(v, str) for v in spec):
        raise InvalidQueryError('order must be either a string or a list of strings; {} provided.'
                                .format(type(spec)))

    order = OrderedDict()
    for v in spec:
        v = v.strip()
        key, direction = (v[1:], -1) if v.startswith('-') else (v, +1)
        if not key or key.startswith('-'):
            raise InvalidQueryError('order: invalid field name in {!r}'.format(v))
        order[key] = direction
    return order


class QuerySort(QueryHandlerBase):
    """ Multi-key sorting

        * None: no sorting
        * 'a,-b'
        * ['a', '-b']
    """

    param_name = 'order'

    def __init__(self):
        super(QuerySort, self).__init__()

        # On input
        #: OrderedDict() of a sort spec: {key: +1|-1}
        self.sort_spec = OrderedDict()

    def __copy__(self):
        result = super(QuerySort, self).__copy__()
        result.sort_spec = OrderedDict(self.sort_spec)
        return result

    def input(self, sort_spec):
        super(QuerySort, self).input(sort_spec)
        self.sort_spec = parse_order(sort_spec)
        return self

    @property
    def expression(self) -> str:
        """ The order expression, as sent over the wire """
        return ','.join('{}{}'.format('-' if d == -1 else '', key)
                        for key, d in self.sort_spec.items())

    def compose_params(self, params):
        if self.sort_spec:
            params[self.param_name] = self.expression
        return params

    def _compare(self, a, b) -> int:
        # Successive keys: the first one that differs decides
        for key, direction in self.sort_spec.items():
            ka, kb = a.typed(key).sort_key(), b.typed(key).sort_key()
            if ka != kb:
                return direction if ka > kb else -direction
        return 0

    def apply_local(self, records):
        if not self.sort_spec:
            return list(records)  # short-circuit
        # sorted() is stable: full ties keep their order
        return sorted(records, key=cmp_to_key(self._compare))
