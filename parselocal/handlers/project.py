"""
### Project Operation

Projection corresponds to the `keys` parameter of a request: the fields that you want to have.

```
keys=title,author
```

System fields (`objectId`, `createdAt`, `updatedAt`, `ACL`) are always returned.
The local path honours `keys` the same way.

### Include Operation

`include` asks the server to expand pointer fields into the full objects they point to:

```
include=author,author.team
```

The local cache stores pointers as they are, and can't expand them:
a query with an `include` is always executed remotely.
"""

from .base import QueryHandlerBase
from ..exc import InvalidQueryError


def _parse_key_list(name, keys) -> list:
    """ Parse a comma-separated string, or a list of strings """
    if not keys:
        return []
    if isinstance(keys, str):
        keys = keys.split(',')
    if not isinstance(keys, (list, tuple)) or not all(isinstance(k, str) for k in keys):
        raise InvalidQueryError('{} must be either a string or a list of strings; {} provided.'
                                .format(name, type(keys)))
    return [k.strip() for k in keys if k.strip()]


class QueryProject(QueryHandlerBase):
    """ Select the fields to be loaded """

    param_name = 'keys'

    def __init__(self):
        super(QueryProject, self).__init__()

        # On input
        #: List of selected keys ; empty: everything
        self.keys = []

    def input(self, keys):
        super(QueryProject, self).input(keys)
        for key in _parse_key_list(self.param_name, keys):
            if key not in self.keys:
                self.keys.append(key)
        return self

    def __copy__(self):
        result = super(QueryProject, self).__copy__()
        result.keys = list(self.keys)
        return result

    def compose_params(self, params):
        if self.keys:
            params[self.param_name] = ','.join(self.keys)
        return params

    def apply_local(self, records):
        if not self.keys:
            return records  # short-circuit
        return [r.project(self.keys) for r in records]


class QueryInclude(QueryHandlerBase):
    """ Expand pointer fields (remote only) """

    param_name = 'include'

    def __init__(self):
        super(QueryInclude, self).__init__()

        # On input
        self.include = []

    def input(self, keys):
        super(QueryInclude, self).input(keys)
        for key in _parse_key_list(self.param_name, keys):
            if key not in self.include:
                self.include.append(key)
        return self

    def __copy__(self):
        result = super(QueryInclude, self).__copy__()
        result.include = list(self.include)
        return result

    def compose_params(self, params):
        if self.include:
            params[self.param_name] = ','.join(self.include)
        return params

    def allows_local_search(self):
        return not self.include

    def apply_local(self, records):
        return records
