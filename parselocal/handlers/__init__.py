"""
A Query is made of sections, each handled by its own handler.
Every handler can either compose request parameters for the server, or apply itself to cached records.

```
GET classes/Note?where={"votes":{"$gt":10}}&order=-votes,title&limit=20&skip=40
```

* `where`: [Filter Operation](#filter-operation) filters the results using constraints
* `order`: [Sort Operation](#sort-operation) determines the sorting of the results
* `skip`, `limit`: [Slice Operation](#slice-operation) paginates the results
* `count`: [Count Operation](#count-operation) counts records without producing results
* `keys`: [Project Operation](#project-operation) selects the fields to be loaded
* `include`: [Include Operation](#include-operation) expands pointers (remote only)
"""

from .filter import QueryFilter, ConstraintSet, \
    Constraint, EqualTo, GreaterThan, LessThan, Exists, MatchRegex, In, NotIn, Or, \
    RelatedTo, MatchQuery, DoNotMatchQuery
from .sort import QuerySort, parse_order
from .limit import QueryLimit, DEFAULT_LIMIT, MAX_LIMIT
from .count import QueryCount
from .project import QueryProject, QueryInclude
