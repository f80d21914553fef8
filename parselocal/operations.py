"""
Write operations

Changes to an object are described as operations, and sent as one request:

```python
client.operations(Note) \\
    .set('title', 'Hello') \\
    .add_unique('tags', 'python') \\
    .increment('votes') \\
    .save()
# POST classes/Note {"title": "Hello", "tags": {"__op": "AddUnique", "objects": ["python"]},
#                    "votes": {"__op": "Increment", "amount": 1}}
```

Every operation can also be applied to a cached record, so the local cache stays in sync with what we've written.
"""

import copy
from logging import getLogger
from typing import List

from .exc import InvalidQueryError, CacheError
from .model import path
from .record import Record
from .values import Pointer, ACL, to_parse_type, encode

logger = getLogger(__name__)


# region Operation classes

class Operation:
    """ One change to one field """

    __slots__ = ('key',)

    def __init__(self, key: str):
        self.key = key

    def compose(self, params: dict):
        """ Put this operation into the request parameters """
        raise NotImplementedError()

    def apply(self, raw: dict):
        """ Apply this operation to the raw JSON of a record """
        raise NotImplementedError()

    def __repr__(self):
        params = {}
        self.compose(params)
        return '{}({!r})'.format(self.__class__.__name__, params)


class SetValue(Operation):
    __slots__ = ('value',)

    def __init__(self, key, value):
        super(SetValue, self).__init__(key)
        self.value = to_parse_type(value)

    def compose(self, params):
        params[self.key] = self.value.json

    def apply(self, raw):
        raw[self.key] = copy.deepcopy(self.value.json)


class _ArrayOperation(Operation):
    __slots__ = ('objects',)

    #: The `__op` name
    op = None

    def __init__(self, key, objects):
        super(_ArrayOperation, self).__init__(key)
        self.objects = [encode(o) for o in objects]

    def compose(self, params):
        params[self.key] = {'__op': self.op, 'objects': self.objects}

    def _current(self, raw) -> list:
        current = raw.get(self.key)
        return list(current) if isinstance(current, list) else []


class Add(_ArrayOperation):
    __slots__ = ()
    op = 'Add'

    def apply(self, raw):
        raw[self.key] = self._current(raw) + copy.deepcopy(self.objects)


class AddUnique(_ArrayOperation):
    __slots__ = ()
    op = 'AddUnique'

    def apply(self, raw):
        current = self._current(raw)
        for o in self.objects:
            if o not in current:
                current.append(copy.deepcopy(o))
        raw[self.key] = current


class Remove(_ArrayOperation):
    __slots__ = ()
    op = 'Remove'

    def apply(self, raw):
        raw[self.key] = [o for o in self._current(raw) if o not in self.objects]


class Increment(Operation):
    __slots__ = ('amount',)

    def __init__(self, key, amount=1):
        super(Increment, self).__init__(key)
        if not isinstance(amount, (int, float)) or isinstance(amount, bool):
            raise InvalidQueryError('Increment: amount must be a number')
        self.amount = amount

    def compose(self, params):
        params[self.key] = {'__op': 'Increment', 'amount': self.amount}

    def apply(self, raw):
        current = raw.get(self.key)
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            current = 0
        raw[self.key] = current + self.amount


class AddRelation(Operation):
    __slots__ = ('pointer',)

    op = 'AddRelation'

    def __init__(self, key, pointer: Pointer):
        super(AddRelation, self).__init__(key)
        self.pointer = pointer

    def compose(self, params):
        params[self.key] = {'__op': self.op, 'objects': [self.pointer.json]}

    def apply(self, raw):
        pass  # relation members are not a part of the object


class RemoveRelation(AddRelation):
    __slots__ = ()

    op = 'RemoveRelation'


class SetSecurity(Operation):
    """ Everyone reads, only the owner writes """

    __slots__ = ('owner_id',)

    def __init__(self, owner_id: str):
        super(SetSecurity, self).__init__('ACL')
        self.owner_id = owner_id

    @property
    def acl(self) -> ACL:
        return ACL.owner_only_write(self.owner_id)

    def compose(self, params):
        params[self.key] = self.acl.json

    def apply(self, raw):
        raw[self.key] = self.acl.json


class ClearSecurity(Operation):
    """ Everyone reads and writes """

    __slots__ = ()

    def __init__(self):
        super(ClearSecurity, self).__init__('ACL')

    def compose(self, params):
        params[self.key] = ACL.public().json

    def apply(self, raw):
        raw[self.key] = ACL.public().json


class DeleteColumn(Operation):
    __slots__ = ()

    def compose(self, params):
        params[self.key] = {'__op': 'Delete'}

    def apply(self, raw):
        raw.pop(self.key, None)

# endregion


class Operations:
    """ A batch of operations on a new object (`save()`), or on an existing one (`update()`, `delete()`)

        :param engine: The engine that talks to the server and the cache
        :type engine: parselocal.engine.QueryEngine
        :param class_name: The class
        :param object_id: The object ; None for a new object
    """

    def __init__(self, engine, class_name: str, object_id: str = None):
        self.engine = engine
        self.class_name = class_name
        self.object_id = object_id

        #: The operations, in order
        self.operations = []  # type: List[Operation]

    @classmethod
    def from_record(cls, engine, class_name: str, record: Record) -> 'Operations':
        """ Operations that set every staged (pending) field of a record """
        ops = cls(engine, class_name, record.object_id)
        for key, value in record.pending.items():
            ops.set(key, value)
        return ops

    def operation(self, operation: Operation) -> 'Operations':
        self.operations.append(operation)
        return self

    # region Builder

    def set(self, key: str, value):
        return self.operation(SetValue(key, value))

    def add(self, key: str, *objects):
        return self.operation(Add(key, objects))

    def add_unique(self, key: str, *objects):
        return self.operation(AddUnique(key, objects))

    def remove(self, key: str, *objects):
        return self.operation(Remove(key, objects))

    def increment(self, key: str, amount=1):
        return self.operation(Increment(key, amount))

    def add_relation(self, key: str, member):
        return self.operation(AddRelation(key, _pointer_to(member)))

    def remove_relation(self, key: str, member):
        return self.operation(RemoveRelation(key, _pointer_to(member)))

    def set_security(self, owner):
        """ Public read, and only `owner` (a user, or a user id) writes """
        owner_id = owner if isinstance(owner, str) else _pointer_to(owner).object_id
        return self.operation(SetSecurity(owner_id))

    def clear_security(self):
        """ Public read and write """
        return self.operation(ClearSecurity())

    def delete_column(self, key: str):
        return self.operation(DeleteColumn(key))

    # endregion

    def compose(self) -> dict:
        """ The request body """
        params = {}
        for operation in self.operations:
            operation.compose(params)
        return params

    def _apply(self, raw: dict) -> dict:
        raw = dict(raw)
        for operation in self.operations:
            operation.apply(raw)
        return raw

    def save(self) -> Record:
        """ Create the object

            The new record is cached (and enlisted) when the class is cached.

            :return: The record, as the server now has it
        """
        if self.object_id is not None:
            raise InvalidQueryError('{}/{} already exists: use update()'.format(self.class_name, self.object_id))

        params = self.compose()
        logger.debug('Saving %r to %s', params, path(self.class_name))
        response = self.engine.request('POST', path(self.class_name), params)

        # The record, as the server now has it
        raw = self._apply({})
        raw['objectId'] = response['objectId']
        raw['createdAt'] = response.get('createdAt')
        raw['updatedAt'] = response.get('updatedAt', raw['createdAt'])
        record = Record(raw)
        self.object_id = record.object_id

        store = self.engine.registry.store(self.class_name)
        if store is not None:
            store.persist(record, enlist=True)
        return record

    def update(self) -> Record:
        """ Apply the operations to the existing object

            The cached record (if any) gets the same changes, and the memoized relations are updated.

            :return: The updated cached record ; None when the record was not cached
        """
        self._require_object_id('update')

        params = self.compose()
        logger.debug('Updating %r to %s', params, path(self.class_name, self.object_id))
        response = self.engine.request('PUT', path(self.class_name, self.object_id), params)

        # Cache
        record = None
        store = self.engine.registry.store(self.class_name)
        if store is not None:
            try:
                cached = store.get(self.object_id)
            except CacheError as e:
                logger.debug('Not updating the cache: %s', e)
            else:
                raw = self._apply(cached.to_json())
                if 'updatedAt' in response:
                    raw['updatedAt'] = response['updatedAt']
                record = Record(raw)
                store.persist(record, enlist=False)

        # Relations
        owner = Pointer(self.class_name, self.object_id)
        relations = self.engine.registry.relations
        for operation in self.operations:
            if isinstance(operation, RemoveRelation):
                relations.remove_member(operation.key, owner, operation.pointer)
            elif isinstance(operation, AddRelation):
                relations.add_member(operation.key, owner, operation.pointer)
        return record

    def delete(self):
        """ Delete the object, and forget it locally """
        self._require_object_id('delete')

        self.engine.request('DELETE', path(self.class_name, self.object_id))

        store = self.engine.registry.store(self.class_name)
        if store is not None:
            store.remove(self.object_id)
        self.engine.registry.relations.invalidate(Pointer(self.class_name, self.object_id))

    def _require_object_id(self, action):
        if self.object_id is None:
            raise InvalidQueryError('Cannot {} a {} without an objectId'.format(action, self.class_name))


def _pointer_to(obj) -> Pointer:
    if isinstance(obj, Pointer):
        return obj
    pointer = to_parse_type(obj)
    if not isinstance(pointer, Pointer):
        raise InvalidQueryError('Expected an object or a pointer, got {}'.format(type(obj).__name__))
    return pointer
