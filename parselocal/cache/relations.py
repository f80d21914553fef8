"""
Many-to-many relations, memoized.

A relation `key` of an owner object points to many objects of a target class.
Members are loaded once, with a `$relatedTo` query, and kept in memory:
callers that come while the load is in flight get the same result when it completes.

Entries are keyed by:

* `"<key>-<OwnerClass>/<ownerId>-<TargetClass>"`: the members of an owner's relation
* `"<key>-<OwnerClass>-<TargetClass>/<targetId>"`: the owners whose relation contains a target

Local changes (`add_member()`, `remove_member()`) only touch the memoized members:
they are sent to the server with the `AddRelation` / `RemoveRelation` operations.
"""

import threading
from logging import getLogger
from typing import Callable, Iterable, List

from ..values import Pointer

logger = getLogger(__name__)


class Relation:
    """ An ordered set of pointers

        Adding a member that's already there moves it to the end.
    """

    __slots__ = ('pointers',)

    def __init__(self, pointers: Iterable[Pointer] = ()):
        self.pointers = []
        for pointer in pointers:
            self.add(pointer)

    def add(self, pointer: Pointer):
        self.remove(pointer.object_id)
        self.pointers.append(pointer)

    def remove(self, object_id: str):
        self.pointers = [p for p in self.pointers if p.object_id != object_id]

    def __contains__(self, item):
        object_id = item.object_id if isinstance(item, Pointer) else item
        return any(p.object_id == object_id for p in self.pointers)

    def __len__(self):
        return len(self.pointers)

    def __iter__(self):
        return iter(self.pointers)

    def __repr__(self):
        return 'Relation({!r})'.format(self.pointers)


class _RelationEntry:
    __slots__ = ('relation', 'completed', 'callbacks')

    def __init__(self):
        self.relation = Relation()
        self.completed = False
        self.callbacks = []


class RelationCache:
    """ Memoized relations, with at most one load in flight per entry """

    def __init__(self):
        self._entries = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(key: str, owner: Pointer, target_class: str) -> str:
        return '{}-{}/{}-{}'.format(key, owner.class_name, owner.object_id, target_class)

    @staticmethod
    def inverse_key_for(key: str, owner_class: str, target: Pointer) -> str:
        return '{}-{}-{}/{}'.format(key, owner_class, target.class_name, target.object_id)

    def resolve(self, key: str, owner: Pointer, target_class: str,
                fetch: Callable[[], List[Pointer]], callback: Callable):
        """ The members of `owner`'s relation `key`

            :param fetch: callable() -> list of member pointers. Only called when there's no entry yet.
            :param callback: callback(relation, error)
        """
        self._resolve(self.key_for(key, owner, target_class), fetch, callback)

    def resolve_inverse(self, key: str, owner_class: str, target: Pointer,
                        fetch: Callable[[], List[Pointer]], callback: Callable):
        """ The objects of `owner_class` whose relation `key` contains `target`

            :param fetch: callable() -> list of owner pointers
            :param callback: callback(relation, error)
        """
        self._resolve(self.inverse_key_for(key, owner_class, target), fetch, callback)

    def _resolve(self, cache_key, fetch, callback):
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None:
                if not entry.completed:
                    entry.callbacks.append(callback)
                    return
            else:
                entry = self._entries[cache_key] = _RelationEntry()
                entry.callbacks.append(callback)

        # Completed: fire right away
        if entry.completed:
            callback(entry.relation, None)
            return

        # We've created it: load
        relation = error = None
        try:
            relation = Relation(fetch())
        except Exception as e:
            error = e
            logger.info('Failed to load relation %s: %s', cache_key, e)

        with self._lock:
            if error is None:
                entry.relation = relation
                entry.completed = True
                logger.debug('Cached relation %s: %d members', cache_key, len(entry.relation))
            else:
                # Let the next caller try again
                self._entries.pop(cache_key, None)
            callbacks, entry.callbacks = entry.callbacks, []

        for cb in callbacks:
            cb(entry.relation if error is None else None, error)

    def _loaded(self, cache_key):
        with self._lock:
            entry = self._entries.get(cache_key)
        return entry.relation if entry is not None and entry.completed else None

    def get(self, key: str, owner: Pointer, target_class: str) -> Relation:
        """ The memoized relation, if it's loaded ; `None` otherwise """
        return self._loaded(self.key_for(key, owner, target_class))

    def add_member(self, key: str, owner: Pointer, member: Pointer):
        """ Add a member to the memoized relation (both ways). Relations that were never loaded are not touched. """
        relation = self._loaded(self.key_for(key, owner, member.class_name))
        if relation is not None:
            relation.add(member)
        inverse = self._loaded(self.inverse_key_for(key, owner.class_name, member))
        if inverse is not None:
            inverse.add(Pointer(owner.class_name, owner.object_id))

    def remove_member(self, key: str, owner: Pointer, member: Pointer):
        """ Remove a member from the memoized relation (both ways) """
        relation = self._loaded(self.key_for(key, owner, member.class_name))
        if relation is not None:
            relation.remove(member.object_id)
        inverse = self._loaded(self.inverse_key_for(key, owner.class_name, member))
        if inverse is not None:
            inverse.remove(owner.object_id)

    def invalidate(self, owner: Pointer = None):
        """ Forget memoized relations: all of them, or every relation of one owner """
        with self._lock:
            if owner is None:
                self._entries.clear()
                return
            infix = '-{}/{}-'.format(owner.class_name, owner.object_id)
            for cache_key in [k for k, e in self._entries.items() if infix in k and e.completed]:
                del self._entries[cache_key]
