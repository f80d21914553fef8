from types import MappingProxyType
from typing import Mapping, Iterable

from .values import ParseType, Value, Date, Bytes, File, Pointer, GeoPoint, ACL, decode, to_parse_type

#: Fields the server maintains for every object
SYSTEM_FIELDS = frozenset(('objectId', 'createdAt', 'updatedAt', 'ACL'))

#: Fields that come as plain ISO strings instead of tagged dates
_DATE_STRING_FIELDS = frozenset(('createdAt', 'updatedAt'))


class Record:
    """ One object, as the server knows it

        The raw JSON is never modified: assignments go into the `pending` overlay,
        which is what the next save/update will send.

            record = Record({'objectId': 'a1', 'title': 'Hello'})
            record['title']  # -> Value('Hello')
            record['title'] = 'Bye'  # staged
            record.pending  # -> {'title': Value('Bye')}

        Two records are equal when they have the same objectId.
    """

    __slots__ = ('_raw', 'pending')

    def __init__(self, raw: Mapping = None):
        self._raw = MappingProxyType(dict(raw or {}))
        #: Staged, not-yet-saved assignments: {key: ParseType}
        self.pending = {}

    @property
    def raw(self) -> Mapping:
        """ The raw JSON fields (read-only) """
        return self._raw

    def to_json(self) -> dict:
        return dict(self._raw)

    @property
    def keys(self) -> Iterable[str]:
        return list(self._raw.keys())

    def __contains__(self, key):
        return key in self._raw

    def get_raw(self, key, default=None):
        return self._raw.get(key, default)

    # region Typed accessors

    @property
    def object_id(self) -> str:
        """ The server-assigned id ; `None` for objects that were never saved """
        return self.value('objectId').string

    @property
    def created_at(self) -> Date:
        return self.date('createdAt')

    @property
    def updated_at(self) -> Date:
        return self.date('updatedAt')

    @property
    def security(self) -> ACL:
        acl = self._raw.get('ACL')
        return ACL.from_json(acl) if isinstance(acl, dict) else None

    def value(self, key) -> Value:
        return Value(self._raw.get(key))

    def _tagged(self, key, cls):
        json = self._raw.get(key)
        if isinstance(json, dict) and json.get('__type') == cls.wire_type:
            return cls.from_json(json)
        return None

    def date(self, key) -> Date:
        if key in _DATE_STRING_FIELDS:
            iso = self._raw.get(key)
            if isinstance(iso, str):
                return Date.from_iso(iso)
        return self._tagged(key, Date)

    def bytes(self, key) -> Bytes:
        return self._tagged(key, Bytes)

    def file(self, key) -> File:
        return self._tagged(key, File)

    def pointer(self, key) -> Pointer:
        return self._tagged(key, Pointer)

    def geo_point(self, key) -> GeoPoint:
        return self._tagged(key, GeoPoint)

    def typed(self, key) -> ParseType:
        """ The field as a ParseType: dates for date fields, the decoded value otherwise """
        d = self.date(key)
        if d is not None:
            return d
        return decode(self._raw.get(key))

    def __getitem__(self, key) -> ParseType:
        return self.typed(key)

    # endregion

    def __setitem__(self, key, value):
        """ Stage an assignment into the pending overlay """
        self.pending[key] = to_parse_type(value)

    def merged(self, fields: Mapping) -> 'Record':
        """ A new record with some raw fields replaced

            This is how records are synthesized after a create or update round trip.
        """
        raw = dict(self._raw)
        raw.update(fields)
        return Record(raw)

    def project(self, keys: Iterable[str]) -> 'Record':
        """ A new record with only the given keys (and the system fields) """
        keep = SYSTEM_FIELDS | set(keys)
        return Record({k: v for k, v in self._raw.items() if k in keep})

    def __eq__(self, other):
        return isinstance(other, Record) and self.object_id == other.object_id

    def __hash__(self):
        return hash(self.object_id)

    def __repr__(self):
        return 'Record({!r})'.format(dict(self._raw))
