"""
Values that travel over the wire.

Scalars (strings, numbers, null) are represented by `Value`.
Everything else is a JSON object tagged with a `__type` discriminator:

```javascript
{"__type": "Date", "iso": "2016-01-15T10:20:30.000Z"}
{"__type": "Bytes", "base64": "aGVsbG8="}
{"__type": "Pointer", "className": "Note", "objectId": "xWMyZ4YEGZ"}
{"__type": "GeoPoint", "latitude": 40.0, "longitude": -30.0}
{"__type": "File", "name": "pic.jpg", "url": "http://..."}
```

ACLs are untagged: `{"*": {"read": true}, "<userId>": {"read": true, "write": true}}`.

Every class parses from its wire shape (`from_json()`) and serializes back to exactly
that shape (`.json`). `decode()` picks the right class for any JSON value.
"""

import base64
from datetime import datetime, timezone

from .exc import InvalidQueryError


# Sort ranks: values of different types are ordered by type first.
# null < numbers < strings < booleans < dates < everything else
_RANK_NULL, _RANK_NUMBER, _RANK_STRING, _RANK_BOOLEAN, _RANK_DATE, _RANK_OTHER = range(6)


class ParseType:
    """ Base for all wire values """

    __slots__ = ()

    #: The `__type` tag of the wire shape, if any
    wire_type = None

    @property
    def json(self):
        """ The wire shape of this value """
        raise NotImplementedError()

    def sort_key(self):
        """ A key that places this value into a total order with all the other values """
        return (_RANK_OTHER, repr(self.json))

    def __eq__(self, other):
        if not isinstance(other, ParseType) or type(other) is not type(self):
            return False
        return self.json == other.json

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash(repr(self.json))

    # Typed ordering: values of different types are never less or greater than one another
    def __lt__(self, other):
        return False

    def __gt__(self, other):
        return False

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.json)


class Value(ParseType):
    """ A scalar: number, string, boolean, or null

        Booleans are a type of their own: `Value(True) != Value(1)`, just like the server sees them.
        Anything else (lists, objects) is seen as a null by this class: use `decode()` to get those.
    """

    NUMBER = 'number'
    STRING = 'string'
    BOOLEAN = 'boolean'
    NULL = 'null'

    __slots__ = ('type', 'object')

    def __init__(self, obj=None):
        if isinstance(obj, Value):
            self.type, self.object = obj.type, obj.object
        elif isinstance(obj, str):
            self.type, self.object = self.STRING, obj
        elif isinstance(obj, bool):
            self.type, self.object = self.BOOLEAN, obj
        elif isinstance(obj, (int, float)):
            self.type, self.object = self.NUMBER, obj
        else:
            self.type, self.object = self.NULL, None

    @property
    def is_null(self):
        return self.type == self.NULL

    @property
    def string(self):
        return self.object if self.type == self.STRING else None

    @property
    def number(self):
        return self.object if self.type == self.NUMBER else None

    @property
    def boolean(self):
        return self.object if self.type == self.BOOLEAN else None

    @property
    def json(self):
        return self.object

    def sort_key(self):
        if self.type == self.NUMBER:
            return (_RANK_NUMBER, float(self.object))
        if self.type == self.STRING:
            return (_RANK_STRING, self.object)
        if self.type == self.BOOLEAN:
            return (_RANK_BOOLEAN, self.object)
        return (_RANK_NULL, 0)

    def __eq__(self, other):
        if not isinstance(other, Value):
            return False
        return self.type == other.type and self.object == other.object

    def __hash__(self):
        return hash((self.type, self.object))

    def __lt__(self, other):
        # nulls never compare
        if not isinstance(other, Value) or self.type != other.type or self.is_null:
            return False
        return self.object < other.object

    def __gt__(self, other):
        if not isinstance(other, Value) or self.type != other.type or self.is_null:
            return False
        return self.object > other.object

    def __repr__(self):
        return 'Value({!r})'.format(self.object)


class Date(ParseType):
    """ A point in time, millisecond precision, UTC """

    wire_type = 'Date'
    ISO_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'

    __slots__ = ('date',)

    def __init__(self, date: datetime):
        # Naive datetimes are taken to be UTC
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        date = date.astimezone(timezone.utc)
        # The wire only carries milliseconds
        self.date = date.replace(microsecond=date.microsecond // 1000 * 1000)

    @classmethod
    def from_iso(cls, iso: str) -> 'Date':
        try:
            date = datetime.strptime(iso, cls.ISO_FORMAT)
        except ValueError:
            date = datetime.strptime(iso, '%Y-%m-%dT%H:%M:%SZ')
        return cls(date.replace(tzinfo=timezone.utc))

    @classmethod
    def from_timestamp(cls, timestamp: float) -> 'Date':
        return cls(datetime.fromtimestamp(timestamp, timezone.utc))

    @classmethod
    def from_json(cls, json: dict) -> 'Date':
        return cls.from_iso(json['iso'])

    @property
    def iso(self) -> str:
        return '{}.{:03d}Z'.format(self.date.strftime('%Y-%m-%dT%H:%M:%S'), self.date.microsecond // 1000)

    @property
    def timestamp(self) -> float:
        return self.date.timestamp()

    @property
    def json(self):
        return {'__type': 'Date', 'iso': self.iso}

    def sort_key(self):
        return (_RANK_DATE, self.timestamp)

    def __eq__(self, other):
        return isinstance(other, Date) and self.date == other.date

    def __hash__(self):
        return hash(self.date)

    def __lt__(self, other):
        return isinstance(other, Date) and self.date < other.date

    def __gt__(self, other):
        return isinstance(other, Date) and self.date > other.date

    def __repr__(self):
        return 'Date({!r})'.format(self.iso)


class Bytes(ParseType):
    """ Binary data, base64 on the wire """

    wire_type = 'Bytes'

    __slots__ = ('bytes',)

    def __init__(self, data: bytes):
        self.bytes = bytes(data)

    @classmethod
    def from_json(cls, json: dict) -> 'Bytes':
        return cls(base64.b64decode(json['base64']))

    @property
    def json(self):
        return {'__type': 'Bytes', 'base64': base64.b64encode(self.bytes).decode('ascii')}


class File(ParseType):
    """ A reference to an uploaded file """

    wire_type = 'File'

    __slots__ = ('name', 'url')

    def __init__(self, name: str, url: str = None):
        self.name = name
        self.url = url

    @classmethod
    def from_json(cls, json: dict) -> 'File':
        return cls(json['name'], json.get('url'))

    @property
    def json(self):
        json = {'__type': 'File', 'name': self.name}
        if self.url is not None:
            json['url'] = self.url
        return json


class Pointer(ParseType):
    """ A reference to an object of some class

        A pointer may carry `connections`: the pointers reachable from the referenced object,
        by field name. This lets you walk foreign keys without fetching anything:

            note_pointer['author'].object_id

        Connections are never sent over the wire.
    """

    wire_type = 'Pointer'

    __slots__ = ('class_name', 'object_id', 'connections')

    def __init__(self, class_name: str, object_id: str, connections: dict = None):
        self.class_name = class_name
        self.object_id = object_id
        self.connections = connections

    @classmethod
    def from_json(cls, json: dict) -> 'Pointer':
        return cls(json['className'], json['objectId'])

    @classmethod
    def from_record(cls, class_name: str, record) -> 'Pointer':
        """ Point to a record, collecting the pointers it holds as connections

            :type record: parselocal.record.Record
        """
        connections = {}
        for key in record.keys:
            p = record.pointer(key)
            if p is not None:
                connections[key] = p
        return cls(class_name, record.object_id, connections)

    @property
    def json(self):
        return {'__type': 'Pointer', 'className': self.class_name, 'objectId': self.object_id}

    def __getitem__(self, key) -> 'Pointer':
        return (self.connections or {})[key]

    def __eq__(self, other):
        return isinstance(other, Pointer) \
               and self.class_name == other.class_name \
               and self.object_id == other.object_id

    def __hash__(self):
        return hash((self.class_name, self.object_id))

    def __repr__(self):
        s = '*{}.{}'.format(self.class_name, self.object_id)
        if self.connections:
            s += ' [{}]'.format(', '.join('{}:{!r}'.format(k, v) for k, v in self.connections.items()))
        return s


class GeoPoint(ParseType):
    wire_type = 'GeoPoint'

    __slots__ = ('latitude', 'longitude')

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude

    @classmethod
    def from_json(cls, json: dict) -> 'GeoPoint':
        return cls(json['latitude'], json['longitude'])

    @property
    def json(self):
        return {'__type': 'GeoPoint', 'latitude': self.latitude, 'longitude': self.longitude}


class ACLRule:
    """ Read/write permissions of one principal: a user id, a `role:name`, or `*` for the public """

    __slots__ = ('name', 'read', 'write', 'explicit')

    def __init__(self, name: str, read: bool = False, write: bool = False, explicit=()):
        self.name = name
        self.read = read
        self.write = write
        #: Permissions that are written out even when denied: `{"read": false}`
        self.explicit = frozenset(explicit)

    def __eq__(self, other):
        return isinstance(other, ACLRule) and \
               (self.name, self.read, self.write) == (other.name, other.read, other.write)

    def __repr__(self):
        return 'ACLRule({!r}, read={}, write={})'.format(self.name, self.read, self.write)


class ACL(ParseType):
    """ Access control list """

    __slots__ = ('rules',)

    def __init__(self, rules=()):
        self.rules = list(rules)

    @classmethod
    def from_json(cls, json: dict) -> 'ACL':
        return cls(ACLRule(name,
                           read=bool(perms.get('read', False)),
                           write=bool(perms.get('write', False)),
                           explicit=[k for k in ('read', 'write') if k in perms])
                   for name, perms in json.items())

    @classmethod
    def owner_only_write(cls, owner_id: str) -> 'ACL':
        """ Everyone reads, only the owner writes """
        return cls([ACLRule('*', read=True), ACLRule(owner_id, read=True, write=True)])

    @classmethod
    def public(cls) -> 'ACL':
        return cls([ACLRule('*', read=True, write=True)])

    def rule(self, name: str) -> ACLRule:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return ACLRule(name)

    @property
    def json(self):
        json = {}
        for rule in self.rules:
            perms = {}
            for key, allowed in (('read', rule.read), ('write', rule.write)):
                if allowed or key in rule.explicit:
                    perms[key] = bool(allowed)
            json[rule.name] = perms
        return json


class Raw(ParseType):
    """ Any JSON without a known type: lists, plain objects """

    __slots__ = ('object',)

    def __init__(self, obj):
        self.object = obj

    @property
    def json(self):
        return self.object


#: Tagged classes by their `__type`
TAGGED_TYPES = {cls.wire_type: cls for cls in (Date, Bytes, File, Pointer, GeoPoint)}


def decode(json) -> ParseType:
    """ Convert any JSON value into the matching ParseType """
    if isinstance(json, dict):
        cls = TAGGED_TYPES.get(json.get('__type'))
        if cls is not None:
            return cls.from_json(json)
        return Raw(json)
    if isinstance(json, (list, tuple)):
        return Raw(list(json))
    return Value(json)


def to_parse_type(obj) -> ParseType:
    """ Convert a Python value given by the developer into a ParseType

        Accepts: ParseType, datetime, bytes, scalars, lists, dicts,
        and any object with a `pointer()` method (models, records of a known class).
    """
    if isinstance(obj, ParseType):
        return obj
    if isinstance(obj, datetime):
        return Date(obj)
    if isinstance(obj, (bytes, bytearray)):
        return Bytes(obj)
    if obj is None or isinstance(obj, (str, int, float)):
        return Value(obj)
    if isinstance(obj, (list, tuple, dict)):
        return decode(obj)
    if callable(getattr(obj, 'pointer', None)):
        return obj.pointer()
    raise InvalidQueryError('Cannot convert {} into a wire value'.format(type(obj).__name__))


def encode(obj):
    """ Convert a Python value into its wire JSON """
    return to_parse_type(obj).json
