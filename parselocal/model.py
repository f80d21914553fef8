"""
Models: typed views of records

```python
class Note(ParseObject):
    class_name = 'Note'
    expire_after = 3600  # cache locally for an hour

    fields = {
        'title': str,
        'votes': int,
        'author': User,   # a pointer
        'tags': list,
    }
```

The schema is checked when the class is created. Reading a field gives a Python value of the declared type;
writing a field stages the value in the record's pending overlay, to be sent by `Operations.from_record()`.
"""

from datetime import datetime

from .exc import InvalidQueryError
from .record import Record
from .values import Pointer, File, GeoPoint, ACL

#: Types a field can be declared with
FIELD_TYPES = (str, int, float, bool, datetime, bytes, list, dict, Pointer, File, GeoPoint, ACL)


def path(class_name: str, object_id: str = None) -> str:
    """ The REST path of a class, or of an object """
    if class_name == '_User':
        p = 'users'
    elif class_name == '_Installation':
        p = 'installations'
    else:
        p = 'classes/{}'.format(class_name)
    if object_id is not None:
        p += '/{}'.format(object_id)
    return p


class ParseObject:
    """ Base for models

        Subclasses declare:

        * `class_name`: the server class
        * `expire_after`: seconds to trust the local cache for ; `None`: never cached
        * `fields`: {name: type}. Types: see FIELD_TYPES ; or another model, for a pointer to it.
    """

    #: The server class
    class_name = None

    #: Trust the local cache for this many seconds ; None: not cached
    expire_after = None

    #: Field schema: {name: type}
    fields = {}

    __slots__ = ('record',)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        # class_name=None: an abstract model
        if cls.class_name is not None and (not isinstance(cls.class_name, str) or not cls.class_name):
            raise TypeError('{}.class_name must be a non-empty string'.format(cls.__name__))
        if cls.expire_after is not None and cls.expire_after < 0:
            raise TypeError('{}.expire_after must be a positive number of seconds'.format(cls.__name__))

        # Inherit fields
        fields = {}
        for base in reversed(cls.__mro__[1:]):
            fields.update(getattr(base, 'fields', None) or {})
        fields.update(cls.__dict__.get('fields', None) or {})

        # Validate them
        for name, type_ in fields.items():
            if not (type_ in FIELD_TYPES or (isinstance(type_, type) and issubclass(type_, ParseObject))):
                raise TypeError('{}.fields[{!r}]: unsupported type {!r}'.format(cls.__name__, name, type_))
        cls.fields = fields

    def __init__(self, record: Record = None):
        self.record = record if record is not None else Record()

    @classmethod
    def from_record(cls, record: Record):
        return cls(record)

    @classmethod
    def from_json(cls, json: dict):
        return cls(Record(json))

    @property
    def object_id(self) -> str:
        return self.record.object_id

    @property
    def created_at(self) -> datetime:
        d = self.record.created_at
        return d.date if d is not None else None

    @property
    def updated_at(self) -> datetime:
        d = self.record.updated_at
        return d.date if d is not None else None

    @property
    def security(self) -> ACL:
        return self.record.security

    def pointer(self) -> Pointer:
        """ Pointer to this object, with connections to the objects it points to """
        if self.object_id is None:
            raise InvalidQueryError('{} has no objectId yet: save it first'.format(self.class_name))
        return Pointer.from_record(self.class_name, self.record)

    def __getitem__(self, key):
        type_ = self.fields.get(key)
        record = self.record

        if type_ is str:
            return record.value(key).string
        if type_ in (int, float):
            n = record.value(key).number
            return type_(n) if n is not None else None
        if type_ is bool:
            return record.value(key).boolean
        if type_ is datetime:
            d = record.date(key)
            return d.date if d is not None else None
        if type_ is bytes:
            b = record.bytes(key)
            return b.bytes if b is not None else None
        if type_ is File:
            return record.file(key)
        if type_ is GeoPoint:
            return record.geo_point(key)
        if type_ is ACL:
            return record.security if key == 'ACL' else None
        if type_ is Pointer or (isinstance(type_, type) and issubclass(type_, ParseObject)):
            return record.pointer(key)
        if type_ in (list, dict):
            v = record.get_raw(key)
            return v if isinstance(v, type_) else None

        # Not declared
        return record.typed(key)

    def __setitem__(self, key, value):
        if self.fields and key not in self.fields:
            raise KeyError('{} has no field {!r}'.format(self.class_name, key))
        self.record[key] = value

    def __eq__(self, other):
        return isinstance(other, ParseObject) \
               and self.class_name == other.class_name \
               and self.record == other.record

    def __hash__(self):
        return hash((self.class_name, self.object_id))

    def __repr__(self):
        return '<{} {}>'.format(self.class_name, self.object_id)

    @classmethod
    def query(cls, client):
        """ Start a query on this model

            :type client: parselocal.client.Client
            :rtype: parselocal.query.Query
        """
        return client.query(cls)


class User(ParseObject):
    """ The system class of users """
    class_name = '_User'

    fields = {
        'username': str,
        'email': str,
        'emailVerified': bool,
        'sessionToken': str,
    }

    @property
    def username(self) -> str:
        return self['username']

    @property
    def session_token(self) -> str:
        return self['sessionToken']


class Installation(ParseObject):
    """ The system class of devices registered for push """
    class_name = '_Installation'

    fields = {
        'deviceType': str,
        'deviceToken': str,
        'channels': list,
        'badge': int,
    }
