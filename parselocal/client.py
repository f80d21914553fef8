from logging import getLogger
from typing import Callable, Union

from .cache.blobstore import blob_store_from_settings
from .cache.registry import CacheRegistry
from .engine import QueryEngine
from .exc import SessionFailure
from .model import ParseObject, User, Installation
from .operations import Operations
from .query import Query
from .record import Record
from .transport import RequestsTransport
from .util.settings_dict import ParseSettingsDict
from .util.settings_router import SettingsRouter
from .values import Pointer, File, to_parse_type

logger = getLogger(__name__)

#: A model class, or a class name
ModelOrClass = Union[type, str]


class Client:
    """ The client of one application

        ```python
        client = Client(ParseSettingsDict(application_id='...', rest_key='...'))
        client.register(Note)

        notes = client.query(Note).equal_to('tag', 'x').list()
        ```

        :param settings: Settings. See ParseSettingsDict.
        :type settings: dict | ParseSettingsDict
        :param transport: Custom transport ; default: RequestsTransport made from the settings
        :type transport: parselocal.transport.Transport
        :param registry: Custom cache ; default: a CacheRegistry made from the settings
        :type registry: parselocal.cache.registry.CacheRegistry
        :param scheduler: Runs the debounce timers of the default registry
        :type scheduler: parselocal.util.scheduler.Scheduler
    """

    def __init__(self, settings: dict = None, transport=None, registry=None, scheduler=None):
        router = SettingsRouter(dict(settings or {}))

        # Every component takes its settings, even when it's not used: so that typos are found
        transport_settings = router.get_settings('transport', RequestsTransport.__init__)
        blob_store_settings = router.get_settings('blob_store', blob_store_from_settings)
        registry_settings = router.get_settings('cache', CacheRegistry.__init__,
                                                skip=('blob_store', 'clock', 'scheduler'))
        engine_settings = router.get_settings('engine', QueryEngine.__init__)
        router.raise_if_invalid_settings()

        if transport is None:
            transport = RequestsTransport(**transport_settings)
        if registry is None:
            registry = CacheRegistry(blob_store_from_settings(**blob_store_settings),
                                     scheduler=scheduler,
                                     **registry_settings)

        self.transport = transport
        self.registry = registry
        self.engine = QueryEngine(transport, registry, **engine_settings)

        #: The logged-in user, if any
        self.current_user = None

    @classmethod
    def from_settings(cls, **settings):
        """ Make a client from keyword settings: see ParseSettingsDict """
        return cls(ParseSettingsDict(**settings))

    # region Classes

    @staticmethod
    def _class_name(model: ModelOrClass) -> str:
        if isinstance(model, str):
            return model
        return model.class_name

    def register(self, *models):
        """ Declare models: the ones with an `expire_after` are cached locally """
        for model in models:
            self.registry.register(model.class_name, model.expire_after)
        return self

    def register_class(self, class_name: str, expire_after: float = None):
        """ Declare a class without a model """
        self.registry.register(class_name, expire_after)
        return self

    # endregion

    # region Queries

    def query(self, model: ModelOrClass) -> Query:
        """ Start a query on a model, or on a class name """
        if isinstance(model, str):
            return Query(model, self.engine)
        return Query(model.class_name, self.engine, model)

    def get(self, model: ModelOrClass, object_id: str, callback: Callable):
        """ Get an object by id

            Requests made within the debounce window are sent as one.
            The callback receives a model instance (or a record, for a class name).

            :param callback: callback(object, error)
        """
        def deliver(record, error):
            if record is not None and not isinstance(model, str):
                record = model.from_record(record)
            callback(record, error)
        self.engine.get(self._class_name(model), object_id, deliver)

    def persistent(self, model: ModelOrClass, done: Callable = None) -> list:
        """ Fetch a whole class into the local cache

            :param done: callback(records, error)
            :return: The records
        """
        return self.engine.populate(self._class_name(model), done)

    # endregion

    # region Writes

    def operations(self, model: ModelOrClass, object_id: str = None) -> Operations:
        """ Operations on a new object (no object_id), or on an existing one """
        return Operations(self.engine, self._class_name(model), object_id)

    def save(self, obj: ParseObject) -> Record:
        """ Send the staged changes of an object: create it, or update it

            :return: The record, as it's now known
        """
        operations = Operations.from_record(self.engine, obj.class_name, obj.record)
        if obj.object_id is None:
            obj.record = operations.save()
        else:
            record = operations.update()
            obj.record = record if record is not None else obj.record.merged(operations.compose())
        return obj.record

    # endregion

    # region Relations

    def relations(self, owner, key: str, target: ModelOrClass, callback: Callable):
        """ The members of `owner`'s relation `key`, memoized

            :param owner: An object, or a pointer
            :param target: The model (or class name) of the members
            :param callback: callback(relation, error)
        """
        owner = to_parse_type(owner)
        target_class = self._class_name(target)

        def fetch():
            query = self.query(target_class).related_to(key, owner)
            return [Pointer.from_record(target_class, r) for r in self.engine.fetch_all(target_class, query.constraints)]

        self.registry.relations.resolve(key, owner, target_class, fetch, callback)

    def related_owners(self, owner_model: ModelOrClass, key: str, target, callback: Callable):
        """ The objects of `owner_model` whose relation `key` contains `target`, memoized

            :param target: An object, or a pointer
            :param callback: callback(relation, error)
        """
        target = to_parse_type(target)
        owner_class = self._class_name(owner_model)

        def fetch():
            query = self.query(owner_class).equal_to(key, target)
            return [Pointer.from_record(owner_class, r) for r in self.engine.fetch_all(owner_class, query.constraints)]

        self.registry.relations.resolve_inverse(key, owner_class, target, fetch, callback)

    # endregion

    # region Sessions

    def _become(self, raw: dict) -> User:
        token = raw.get('sessionToken')
        if not token:
            raise SessionFailure('The server did not give us a session token')
        self.transport.update_session(token)
        self.current_user = User(Record(raw))
        logger.info('Logged in as %s', self.current_user.username)
        return self.current_user

    def log_in(self, username: str, password: str) -> User:
        """ Log in, and use the session for every following request

            :raises SessionFailure: no session was given
        """
        self.transport.update_session(None)
        response = self.engine.request('GET', 'login', {'username': username, 'password': password})
        return self._become(response)

    def sign_up(self, username: str, password: str, **fields) -> User:
        """ Create a user, and log in """
        self.transport.update_session(None)
        ops = self.operations(User).set('username', username).set('password', password)
        for key, value in fields.items():
            ops.set(key, value)
        ops.save()
        return self.log_in(username, password)

    def become(self, session_token: str) -> User:
        """ Use an existing session: validate it, and load its user """
        self.transport.update_session(session_token)
        response = self.engine.request('GET', 'users/me')
        response.setdefault('sessionToken', session_token)
        return self._become(response)

    def log_out(self):
        if self.current_user is None:
            return
        try:
            self.engine.request('POST', 'logout')
        finally:
            self.transport.update_session(None)
            self.current_user = None

    # endregion

    # region Misc

    def call_function(self, name: str, params: dict = None) -> dict:
        """ Run a cloud function: POST functions/<name> """
        return self.engine.request('POST', 'functions/{}'.format(name), params or {})

    def config(self) -> dict:
        """ The application config ; empty when there's none """
        return self.engine.request('GET', 'config').get('params', {})

    def upload_file(self, name: str, data: bytes, mime_type: str = 'application/octet-stream') -> File:
        """ Upload a file ; the returned File can be set into a field """
        response = self.transport.upload('files/{}'.format(name), mime_type, data)
        return File(response['name'], response.get('url'))

    def register_installation(self, device_token: str, channels=(), device_type: str = 'ios', **fields) -> Record:
        """ Register this device for push notifications """
        ops = self.operations(Installation) \
            .set('deviceType', device_type) \
            .set('deviceToken', device_token) \
            .set('channels', list(channels))
        for key, value in fields.items():
            ops.set(key, value)
        return ops.save()

    def push(self, data: dict, query: Query = None):
        """ Send a push notification to the installations that match the query """
        where = query.constraints.compose_query() if query is not None else {}
        return self.engine.request('POST', 'push', {'where': where, 'data': data})

    # endregion
