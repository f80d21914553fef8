import tempfile
import unittest
from datetime import datetime, timezone

from parselocal import Client, ParseSettingsDict, ParseObject, User, Installation, File, Pointer, \
    RequestsTransport, MemoryBlobStore, FileBlobStore
from parselocal.exc import SessionFailure
from parselocal.util import pluck_kwargs_from, SettingsRouter
from .models import Note, Comment, Tag
from .util import FakeTransport


class SettingsTest(unittest.TestCase):
    """ Test ParseSettingsDict, SettingsRouter, and how the Client uses them """

    longMessage = True

    def test_settings_dict(self):
        settings = ParseSettingsDict(application_id='app', cache_root='/tmp/x')
        self.assertEqual(settings['application_id'], 'app')
        self.assertEqual(settings['server_url'], 'https://api.parse.com/1')
        self.assertEqual(settings['fetch_debounce'], 0.25)
        self.assertEqual(settings['page_size'], 1000)
        self.assertEqual(settings['default_limit'], 100)

        more = settings.and_more(rest_key='rest')
        self.assertEqual(more['rest_key'], 'rest')
        self.assertEqual(more['application_id'], 'app')
        self.assertIsNone(settings['rest_key'])

        plucked = ParseSettingsDict.pluck_from({'application_id': 'app', 'unknown': 1, 'timeout': 5})
        self.assertEqual(plucked['timeout'], 5)
        self.assertNotIn('unknown', plucked)

    def test_pluck_kwargs_from(self):
        def f(a, b=1, *, c=2, **kwargs):
            pass

        self.assertEqual(pluck_kwargs_from({'a': 0, 'b': 10, 'z': 0}, f), {'b': 10, 'c': 2})
        self.assertEqual(pluck_kwargs_from({}, f, skip=('c',)), {'b': 1})

    def test_router(self):
        def component(x=1, y=2):
            pass

        router = SettingsRouter({'x': 10, 'typo': 1})
        self.assertEqual(router.get_settings('component', component), {'x': 10, 'y': 2})
        with self.assertRaises(KeyError):
            router.raise_if_invalid_settings()

    def test_client_settings(self):
        client = Client(ParseSettingsDict(application_id='app', rest_key='rest', timeout=5, default_limit=50))
        self.assertIsInstance(client.transport, RequestsTransport)
        self.assertEqual(client.transport.timeout, 5)
        self.assertIsInstance(client.registry.blob_store, MemoryBlobStore)
        self.assertEqual(client.engine.default_limit, 50)
        self.assertEqual(client.query(Note).handler_limit.default_limit, 50)

        with tempfile.TemporaryDirectory() as root:
            client = Client.from_settings(application_id='app', cache_root=root, fetch_debounce=1)
            self.assertIsInstance(client.registry.blob_store, FileBlobStore)
            self.assertEqual(client.registry.fetch_debounce, 1)

        # Typos
        with self.assertRaises(KeyError):
            Client({'application_id': 'app', 'cahce_root': '/tmp'})


class ClientTest(unittest.TestCase):
    """ Test sessions and the other requests of the Client """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.transport = FakeTransport()
        self.client = Client(transport=self.transport)

    def test_log_in(self):
        self.transport.responses.append({'objectId': 'u1', 'username': 'alice', 'sessionToken': 'r:abc'})
        user = self.client.log_in('alice', 'secret')

        self.assertEqual(self.transport.calls, [('GET', 'login', {'username': 'alice', 'password': 'secret'})])
        self.assertIsInstance(user, User)
        self.assertEqual(user.username, 'alice')
        self.assertEqual(user.session_token, 'r:abc')
        self.assertIs(self.client.current_user, user)
        self.assertEqual(self.transport.session_token, 'r:abc')

        # Log out
        self.transport.responses.append({})
        self.client.log_out()
        self.assertEqual(self.transport.calls[-1], ('POST', 'logout', None))
        self.assertIsNone(self.client.current_user)
        self.assertIsNone(self.transport.session_token)

        # Not logged in: nothing to do
        self.client.log_out()
        self.assertEqual(len(self.transport.calls), 2)

    def test_log_in_without_session(self):
        self.transport.responses.append({'objectId': 'u1', 'username': 'alice'})
        with self.assertRaises(SessionFailure):
            self.client.log_in('alice', 'secret')
        self.assertIsNone(self.client.current_user)

    def test_sign_up(self):
        self.transport.responses.append({'objectId': 'u1', 'createdAt': '2016-01-15T10:00:00.000Z'})
        self.transport.responses.append({'objectId': 'u1', 'username': 'bob', 'sessionToken': 'r:bob'})
        user = self.client.sign_up('bob', 'secret', email='bob@example.com')

        self.assertEqual(self.transport.calls, [
            ('POST', 'users', {'username': 'bob', 'password': 'secret', 'email': 'bob@example.com'}),
            ('GET', 'login', {'username': 'bob', 'password': 'secret'}),
        ])
        self.assertEqual(user.object_id, 'u1')

    def test_become(self):
        self.transport.responses.append({'objectId': 'u1', 'username': 'alice'})
        user = self.client.become('r:abc')

        self.assertEqual(self.transport.calls, [('GET', 'users/me', None)])
        self.assertEqual(user.session_token, 'r:abc')
        self.assertEqual(self.transport.session_token, 'r:abc')

    def test_call_function(self):
        self.transport.responses.append({'result': 42})
        self.assertEqual(self.client.call_function('answer', {'q': 'life'}), {'result': 42})
        self.assertEqual(self.transport.calls, [('POST', 'functions/answer', {'q': 'life'})])

    def test_config(self):
        self.transport.responses.append({'params': {'welcome': 'Hi'}})
        self.transport.responses.append({})
        self.assertEqual(self.client.config(), {'welcome': 'Hi'})
        self.assertEqual(self.client.config(), {})

    def test_upload_file(self):
        self.transport.responses.append({'name': 'tfss-pic.jpg', 'url': 'http://files/tfss-pic.jpg'})
        f = self.client.upload_file('pic.jpg', b'\xff\xd8', 'image/jpeg')

        self.assertEqual(f, File('tfss-pic.jpg', 'http://files/tfss-pic.jpg'))
        self.assertEqual(self.transport.calls, [('POST', 'files/pic.jpg', {'mime_type': 'image/jpeg', 'size': 2})])

    def test_installation_and_push(self):
        self.transport.responses.append({'objectId': 'i1', 'createdAt': '2016-01-15T10:00:00.000Z'})
        record = self.client.register_installation('token', ['news'])
        self.assertEqual(record.object_id, 'i1')
        self.assertEqual(self.transport.calls[-1], ('POST', 'installations', {
            'deviceType': 'ios',
            'deviceToken': 'token',
            'channels': ['news'],
        }))

        self.transport.responses.append({'result': True})
        self.client.push({'alert': 'Hi'}, self.client.query(Installation).equal_to('channels', 'news'))
        self.assertEqual(self.transport.calls[-1], ('POST', 'push', {
            'where': {'channels': 'news'},
            'data': {'alert': 'Hi'},
        }))


class ModelTest(unittest.TestCase):
    """ Test models """

    longMessage = True

    def test_schema(self):
        self.assertEqual(Note.class_name, 'Note')
        self.assertEqual(Note.expire_after, 60)
        self.assertIsNone(Tag.expire_after)
        self.assertIn('author', Note.fields)

        # Fields are inherited
        class SpecialNote(Note):
            fields = {'special': bool}
        self.assertEqual(set(SpecialNote.fields), set(Note.fields) | {'special'})
        self.assertNotIn('special', Note.fields)

        with self.assertRaises(TypeError):
            class Broken(ParseObject):
                class_name = 'Broken'
                fields = {'x': set}

        with self.assertRaises(TypeError):
            class Broken(ParseObject):
                class_name = ''

        with self.assertRaises(TypeError):
            class Broken(ParseObject):
                class_name = 'Broken'
                expire_after = -1

    def test_typed_access(self):
        class Event(ParseObject):
            class_name = 'Event'
            fields = {
                'name': str,
                'count': int,
                'ratio': float,
                'public': bool,
                'when': datetime,
                'data': bytes,
                'tags': list,
                'note': Note,
                'pic': File,
            }

        event = Event.from_json({
            'objectId': 'e1',
            'createdAt': '2016-01-15T10:00:00.000Z',
            'name': 'Launch',
            'count': 3,
            'ratio': 1,
            'public': True,
            'when': {'__type': 'Date', 'iso': '2016-02-01T00:00:00.000Z'},
            'data': {'__type': 'Bytes', 'base64': 'aGVsbG8='},
            'tags': ['a'],
            'note': {'__type': 'Pointer', 'className': 'Note', 'objectId': 'n1'},
            'pic': {'__type': 'File', 'name': 'pic.jpg'},
            'extra': 'x',
        })

        self.assertEqual(event['name'], 'Launch')
        self.assertEqual(event['count'], 3)
        self.assertIsInstance(event['ratio'], float)
        self.assertIs(event['public'], True)
        self.assertEqual(event['when'], datetime(2016, 2, 1, tzinfo=timezone.utc))
        self.assertEqual(event['data'], b'hello')
        self.assertEqual(event['tags'], ['a'])
        self.assertEqual(event['note'], Pointer('Note', 'n1'))
        self.assertEqual(event['pic'], File('pic.jpg'))
        self.assertEqual(event['extra'].string, 'x')
        self.assertEqual(event.created_at, datetime(2016, 1, 15, 10, tzinfo=timezone.utc))
        self.assertIsNone(event.updated_at)

        # Wrong types, missing fields: None
        wrong = Event.from_json({'objectId': 'e2', 'name': 5, 'count': 'many'})
        self.assertIsNone(wrong['name'])
        self.assertIsNone(wrong['count'])
        self.assertIsNone(wrong['when'])

        # Pointers, with connections
        comment = Comment.from_json({'objectId': 'c1', 'note': {'__type': 'Pointer', 'className': 'Note',
                                                                 'objectId': 'n1'}})
        self.assertEqual(comment.pointer()['note'], Pointer('Note', 'n1'))
        self.assertEqual(comment, Comment.from_json({'objectId': 'c1'}))
        self.assertNotEqual(comment, Note.from_json({'objectId': 'c1'}))
