import os
import re
import tempfile
import unittest
from copy import copy

from parselocal import Client, CacheRegistry, MemoryBlobStore, FileBlobStore, Pointer, Record, Query
from parselocal.exc import InvalidQueryError
from .models import Note, Person, Comment, Tag, make_notes, pointer_json
from .util import FakeTransport, FakeClock, ManualScheduler, FailingBlobStore


class QueryTestBase(unittest.TestCase):
    longMessage = True
    maxDiff = None

    def setUp(self):
        self.clock = FakeClock()
        self.transport = FakeTransport()
        self.transport.add_objects('Note', make_notes(1250))
        self.registry = CacheRegistry(MemoryBlobStore(self.clock), self.clock, ManualScheduler())
        self.client = Client(transport=self.transport, registry=self.registry)
        self.client.register(Note, Person, Comment, Tag)

    def populate(self, *models):
        for model in models:
            self.client.persistent(model)
        self.transport.calls.clear()


class QueryBuilderTest(unittest.TestCase):
    """ Test Query: composing requests """

    longMessage = True
    maxDiff = None

    def test_compose_params(self):
        q = Query('Note') \
            .equal_to('tag', 'x') \
            .greater_than('votes', 10) \
            .order('-votes,title') \
            .skip(40) \
            .limit(20) \
            .keys('title,votes') \
            .include('author')
        self.assertEqual(q.compose_params(), {
            'where': {'tag': 'x', 'votes': {'$gt': 10}},
            'order': '-votes,title',
            'skip': 40,
            'limit': 20,
            'keys': 'title,votes',
            'include': 'author',
        })

        # Count overrides the limit
        q.handler_count.input(True)
        self.assertEqual(q.compose_params()['limit'], 1)
        self.assertEqual(q.compose_params()['count'], 1)

    def test_equal_to_object_id(self):
        note = Note.from_json({'objectId': 'n1'})
        self.assertEqual(Query('Note').equal_to('objectId', note).compose_params(), {'where': {'objectId': 'n1'}})
        self.assertEqual(Query('Note').equal_to('objectId', Pointer('Note', 'n1')).compose_params(),
                         {'where': {'objectId': 'n1'}})
        self.assertEqual(Query('Note').equal_to('objectId', 'n1').compose_params(), {'where': {'objectId': 'n1'}})

        # Other keys compare objects as pointers
        self.assertEqual(Query('Comment').equal_to('note', note).compose_params(),
                         {'where': {'note': pointer_json('Note', 'n1')}})

        with self.assertRaises(InvalidQueryError):
            Query('Note').equal_to('objectId', [1])

    def test_or(self):
        q = Query('Note').equal_to('tag', 'x') | Query('Note').greater_than('votes', 10)
        self.assertEqual(q.compose_params(), {'where': {'$or': [{'tag': 'x'}, {'votes': {'$gt': 10}}]}})

        with self.assertRaises(InvalidQueryError):
            Query('Note') | Query('Comment')

    def test_sub_queries(self):
        inner = Query('Note').greater_than('votes', 45)
        q = Query('Comment').matches_key_in_query('note', 'objectId', inner)
        self.assertEqual(q.compose_params(), {'where': {'note': {'$select': {
            'key': 'objectId',
            'query': {'className': 'Note', 'where': {'votes': {'$gt': 45}}},
        }}}})

        # The inner query was copied
        inner.equal_to('tag', 'x')
        self.assertEqual(q.compose_params()['where']['note']['$select']['query']['where'],
                         {'votes': {'$gt': 45}})

        q = Query('Comment').does_not_match_key_in_query('note', 'objectId', Query('Note'))
        self.assertEqual(q.compose_params(), {'where': {'note': {'$dontSelect': {
            'key': 'objectId',
            'query': {'className': 'Note', 'where': {}},
        }}}})

        q = Query('Note').related_to('likes', Pointer('_User', 'u1'))
        self.assertEqual(q.compose_params(),
                         {'where': {'$relatedTo': {'object': pointer_json('_User', 'u1'), 'key': 'likes'}}})
        with self.assertRaises(InvalidQueryError):
            Query('Note').related_to('likes', 'u1')

    def test_copy(self):
        q = Query('Note').equal_to('tag', 'x').limit(5)
        q2 = copy(q).greater_than('votes', 1).limit(10).order('title')

        self.assertEqual(q.compose_params(), {'where': {'tag': 'x'}, 'limit': 5})
        self.assertEqual(q2.compose_params(),
                         {'where': {'tag': 'x', 'votes': {'$gt': 1}}, 'limit': 10, 'order': 'title'})
        self.assertIs(q2.handler_filter.query, q2)

    def test_allows_local_search(self):
        self.assertTrue(Query('Note').equal_to('tag', 'x').allows_local_search())
        self.assertFalse(Query('Note').equal_to('author', Pointer('_User', 'u1')).allows_local_search())
        self.assertFalse(Query('Note').related_to('likes', Pointer('_User', 'u1')).allows_local_search())
        self.assertFalse(Query('Note').include('author').allows_local_search())
        self.assertFalse(Query('Note').local(False).allows_local_search())

    def test_unbound(self):
        with self.assertRaises(InvalidQueryError):
            Query('Note').list()


class LocalQueryTest(QueryTestBase):
    """ Test queries served from the local cache """

    def test_populate(self):
        records = self.client.persistent(Note)
        self.assertEqual(len(records), 1250)

        # Two pages
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Note', {'limit': 1000, 'skip': 0}),
            ('GET', 'classes/Note', {'limit': 1000, 'skip': 1000}),
        ])

        # Not cached
        with self.assertRaises(KeyError):
            self.client.persistent('Unknown')

    def test_local_query(self):
        self.populate(Note)

        # Default limit: 100
        notes = self.client.query(Note).equal_to('tag', 'x').list()
        self.assertEqual(len(notes), 100)
        self.assertIsInstance(notes[0], Note)
        self.assertEqual([n.object_id for n in notes[:3]], ['n0001', 'n0003', 'n0005'])
        self.assertEqual(notes[0]['votes'], 1)
        self.assertEqual(notes[0]['author'], Pointer('_User', 'u1'))

        # Sort, limit
        notes = self.client.query(Note).greater_than('votes', 45).order('-votes,title').limit(5).list()
        self.assertEqual([n['title'] for n in notes],
                         ['Note #1049', 'Note #1099', 'Note #1149', 'Note #1199', 'Note #1249'])

        # Skip
        notes = self.client.query(Note).skip(1240).list()
        self.assertEqual([n.object_id for n in notes], ['n{}'.format(i) for i in range(1240, 1250)])

        # Count
        self.assertEqual(self.client.query(Note).equal_to('tag', 'x').count(), 625)
        self.assertEqual(self.client.query(Note).count(), 1250)

        # Regex, Or
        q = self.client.query(Note).matches_regex('title', r'^note #12\d\d$', re.I)
        self.assertEqual(q.count(), 50)
        q = self.client.query(Note).equal_to('votes', 0) | self.client.query(Note).equal_to('votes', 1)
        self.assertEqual(q.count(), 50)

        # First
        self.assertEqual(self.client.query(Note).equal_to('votes', 3).first().object_id, 'n0003')
        self.assertIsNone(self.client.query(Note).equal_to('votes', 100).first())

        # Projection
        record = self.client.query(Note).keys('title').limit(1).data()[0]
        self.assertEqual(record.to_json(), {
            'objectId': 'n0000',
            'createdAt': '2016-01-15T10:00:00.000Z',
            'updatedAt': '2016-01-15T10:00:00.000Z',
            'title': 'Note #0',
        })

        # Class name: records
        records = self.client.query('Note').limit(2).list()
        self.assertIsInstance(records[0], Record)

        # Not a single request
        self.assertEqual(self.transport.calls, [])

    def test_sort_stability(self):
        self.transport.add_objects('Person', [
            {'objectId': 'p1', 'name': 'b', 'age': 30},
            {'objectId': 'p2', 'name': 'a', 'age': 30},
            {'objectId': 'p3', 'name': 'c', 'age': 25},
            {'objectId': 'p4', 'name': 'a', 'age': 30},
            {'objectId': 'p5', 'name': 'd'},
        ])
        self.populate(Person)

        people = self.client.query(Person).order('-age,name').list()
        self.assertEqual([p.object_id for p in people], ['p2', 'p4', 'p1', 'p3', 'p5'])
        people = self.client.query(Person).order(['age', '-name']).list()
        self.assertEqual([p.object_id for p in people], ['p5', 'p3', 'p1', 'p2', 'p4'])
        self.assertEqual(self.transport.calls, [])

    def test_sub_queries(self):
        comments = [
            {'objectId': 'c{:03d}'.format(i),
             'text': 'tag{}'.format(i % 5),
             'note': pointer_json('Note', 'n{:04d}'.format(i * 7 % 1250))}
            for i in range(200)
        ]
        votes = {n['objectId']: n['votes'] for n in make_notes(1250)}
        self.transport.add_objects('Comment', comments)
        self.transport.add_objects('Tag', [
            {'objectId': 't1', 'name': 'tag1', 'kind': 'a'},
            {'objectId': 't2', 'name': 'tag2', 'kind': 'b'},
            {'objectId': 't3', 'name': 'tag3', 'kind': 'a'},
        ])
        self.populate(Note, Comment)

        # Both classes cached: no requests
        popular = self.client.query(Note).greater_than('votes', 45)
        found = self.client.query(Comment) \
            .matches_key_in_query('note', 'objectId', popular) \
            .limit(1000) \
            .list()
        expected = [c['objectId'] for c in comments if votes[c['note']['objectId']] > 45]
        self.assertTrue(expected)
        self.assertEqual([c.object_id for c in found], expected)

        found = self.client.query(Comment) \
            .does_not_match_key_in_query('note', 'objectId', popular) \
            .limit(1000) \
            .list()
        self.assertEqual(len(found), 200 - len(expected))
        self.assertEqual(self.transport.calls, [])

        # The inner class is not cached: it's fetched, and the outer query still runs locally
        kinds = self.client.query(Tag).equal_to('kind', 'a')
        found = self.client.query(Comment).matches_key_in_query('text', 'name', kinds).limit(1000).list()
        self.assertEqual({c['text'] for c in found}, {'tag1', 'tag3'})
        self.assertEqual(len(found), 80)
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Tag', {'where': {'kind': 'a'}, 'limit': 1000, 'skip': 0}),
        ])

    def test_same_key_conditions(self):
        self.populate(Note)

        self.assertEqual(Query('Note').equal_to('votes', 5).greater_than('votes', 10).compose_params(),
                         {'where': {'votes': {'$eq': 5, '$gt': 10}}})

        # Local and remote results agree
        queries = [
            lambda: self.client.query(Note).equal_to('votes', 5).greater_than('votes', 10),
            lambda: self.client.query(Note).equal_to('votes', 5).less_than('votes', 10),
            lambda: self.client.query(Note).equal_to('tag', 'x').equal_to('tag', 'y'),
            lambda: self.client.query(Note).greater_than('votes', 10).greater_than('votes', 40),
        ]
        local = [q().count() for q in queries]
        self.assertEqual(self.transport.calls, [])
        self.assertEqual(local, [0, 25, 0, 225])

        remote = [q().local(False).count() for q in queries]
        self.assertEqual(len(self.transport.calls), 4)
        self.assertEqual(remote, local)

    def test_each(self):
        seen = []
        self.client.query(Note).equal_to('tag', 'x').limit(5).each(seen.append)

        self.assertEqual(len(seen), 625)
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Note', {'where': {'tag': 'x'}, 'limit': 1000, 'skip': 0}),
        ])

    def test_page_size(self):
        client = Client({'page_size': 500}, transport=self.transport, registry=self.registry)
        client.register(Note)
        client.persistent(Note)
        self.assertEqual([c[2]['skip'] for c in self.transport.calls], [0, 500, 1000])


class RemoteQueryTest(QueryTestBase):
    """ Test the queries that go to the network """

    def test_pointer_equality(self):
        self.populate(Note)

        notes = self.client.query(Note).equal_to('author', Pointer('_User', 'u1')).list()
        self.assertEqual(len(notes), 100)
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Note', {'where': {'author': pointer_json('_User', 'u1')}}),
        ])

    def test_remote_only(self):
        self.populate(Note)

        self.client.query(Note).include('author').limit(1).list()
        self.client.query(Note).local(False).limit(1).list()
        self.client.query(Note).related_to('likes', Pointer('_User', 'u1')).list()
        self.assertEqual([c[2] for c in self.transport.calls], [
            {'limit': 1, 'include': 'author'},
            {'limit': 1},
            {'where': {'$relatedTo': {'object': pointer_json('_User', 'u1'), 'key': 'likes'}}},
        ])

    def test_not_cached(self):
        # Not populated
        self.client.query(Note).limit(1).list()
        self.assertEqual(len(self.transport.calls), 1)

        # Not a cached class
        self.transport.add_objects('Tag', [{'objectId': 't1'}, {'objectId': 't2'}, {'objectId': 't3'}])
        self.assertEqual(self.client.query(Tag).count(), 3)
        self.assertEqual(self.transport.calls[-1], ('GET', 'classes/Tag', {'count': 1, 'limit': 1}))

    def test_expired(self):
        self.populate(Note)

        self.clock.advance(61)
        with self.assertLogs('parselocal.engine', 'INFO'):
            self.assertEqual(len(self.client.query(Note).equal_to('tag', 'x').list()), 100)
        self.assertEqual(len(self.transport.calls), 1)

        # Trust the cache for longer
        self.transport.calls.clear()
        self.assertEqual(self.client.query(Note).local(3600).equal_to('tag', 'x').count(), 625)
        self.assertEqual(self.transport.calls, [])

        # Re-populate
        self.populate(Note)
        self.assertEqual(self.client.query(Note).count(), 1250)
        self.assertEqual(self.transport.calls, [])

    def test_storage_failure(self):
        blobs = FailingBlobStore(self.clock)
        client = Client(transport=self.transport, registry=CacheRegistry(blobs, self.clock, ManualScheduler()))
        client.register(Note)
        client.persistent(Note)
        self.transport.calls.clear()

        # Reads fail: the query goes remote
        blobs.fail_reads = True
        with self.assertLogs('parselocal.engine', 'INFO'):
            self.assertEqual(client.query(Note).equal_to('tag', 'x').count(), 625)
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Note', {'where': {'tag': 'x'}, 'count': 1, 'limit': 1}),
        ])

        # Writes fail: the server write still returns
        blobs.fail_reads = False
        blobs.fail_writes = True
        self.transport.responses.append({'objectId': 'new1', 'createdAt': '2016-02-01T00:00:00.000Z'})
        with self.assertLogs('parselocal.cache.store', 'WARNING'):
            record = client.operations(Note).set('title', 'Hello').save()
        self.assertEqual(record.object_id, 'new1')

        self.transport.responses.append({'updatedAt': '2016-02-01T00:00:00.000Z'})
        with self.assertLogs('parselocal.cache.store', 'WARNING'):
            record = client.operations(Note, 'n0001').increment('votes').update()
        self.assertEqual(record.get_raw('votes'), 2)

    def test_file_storage_failure(self):
        with tempfile.TemporaryDirectory() as root:
            client = Client(transport=self.transport,
                            registry=CacheRegistry(FileBlobStore(root), scheduler=ManualScheduler()))
            client.register(Note)
            client.persistent(Note)
            self.transport.calls.clear()

            # A blob became a directory
            path = os.path.join(root, 'Note', 'n0003')
            os.remove(path)
            os.mkdir(path)

            notes = client.query(Note).equal_to('tag', 'x').list()
            self.assertEqual(len(notes), 100)
            self.assertEqual(self.transport.calls, [('GET', 'classes/Note', {'where': {'tag': 'x'}})])

    def test_corrupt(self):
        self.populate(Note)
        self.registry.blob_store.write('Note', 'n0003', b'garbage')

        with self.assertLogs('parselocal', 'WARNING'):
            self.assertEqual(self.client.query(Note).equal_to('tag', 'x').count(), 625)
        self.assertEqual(self.transport.calls, [
            ('GET', 'classes/Note', {'where': {'tag': 'x'}, 'count': 1, 'limit': 1}),
        ])
