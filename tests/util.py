import copy
import errno

from parselocal.cache import MemoryBlobStore
from parselocal.transport import Transport
from parselocal.util.scheduler import Scheduler, ScheduledCall


class FakeClock:
    """ A clock that only moves when told to """

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class _ManualCall(ScheduledCall):
    def __init__(self, delay, func, args):
        self.delay = delay
        self.func = func
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.func(*self.args)


class ManualScheduler(Scheduler):
    """ A scheduler that runs nothing until run_pending() is called """

    def __init__(self):
        self.calls = []

    def call_later(self, delay, func, *args):
        call = _ManualCall(delay, func, args)
        self.calls.append(call)
        return call

    @property
    def pending(self):
        return [c for c in self.calls if not c.cancelled and not c.fired]

    def run_pending(self):
        for call in self.pending:
            call.fire()


class FailingBlobStore(MemoryBlobStore):
    """ An in-memory blob store that fails on demand, like a broken disk """

    def __init__(self, clock):
        super(FailingBlobStore, self).__init__(clock)
        self.fail_reads = False
        self.fail_writes = False
        self.fail_removes = False

    def read(self, namespace, key):
        if self.fail_reads:
            raise OSError(errno.EIO, 'Input/output error')
        return super(FailingBlobStore, self).read(namespace, key)

    def write(self, namespace, key, data):
        if self.fail_writes:
            raise OSError(errno.ENOSPC, 'No space left on device')
        super(FailingBlobStore, self).write(namespace, key, data)

    def remove(self, namespace, key):
        if self.fail_removes:
            raise OSError(errno.EROFS, 'Read-only file system')
        super(FailingBlobStore, self).remove(namespace, key)


def _matches(obj: dict, where: dict) -> bool:
    """ A tiny subset of the server's `where` grammar: equality, $eq, $in, $gt, $lt, $exists, $and, $or """
    for key, condition in where.items():
        if key == '$and':
            if not all(_matches(obj, clause) for clause in condition):
                return False
            continue
        if key == '$or':
            if not any(_matches(obj, clause) for clause in condition):
                return False
            continue

        value = obj.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith('$') for k in condition):
            for op, arg in condition.items():
                if op == '$eq' and value != arg:
                    return False
                if op == '$in' and value not in arg:
                    return False
                if op == '$gt' and not (value is not None and value > arg):
                    return False
                if op == '$lt' and not (value is not None and value < arg):
                    return False
                if op == '$exists' and (value is not None) != arg:
                    return False
        elif isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


class FakeTransport(Transport):
    """ A transport that talks to an in-memory server, and logs every request

        * GET classes/<name>: served from `objects`, with `where`, `skip`, `limit`, `count`
        * Anything else: served from the `responses` queue. An exception in the queue is raised.
    """

    def __init__(self):
        #: Every request: [(method, path, params)]
        self.calls = []
        #: Objects by class name
        self.objects = {}
        #: Relation members: {(owner class, owner id, key): [member ids]}
        self.relations = {}
        #: Queued responses, for everything but class queries
        self.responses = []
        #: The current session
        self.session_token = None

    def add_objects(self, class_name, objects):
        self.objects.setdefault(class_name, []).extend(objects)

    def calls_to(self, path):
        return [c for c in self.calls if c[1] == path]

    def request(self, method, path, params=None):
        self.calls.append((method, path, copy.deepcopy(params)))

        if method == 'GET' and path.startswith('classes/') and '/' not in path[len('classes/'):]:
            return self._find(path[len('classes/'):], params or {})

        assert self.responses, 'Unexpected request: {} {}'.format(method, path)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def _find(self, class_name, params):
        if self.responses and isinstance(self.responses[0], Exception):
            raise self.responses.pop(0)

        objects = self.objects.get(class_name, [])
        where = dict(params.get('where') or {})

        # $relatedTo
        related_to = where.pop('$relatedTo', None)
        if related_to is not None:
            owner = related_to['object']
            ids = self.relations.get((owner['className'], owner['objectId'], related_to['key']), [])
            objects = [o for o in objects if o['objectId'] in ids]

        objects = [o for o in objects if _matches(o, where)]

        skip = params.get('skip', 0)
        limit = params.get('limit', 100)
        response = {'results': copy.deepcopy(objects[skip:skip + limit])}
        if params.get('count'):
            response['count'] = len(objects)
        return response

    def upload(self, path, mime_type, data):
        return self.request('POST', path, {'mime_type': mime_type, 'size': len(data)})

    def update_session(self, session_token=None):
        self.session_token = session_token
