"""
The HTTP side of the client.

Every request goes to `<server_url>/<path>`:

* GET and DELETE send their parameters in the query string. Objects and arrays (like `where`) are sent as JSON.
* POST and PUT send their parameters as a JSON body.

The response is a JSON object. Errors come as `{"code": 101, "error": "object not found"}`
and are raised as `ParseError`s. Network failures are raised as `TransportError`s.
Nothing is retried.
"""

import json
from logging import getLogger

import requests

from .exc import ParseError, TransportError

logger = getLogger(__name__)


class Transport:
    """ The interface the client talks to the server through """

    def request(self, method: str, path: str, params: dict = None) -> dict:
        """ Make a request

            :param method: GET, POST, PUT, DELETE
            :param path: Path relative to the server url, e.g. "classes/Note"
            :param params: Request parameters
            :return: The JSON response
            :raises ParseError: The server reported an error
            :raises TransportError: The request failed
        """
        raise NotImplementedError()

    def upload(self, path: str, mime_type: str, data: bytes) -> dict:
        """ Upload raw data, e.g. a file: POST `path` """
        raise NotImplementedError()

    def update_session(self, session_token: str = None):
        """ Use a session token for the following requests ; `None` to go anonymous """
        raise NotImplementedError()


class RequestsTransport(Transport):
    """ Transport over a `requests.Session`

        :param application_id: The application id
        :param rest_key: The REST API key
        :param master_key: The master key
        :param session_token: The session of a logged-in user
        :param server_url: Root URL of the REST API
        :param timeout: Request timeout, seconds
    """

    def __init__(self,
                 application_id: str = None,
                 rest_key: str = None,
                 master_key: str = None,
                 session_token: str = None,
                 server_url: str = 'https://api.parse.com/1',
                 timeout: float = 30):
        assert application_id, 'application_id is required'
        self.server_url = server_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['X-Parse-Application-Id'] = application_id
        if rest_key:
            self.session.headers['X-Parse-REST-API-Key'] = rest_key
        if master_key:
            self.session.headers['X-Parse-Master-Key'] = master_key
        self.update_session(session_token)

    def update_session(self, session_token=None):
        if session_token:
            self.session.headers['X-Parse-Session-Token'] = session_token
        else:
            self.session.headers.pop('X-Parse-Session-Token', None)

    def _url(self, path):
        return '{}/{}'.format(self.server_url, path.lstrip('/'))

    @staticmethod
    def _query_string_params(params):
        return {k: json.dumps(v) if isinstance(v, (dict, list)) else v
                for k, v in (params or {}).items()}

    def request(self, method, path, params=None):
        method = method.upper()
        logger.debug('%s %s %r', method, path, params)

        kwargs = {'timeout': self.timeout}
        if method in ('POST', 'PUT'):
            kwargs['json'] = params or {}
        else:
            kwargs['params'] = self._query_string_params(params)

        try:
            response = self.session.request(method, self._url(path), **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError('{} {} failed: {}'.format(method, path, e), source=e)
        return self._handle_response(method, path, response)

    def upload(self, path, mime_type, data):
        logger.debug('POST %s (%s, %d bytes)', path, mime_type, len(data))
        try:
            response = self.session.post(self._url(path),
                                         data=data,
                                         headers={'Content-Type': mime_type},
                                         timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError('POST {} failed: {}'.format(path, e), source=e)
        return self._handle_response('POST', path, response)

    @staticmethod
    def _handle_response(method, path, response: requests.Response) -> dict:
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError('{} {}: HTTP {}, not a JSON response'.format(method, path, response.status_code),
                                 source=e)

        # Error payload
        if isinstance(payload, dict) and 'code' in payload and 'error' in payload:
            raise ParseError.from_response(payload)

        if not response.ok:
            raise TransportError('{} {}: HTTP {}'.format(method, path, response.status_code))
        if not isinstance(payload, dict):
            raise TransportError('{} {}: the response is not a JSON object'.format(method, path))
        return payload
