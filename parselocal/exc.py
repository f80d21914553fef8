from enum import IntEnum


class BaseParseException(Exception):
    pass


# region Cache errors

class CacheError(BaseParseException):
    """ The local cache could not serve a request

        These are never surfaced to the application: the caller falls back to the network.
    """


class Expired(CacheError):
    """ A cached blob is older than the class' `expire_after` """

    def __init__(self, namespace: str, key: str, age: float):
        self.namespace = namespace
        self.key = key
        self.age = age

        super(Expired, self).__init__(
            'Cached "{namespace}/{key}" has expired: {age:.1f} secs old'.format(
                namespace=namespace,
                key=key,
                age=age)
        )


class NotFound(CacheError):
    """ There is no such blob in the cache """

    def __init__(self, namespace: str, key: str):
        self.namespace = namespace
        self.key = key

        super(NotFound, self).__init__(
            'Cached "{namespace}/{key}" not found'.format(namespace=namespace, key=key)
        )


class WrongFormat(CacheError):
    """ A blob was found, but it does not contain what we expect """

    def __init__(self, namespace: str, key: str, expected: str):
        self.namespace = namespace
        self.key = key
        self.expected = expected

        super(WrongFormat, self).__init__(
            'Cached "{namespace}/{key}" is not {expected}'.format(
                namespace=namespace,
                key=key,
                expected=expected)
        )


class StorageError(CacheError):
    """ The blob store failed: I/O, database or driver errors """

    def __init__(self, namespace: str, key: str, source: BaseException):
        self.namespace = namespace
        self.key = key
        self.source = source

        super(StorageError, self).__init__(
            'Cache storage failed on "{namespace}/{key}": {source!r}'.format(
                namespace=namespace,
                key=key,
                source=source)
        )

# endregion


class SessionFailure(BaseParseException):
    """ The server did not give us a session token """


class TransportError(BaseParseException):
    """ Network-level failure: connection errors, timeouts, non-JSON responses """

    def __init__(self, message: str, source: BaseException = None):
        self.source = source
        super(TransportError, self).__init__(message)


class InvalidQueryError(BaseParseException):
    """ Invalid input provided by the developer """

    def __init__(self, err: str):
        super(InvalidQueryError, self).__init__('Query error: {err}'.format(err=err))


class RuntimeQueryError(BaseParseException):
    """ A query was evaluated in a state that does not allow it

        Example: matching a record against a sub-query that was never resolved
    """


# region Remote errors

class ErrorCode(IntEnum):
    """ Error codes reported by the server """
    OTHER_CAUSE = -1
    INTERNAL_SERVER_ERROR = 1
    CONNECTION_FAILED = 100
    OBJECT_NOT_FOUND = 101
    INVALID_QUERY = 102
    INVALID_CLASS_NAME = 103
    MISSING_OBJECT_ID = 104
    INVALID_KEY_NAME = 105
    INVALID_POINTER = 106
    INVALID_JSON = 107
    COMMAND_UNAVAILABLE = 108
    NOT_INITIALIZED = 109
    INCORRECT_TYPE = 111
    INVALID_CHANNEL_NAME = 112
    PUSH_MISCONFIGURED = 115
    OBJECT_TOO_LARGE = 116
    OPERATION_FORBIDDEN = 119
    CACHE_MISS = 120
    INVALID_NESTED_KEY = 121
    INVALID_FILE_NAME = 122
    INVALID_ACL = 123
    TIMEOUT = 124
    INVALID_EMAIL_ADDRESS = 125
    DUPLICATE_VALUE = 137
    INVALID_ROLE_NAME = 139
    EXCEEDED_QUOTA = 140
    SCRIPT_FAILED = 141
    VALIDATION_ERROR = 142
    FILE_DELETE_FAILURE = 153
    REQUEST_LIMIT_EXCEEDED = 155
    INVALID_EVENT_NAME = 160
    USERNAME_MISSING = 200
    PASSWORD_MISSING = 201
    USERNAME_TAKEN = 202
    EMAIL_TAKEN = 203
    EMAIL_MISSING = 204
    EMAIL_NOT_FOUND = 205
    SESSION_MISSING = 206
    MUST_CREATE_USER_THROUGH_SIGNUP = 207
    ACCOUNT_ALREADY_LINKED = 208
    INVALID_SESSION_TOKEN = 209


class ParseError(BaseParseException):
    """ An error reported by the server: `{"code": int, "error": str}` """

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super(ParseError, self).__init__('{message} (code {code})'.format(message=message, code=code))

    @classmethod
    def from_response(cls, payload: dict) -> 'ParseError':
        """ Build the right error from a server error payload

            Known codes map onto `ErrorCode` ; the rest become an `UncategorizedError`
        """
        code, message = payload.get('code'), payload.get('error', '')
        try:
            code = ErrorCode(code)
        except ValueError:
            return UncategorizedError(code, message)

        if code == ErrorCode.OBJECT_NOT_FOUND:
            return ObjectNotFound(message)
        return cls(code, message)


class ObjectNotFound(ParseError):
    """ The object does not exist, or is not visible to this session """

    def __init__(self, message: str = 'Object not found'):
        super(ObjectNotFound, self).__init__(ErrorCode.OBJECT_NOT_FOUND, message)


class UncategorizedError(ParseError):
    """ A server error with a code we do not know about """

# endregion
