from .inspect import pluck_kwargs_from


class ParseSettingsDict(dict):
    """ Client settings container.

        Is used for nice autocompletion and documentation purposes mostly.

        The keyword settings in this object are just plain kwargs names
        for every component's __init__ method: the transport, the cache registry, the query engine.
        They are fed to the components by SettingsRouter, each one receiving only the settings it understands.
    """

    def __init__(self,
                 # --- transport
                 application_id: str = None,
                 rest_key: str = None,
                 master_key: str = None,
                 session_token: str = None,
                 server_url: str = 'https://api.parse.com/1',
                 timeout: float = 30,
                 # --- blob store
                 cache_root: str = None,
                 cache_url: str = None,
                 # --- cache
                 fetch_debounce: float = 0.25,
                 # --- engine
                 page_size: int = 1000,
                 default_limit: int = 100,
                 ):
        """ The client has a number of settings that configure its transport and its cache.

        Example:
            ```python
            from parselocal import Client, ParseSettingsDict

            client = Client(ParseSettingsDict(
                application_id='...',
                rest_key='...',
                cache_root='/var/cache/myapp',
            ))
            ```

        Args:
            application_id (str): (for: transport)
                The application id, sent with every request as `X-Parse-Application-Id`
            rest_key (str): (for: transport)
                The REST API key, sent as `X-Parse-REST-API-Key`
            master_key (str): (for: transport)
                The master key, sent as `X-Parse-Master-Key`. Bypasses ACLs: never ship it to end users.
            session_token (str): (for: transport)
                The session of a logged-in user, sent as `X-Parse-Session-Token`
            server_url (str): (for: transport)
                Root URL of the REST API
            timeout (float): (for: transport)
                Request timeout, in seconds. This is the only timeout there is.
            cache_root (str): (for: blob store)
                Keep the local cache in this directory: one sub-directory per class.
            cache_url (str): (for: blob store)
                Keep the local cache in an SQL database, given as an SQLAlchemy URL.
                When neither `cache_root` nor `cache_url` is given, the cache lives in memory.
            fetch_debounce (float): (for: cache)
                Get-by-id requests made within this window (seconds) go out as a single request.
            page_size (int): (for: engine)
                The size of a page when walking a whole class: populating the cache, `each()`, sub-queries.
                The server never returns more than 1000.
            default_limit (int): (for: engine)
                The number of records a local query returns when no limit is given.
                It has to match the server's default: 100.
        """
        super(ParseSettingsDict, self).__init__()
        self.update({k: v
                     for k, v in locals().items()
                     if k not in {'__class__', 'self'}})

    def and_more(self, **settings):
        """ Copy the object and add more settings to it """
        return self.__class__(**{**self, **settings})

    @classmethod
    def pluck_from(cls, dict, skip=()):
        """ Initialize the class by plucking kwargs from a dictionary.

            Unknown keys are ignored.
        """
        kwargs = pluck_kwargs_from(dict,
                                   for_func=cls.__init__,
                                   skip=skip
                                   )
        return cls(**kwargs)
