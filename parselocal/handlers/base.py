class QueryHandlerBase:
    """ An implementation of a handler for Query

        Every subclass handles a single section of the query: filtering, sorting, paging, ...
        Each section can be executed two ways:

        * remotely: `compose_params()` puts the section into the request parameters;
        * locally: `apply_local()` applies it to a list of cached records.
    """

    #: Name of the request parameter that this handler produces
    param_name = None

    def __init__(self):
        # Has the input() method been called already?
        self.input_received = False

        #: Query bound to this object. It may remain uninitialized.
        self.query = None

    def with_query(self, query):
        """ Bind this object with a Query

            :type query: parselocal.query.Query
        """
        self.query = query
        return self

    def __copy__(self):
        """ Handlers are copied when a query is copied: their state is not shared """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        return result

    def input(self, value):
        """ Receive the input for this section

            :return: self
        """
        self.input_received = True
        return self

    def compose_params(self, params: dict) -> dict:
        """ Put this section into the request parameters (remote execution)

            :param params: Request parameters to modify
            :return: params
        """
        raise NotImplementedError()

    def allows_local_search(self) -> bool:
        """ Can this section be executed against the local cache? """
        return True

    def apply_local(self, records: list) -> list:
        """ Apply this section to a list of cached records (local execution)

            :param records: list of Record
            :return: list of Record
        """
        raise NotImplementedError()
