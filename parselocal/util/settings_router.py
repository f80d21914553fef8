from typing import Callable, Tuple

from .inspect import pluck_kwargs_from


class SettingsRouter:
    """ Settings keeper for the Client

        This is essentially a helper which will feed the correct kwargs to every component.

        Components receive settings as kwargs to their __init__() methods, and those kwargs have unique names.
        This class keeps all settings as a single, flat dict, and gives each component only the settings it wants.
    """

    def __init__(self, settings: dict):
        """ Store the settings for every component

            :param settings: dict of component kwargs
        """
        assert isinstance(settings, dict)

        #: Settings dict
        self._settings = settings  # we don't make a copy, because we don't modify it

        #: kwarg names for every component: dict[name] = set()
        self._component_kwargs_names = {}

        #: all kwargs names (to identify invalid ones)
        self._all_known_kwargs_names = set()

    def get_settings(self, component_name: str, for_func: Callable, skip: Tuple[str] = ()) -> dict:
        """ Get settings for the given component

            The function is analyzed in order to know its kwargs and their default values.
            Then, we take the matching keys from the settings dict, take defaults from the argument defaults,
            and make it all into `kwargs` for the function.

            :param component_name: Name of the component, for error messages
            :param for_func: The callable that will receive the kwargs: usually, the class' __init__
            :param skip: kwargs that the caller provides itself
        """
        kwargs = pluck_kwargs_from(self._settings, for_func=for_func, skip=skip)

        # Store the data that we'll need
        self._component_kwargs_names[component_name] = set(kwargs.keys())
        self._all_known_kwargs_names.update(kwargs.keys())

        # Done
        return kwargs

    def raise_if_invalid_settings(self):
        """ Check whether there were any typos in setting names

            After all components were initialized, every kwarg should have been used by one of them.
            If not, there must be a typo.

            :raises: KeyError: Invalid settings provided
        """
        invalid_keys = set(self._settings.keys()) - self._all_known_kwargs_names

        # Raise?
        if invalid_keys:
            raise KeyError('Invalid settings were provided for the client: {}'
                           .format(', '.join(sorted(invalid_keys))))
