from .inspect import pluck_kwargs_from
from .settings_dict import ParseSettingsDict
from .settings_router import SettingsRouter
from .scheduler import Scheduler, ScheduledCall, ThreadingScheduler
