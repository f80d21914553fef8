import threading
from logging import getLogger

logger = getLogger(__name__)


class ScheduledCall:
    """ A handle of a delayed call: lets you cancel it """

    def cancel(self):
        raise NotImplementedError()


class Scheduler:
    """ Runs callables after a delay

        The coalescing fetch cache arms its debounce timer through this interface,
        so that tests can fire timers by hand.
    """

    def call_later(self, delay: float, func, *args) -> ScheduledCall:
        """ Call `func(*args)` after `delay` seconds

            :return: a handle to cancel the call with
        """
        raise NotImplementedError()


class _TimerCall(ScheduledCall):
    __slots__ = ('timer',)

    def __init__(self, timer: threading.Timer):
        self.timer = timer

    def cancel(self):
        self.timer.cancel()


class ThreadingScheduler(Scheduler):
    """ Scheduler on top of `threading.Timer`: every call runs in its own daemon thread """

    def call_later(self, delay, func, *args):
        timer = threading.Timer(delay, self._run, (func, args))
        timer.daemon = True
        timer.start()
        return _TimerCall(timer)

    @staticmethod
    def _run(func, args):
        try:
            func(*args)
        except Exception:
            # Nobody is there to catch it
            logger.exception('Scheduled call %r failed', func)
