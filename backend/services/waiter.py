"""
Waiter - periodic polling with an optional deadline and a stop event

Used for:
- polling an execution unit until it stops running
- polling a source job in comparison mode
- pacing between repair attempts

Waiting happens on a threading.Event, so a shutdown wakes every waiter
immediately instead of after its current interval.
"""
import threading
import time
from typing import Callable, Optional, TypeVar

from services.errors import WaitTimeout, WaitCancelled

T = TypeVar("T")


class Waiter:
    """
    Args:
        interval: Seconds between checks
        timeout: Give up after this many seconds (None = wait forever)
        stop_event: Set to cancel the wait
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        interval: float,
        timeout: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = max(0.0, interval)
        self.timeout = timeout
        self.stop_event = stop_event or threading.Event()
        self.clock = clock

    def sleep(self, seconds: Optional[float] = None) -> None:
        """Sleep one interval (or `seconds`); raises WaitCancelled on shutdown"""
        if self.stop_event.wait(self.interval if seconds is None else max(0.0, seconds)):
            raise WaitCancelled()

    def poll(self, fetch: Callable[[], T], done: Callable[[T], bool]) -> T:
        """
        Call fetch() every interval until done(value) is true

        The first check happens after one interval, matching how execution
        units need a moment to start.

        Returns:
            The value that satisfied done()

        Raises:
            WaitTimeout: deadline elapsed first
            WaitCancelled: stop_event was set
        """
        started = self.clock()
        while True:
            self.sleep()
            value = fetch()
            if done(value):
                return value
            waited = self.clock() - started
            if self.timeout is not None and waited >= self.timeout:
                raise WaitTimeout(waited)
