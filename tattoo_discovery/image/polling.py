"""Bounded polling and cancellation shared by asynchronous provider adapters.

Processing flow (`poll_until`):
    1. Check the cancel token.
    2. Wait one fixed interval (interruptible by the token).
    3. Fetch the job status.
    4. Return as soon as the status is terminal; otherwise repeat.
    5. After `max_attempts` fetches, raise `ProviderTimeout`.

Defaults:
    1-second interval and a 60-attempt ceiling, i.e. roughly one minute per
    provider before the pipeline moves on.

Cancellation:
    `CancelToken` combines an explicit cancel flag with an optional absolute
    deadline. Waiting on the token returns early when it is cancelled, so an
    abandoned request does not keep sleeping for the rest of its interval.
    `aborted` separates an explicit cancel (request abandoned) from a deadline
    that simply ran out.
"""

import threading
import time

from tattoo_discovery.image.errors import ProviderCancelled, ProviderTimeout


DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_ATTEMPTS = 60


class CancelToken:
    """Thread-safe cancellation flag with an optional deadline.

    `cancel()` marks the token aborted; reaching the deadline only marks it
    cancelled. Child tokens share the abort flag and may end earlier.
    """

    def __init__(self, timeout=None, clock=time.monotonic, event=None):
        self._event = event if event is not None else threading.Event()
        self._clock = clock
        self._deadline = None if timeout is None else clock() + timeout

    def cancel(self):
        self._event.set()

    @property
    def aborted(self) -> bool:
        """True only after an explicit `cancel()` on this token or its parent."""
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self):
        """Seconds left before the deadline, or `None` without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def child(self, reserve=0.0):
        """Token that fires `reserve` seconds before this one's deadline.

        Aborting either token aborts both.
        """
        token = CancelToken(clock=self._clock, event=self._event)
        if self._deadline is not None:
            token._deadline = self._deadline - reserve
        return token

    def wait(self, seconds) -> bool:
        """Sleep up to `seconds`; return `True` if the token fired meanwhile."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled


def poll_until(
    fetch,
    is_done,
    *,
    interval=DEFAULT_POLL_INTERVAL,
    max_attempts=DEFAULT_MAX_ATTEMPTS,
    sleep=None,
    cancel_token=None,
    description="job",
):
    """Poll `fetch()` until `is_done(value)` holds or the ceiling is reached.

    Args:
        fetch: Zero-argument callable returning the current job status.
        is_done: Predicate on the fetched value. It may raise to signal a
            terminal failure; the exception propagates unchanged.
        interval: Fixed delay before each fetch, in seconds.
        max_attempts: Hard cap on the number of fetches.
        sleep: Optional replacement for the delay (tests pass a fake).
            Without it the delay waits on `cancel_token` when one is given,
            else `time.sleep`.
        cancel_token: Optional `CancelToken` checked before every attempt.
        description: Label used in timeout/cancel messages.

    Returns:
        The first fetched value for which `is_done` returned true.

    Raises:
        ProviderTimeout: `max_attempts` fetches without a terminal status.
        ProviderCancelled: the cancel token fired.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for _ in range(max_attempts):
        if cancel_token is not None and cancel_token.cancelled:
            raise ProviderCancelled(f"{description} cancelled")

        if sleep is not None:
            sleep(interval)
        elif cancel_token is not None:
            if cancel_token.wait(interval):
                raise ProviderCancelled(f"{description} cancelled")
        else:
            time.sleep(interval)

        value = fetch()
        if is_done(value):
            return value

    raise ProviderTimeout(
        f"{description} timed out after {max_attempts} polls "
        f"({max_attempts * interval:g}s)"
    )
