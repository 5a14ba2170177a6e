"""Cooperative cancellation for worker suspension points."""

from __future__ import annotations

import logging
import random
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ShutdownToken:
    """Thread-safe stop flag shared by the worker, claimer and sleeper."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def request_stop(self, reason: str) -> None:
        if not self._event.is_set():
            self._reason = reason
            logger.info("Shutdown requested: %s", reason)
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


class Sleeper:
    """Sleeps that return early once the token is set.

    Every method returns ``True`` when the full duration elapsed and ``False``
    when it was cut short by a shutdown request.
    """

    def __init__(
        self,
        token: ShutdownToken | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token = token or ShutdownToken()
        self._random = rng or random.Random()  # noqa: S311
        self._clock = clock

    def sleep(self, seconds: float) -> bool:
        if seconds <= 0:
            return not self.token.is_set()
        return not self.token.wait(seconds)

    def countdown(self, seconds: int, on_tick: Callable[[int], None] | None = None) -> bool:
        """Sleep one second at a time, reporting the remaining seconds."""

        deadline = self._clock() + seconds
        remaining = seconds
        while remaining > 0:
            if on_tick is not None:
                on_tick(remaining)
            if not self.sleep(min(1.0, max(0.0, deadline - self._clock()))):
                return False
            remaining = max(0, int(round(deadline - self._clock())))
        return not self.token.is_set()

    def random_sleep(self, min_seconds: int, max_seconds: int) -> bool:
        delay = self._random.randint(min_seconds, max_seconds)
        logger.info("Adding random delay of %d seconds", delay)
        return self.sleep(delay)


@contextmanager
def install_signal_handlers(token: ShutdownToken) -> Iterator[None]:
    """Route SIGINT/SIGTERM into ``token`` for the duration of the block."""

    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        token.request_stop(f"Received {name}")

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def format_remaining(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"
