from __future__ import annotations

import os
import random
import signal
import threading

import allure
import pytest

from claude_todo.queue.shutdown import (
    ShutdownToken,
    Sleeper,
    format_remaining,
    install_signal_handlers,
)

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Shutdown"),
]


def test_token_keeps_first_reason() -> None:
    token = ShutdownToken()
    assert not token.is_set()
    assert token.reason is None

    token.request_stop("Received SIGINT")
    token.request_stop("Received SIGTERM")

    assert token.is_set()
    assert token.reason == "Received SIGINT"
    assert token.wait(0)


def test_sleep_returns_early_once_stopped() -> None:
    sleeper = Sleeper()
    assert sleeper.sleep(0)

    sleeper.token.request_stop("test")

    assert not sleeper.sleep(30)
    assert not sleeper.sleep(0)


def test_countdown_reports_each_second() -> None:
    now = {"value": 0.0}
    ticks: list[int] = []

    class _InstantSleeper(Sleeper):
        def sleep(self, seconds: float) -> bool:
            now["value"] += seconds
            return True

    sleeper = _InstantSleeper(clock=lambda: now["value"])

    assert sleeper.countdown(3, on_tick=ticks.append)
    assert ticks == [3, 2, 1]


def test_countdown_stops_on_shutdown() -> None:
    sleeper = Sleeper()
    ticks: list[int] = []

    def _stop(remaining: int) -> None:
        ticks.append(remaining)
        sleeper.token.request_stop("test")

    assert not sleeper.countdown(60, on_tick=_stop)
    assert ticks == [60]


def test_random_sleep_uses_inclusive_range() -> None:
    recorded: list[float] = []

    class _RecordingSleeper(Sleeper):
        def sleep(self, seconds: float) -> bool:
            recorded.append(seconds)
            return True

    sleeper = _RecordingSleeper(rng=random.Random(1))
    for _ in range(20):
        assert sleeper.random_sleep(2, 4)

    assert set(recorded) <= {2, 3, 4}


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "00:00"), (59, "00:59"), (61, "01:01"), (3600, "60:00"), (-5, "00:00")],
)
def test_format_remaining(seconds: int, expected: str) -> None:
    assert format_remaining(seconds) == expected


@pytest.mark.skipif(not hasattr(signal, "SIGTERM"), reason="POSIX signals required")
def test_signal_handler_sets_token() -> None:
    token = ShutdownToken()
    original = signal.getsignal(signal.SIGTERM)

    with install_signal_handlers(token):
        os.kill(os.getpid(), signal.SIGTERM)
        assert token.wait(5)

    assert token.reason == "Received SIGTERM"
    assert signal.getsignal(signal.SIGTERM) == original


def test_signal_handlers_skip_non_main_thread() -> None:
    token = ShutdownToken()
    entered: list[bool] = []

    def _run() -> None:
        with install_signal_handlers(token):
            entered.append(True)

    thread = threading.Thread(target=_run)
    thread.start()
    thread.join(timeout=5)

    assert entered == [True]
    assert not token.is_set()
