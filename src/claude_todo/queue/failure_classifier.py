"""Deterministic CLI failure classification: usage limits vs. fatal errors."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum

DEFAULT_RESUME_DELAY_SECONDS = 300

# Matched case-sensitively, as the CLI prints them.
RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "Claude AI usage limit reached",
    "Request not allowed",
    "usage limit",
    "rate limit",
    "quota exceeded",
)

_RESUME_SENTINEL = re.compile(r"Claude AI usage limit reached\|(\d+)")
_RELATIVE_WAIT_RULES: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"(\d+)\s*(minutes?|mins?)", re.IGNORECASE), 60),
    (re.compile(r"(\d+)\s*(seconds?|secs?)", re.IGNORECASE), 1),
    (re.compile(r"(\d+)\s*(hours?|hrs?)", re.IGNORECASE), 3600),
)


class FailureKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    EXECUTION = "execution"


@dataclass(slots=True)
class FailureClassification:
    """Normalized classification of a finished CLI run."""

    kind: FailureKind
    matched_rule: str
    matched_pattern: str | None
    resume_at: int | None = None


def detect_rate_limit(text: str) -> str | None:
    """Return the first usage-limit signature found in ``text``."""

    for pattern in RATE_LIMIT_PATTERNS:
        if pattern in text:
            return pattern
    return None


def parse_resume_timestamp(text: str, *, now: int | None = None) -> int:
    """Derive the unix time after which a rate-limited run may be retried.

    An explicit ``Claude AI usage limit reached|<timestamp>`` sentinel wins;
    otherwise the first relative wait in minutes, seconds or hours (checked in
    that order) is added to ``now``. Without any hint the default is five
    minutes from ``now``.
    """

    match = _RESUME_SENTINEL.search(text)
    if match is not None:
        return int(match.group(1))

    current = int(time.time()) if now is None else now
    for pattern, multiplier in _RELATIVE_WAIT_RULES:
        match = pattern.search(text)
        if match is not None:
            return current + int(match.group(1)) * multiplier
    return current + DEFAULT_RESUME_DELAY_SECONDS


def classify_failure(
    *,
    exit_code: int,
    stdout: str,
    stderr: str,
    now: int | None = None,
) -> FailureClassification | None:
    """Classify a finished run; ``None`` means it succeeded."""

    haystack = f"{stdout}\n{stderr}"
    pattern = detect_rate_limit(haystack)
    if pattern is not None:
        return FailureClassification(
            kind=FailureKind.RATE_LIMIT,
            matched_rule="usage_limit",
            matched_pattern=pattern,
            resume_at=parse_resume_timestamp(haystack, now=now),
        )
    if exit_code != 0:
        return FailureClassification(
            kind=FailureKind.EXECUTION,
            matched_rule="non_zero_exit",
            matched_pattern=None,
        )
    return None
