"""Exponential backoff for durable queue retries."""

from __future__ import annotations

import random

from offline_api import constants


def compute_wait(attempt: int, base_ms: float, max_ms: int) -> float:
    """Return base * 2^attempt clamped to max_ms."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return min(base_ms * (2 ** attempt), max_ms)


class RequestThrottle:
    """
    Retry wait tracker for the entry currently at the head of the queue.

    The first wait after a success is drawn at random between min_wait_ms and
    max_random_wait_ms so clients do not retry in lockstep; each further
    failure doubles it until max_wait_ms. reset() after any success.
    """

    def __init__(
        self,
        min_wait_ms: int = constants.MIN_RETRY_WAIT_TIME_MS,
        max_random_wait_ms: int = constants.MAX_RANDOM_RETRY_WAIT_TIME_MS,
        max_wait_ms: int = constants.MAX_RETRY_WAIT_TIME_MS,
        rng: random.Random | None = None,
    ) -> None:
        self.min_wait_ms = min_wait_ms
        self.max_random_wait_ms = max_random_wait_ms
        self.max_wait_ms = max_wait_ms
        self._rng = rng or random.Random()
        self._base_ms = 0.0
        self._attempt = 0
        self._last_wait_ms = 0.0

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_wait(self) -> float:
        """Compute the wait before the next retry and advance the attempt counter."""
        if self._attempt == 0:
            self._base_ms = self._rng.uniform(self.min_wait_ms, self.max_random_wait_ms)
        self._last_wait_ms = compute_wait(self._attempt, self._base_ms, self.max_wait_ms)
        self._attempt += 1
        return self._last_wait_ms

    def get_last_request_wait_time(self) -> float:
        """Milliseconds chosen by the most recent next_wait() (0 after reset)."""
        return self._last_wait_ms

    def reset(self) -> None:
        self._base_ms = 0.0
        self._attempt = 0
        self._last_wait_ms = 0.0
