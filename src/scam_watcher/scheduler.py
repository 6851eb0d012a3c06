"""Keepalive and reconnection timers.

Timers never touch the connection. When they fire they post an ``Event``
to the owning watcher, which handles it on its own thread.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable

from .constants import (
    INITIAL_RECONNECT_DELAY,
    KEEPALIVE_INTERVAL,
    MAX_RECONNECT_ATTEMPTS,
    MAX_RECONNECT_DELAY,
    RECONNECT_JITTER,
)
from .models import Event, EventKind, ReconnectState

logger = logging.getLogger(__name__)

Post = Callable[[Event], None]


def backoff_delay(
    attempt: int,
    initial: float = INITIAL_RECONNECT_DELAY,
    cap: float = MAX_RECONNECT_DELAY,
    jitter: float = 0.0,
) -> float:
    """Delay in seconds before reconnect *attempt* (1-based).

    ``min(initial * 2**(attempt - 1) + jitter, cap)``
    """
    return min(initial * 2 ** (attempt - 1) + jitter, cap)


class KeepaliveTimer:
    """Post a KEEPALIVE event every *interval* seconds until stopped."""

    def __init__(self, post: Post, interval: float = KEEPALIVE_INTERVAL, timer_factory=threading.Timer) -> None:
        self._post = post
        self.interval = interval
        self._timer_factory = timer_factory
        self._timer = None
        self._generation: int | None = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._timer is not None

    def start(self, generation: int) -> None:
        """(Re)start for connection *generation*, cancelling any previous timer."""
        with self._lock:
            self._cancel()
            self._generation = generation
            self._arm()

    def stop(self) -> None:
        with self._lock:
            self._cancel()
            self._generation = None

    def _arm(self) -> None:
        self._timer = self._timer_factory(self.interval, self._fire, args=(self._generation,))
        self._timer.daemon = True
        self._timer.start()

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._arm()
        self._post(Event(EventKind.KEEPALIVE, generation=generation))


class ReconnectScheduler:
    """Exponential backoff with jitter, bounded by *max_attempts*.

    Only one reconnect timer is ever pending; failure signals that arrive
    while one is pending are ignored. The attempt counter only resets on a
    successful connection, so the delay reflects consecutive failures.
    """

    def __init__(
        self,
        post: Post,
        label: str,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        initial_delay: float = INITIAL_RECONNECT_DELAY,
        max_delay: float = MAX_RECONNECT_DELAY,
        jitter: float = RECONNECT_JITTER,
        timer_factory=threading.Timer,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._post = post
        self.label = label
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._timer_factory = timer_factory
        self._rng = rng
        self.state = ReconnectState()

    @property
    def attempt(self) -> int:
        return self.state.attempt

    @property
    def in_progress(self) -> bool:
        return self.state.in_progress

    @property
    def exhausted(self) -> bool:
        return self.state.exhausted

    def schedule(self) -> bool:
        """Arm the next reconnect timer. Returns False when nothing was scheduled."""
        state = self.state
        if state.in_progress:
            return False
        if state.attempt >= self.max_attempts:
            if not state.exhausted:
                logger.error("Max reconnection attempts (%d) reached. Giving up. [%s]", self.max_attempts, self.label)
            state.exhausted = True
            return False

        state.in_progress = True
        state.attempt += 1
        delay = backoff_delay(state.attempt, self.initial_delay, self.max_delay, self._rng() * self.jitter)
        logger.info(
            "Attempting to reconnect in %d seconds (attempt %d/%d)... [%s]",
            round(delay),
            state.attempt,
            self.max_attempts,
            self.label,
        )
        state.timer = self._timer_factory(delay, self._post, args=(Event(EventKind.RECONNECT),))
        state.timer.daemon = True
        state.timer.start()
        return True

    def attempt_finished(self) -> None:
        """The pending attempt has run (successfully or not)."""
        self.state.in_progress = False
        self.state.timer = None

    def reset(self) -> None:
        """Called after every successful connection."""
        self.state.attempt = 0
        self.state.exhausted = False

    def cancel(self) -> None:
        if self.state.timer is not None:
            self.state.timer.cancel()
        self.state.timer = None
        self.state.in_progress = False
