"""Reconnect scheduling with capped exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class ReconnectPolicy:
    """Compute retry delays and own the pending retry timer.

    Delay for attempt ``n`` (1-based) is
    ``min(interval * multiplier ** (n - 1), max_interval)``.
    The attempt counter is reset by :meth:`reset` on every successful
    connection.
    """

    def __init__(
        self,
        *,
        interval: float,
        max_interval: float,
        max_attempts: int,
        multiplier: float = 2.0,
        name: str = "control-link",
    ) -> None:
        self._interval = interval
        self._max_interval = max_interval
        self._max_attempts = max_attempts
        self._multiplier = multiplier
        self._name = name
        self._attempts = 0
        self._handle: asyncio.TimerHandle | None = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self._max_attempts

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def delay_for(self, attempt: int) -> float:
        """Return the delay before the given 1-based attempt."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return min(self._interval * self._multiplier ** (attempt - 1), self._max_interval)

    def schedule(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[], None],
    ) -> float | None:
        """Arm the retry timer for the next attempt.

        Returns:
            The delay in seconds, or None when attempts are exhausted.
        """
        if self.exhausted:
            _LOGGER.warning(
                "[%s] Reconnect attempts exhausted (%d)", self._name, self._attempts
            )
            return None

        self.cancel()
        self._attempts += 1
        delay = self.delay_for(self._attempts)
        _LOGGER.info(
            "[%s] Reconnecting in %.2fs (attempt %d/%d)",
            self._name,
            delay,
            self._attempts,
            self._max_attempts,
        )
        self._handle = loop.call_later(delay, self._fire, callback)
        return delay

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()

    def cancel(self) -> None:
        """Cancel a scheduled attempt. Safe to call when nothing is scheduled."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            _LOGGER.debug("[%s] Reconnect cancelled", self._name)

    def reset(self) -> None:
        """Forget previous attempts after a successful connection."""
        self._attempts = 0
