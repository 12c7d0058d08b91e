"""Bounded polling with backoff and an explicit terminal state.

A Poller repeatedly awaits a check until its result satisfies a predicate,
the attempt budget runs out, or it is cancelled. Each run ends in exactly one
terminal state, which makes cancellation and tests deterministic.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollState(str, Enum):
    """Lifecycle states of a poll run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (PollState.PENDING, PollState.RUNNING)


@dataclass
class PollResult(Generic[T]):
    """Outcome of a poll run."""

    state: PollState
    value: Optional[T]
    attempts: int
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PollState.SUCCEEDED


class Poller(Generic[T]):
    """Polls an async check until done, with bounded exponential backoff."""

    def __init__(
        self,
        check: Callable[[], Awaitable[T]],
        is_done: Callable[[T], bool],
        max_attempts: int = 5,
        interval: float = 0.5,
        backoff_multiplier: float = 2.0,
        max_interval: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize a poller.

        Args:
            check: Coroutine function producing the current value
            is_done: Predicate deciding whether the value is final
            max_attempts: Total checks allowed before giving up
            interval: Delay before the second check, in seconds
            backoff_multiplier: Delay multiplier per attempt
            max_interval: Delay cap in seconds
            sleep: Sleep function, injectable for tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._check = check
        self._is_done = is_done
        self.max_attempts = max_attempts
        self.interval = interval
        self.backoff_multiplier = backoff_multiplier
        self.max_interval = max_interval
        self._sleep = sleep

        self._state = PollState.PENDING
        self._cancel_requested = False
        self._listeners: list[Callable[[int, T], None]] = []

    @property
    def state(self) -> PollState:
        return self._state

    def subscribe(self, listener: Callable[[int, T], None]) -> Callable[[], None]:
        """Register a listener called with (attempt, value) after each check.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def cancel(self) -> None:
        """Stop polling; the run ends in CANCELLED at its next step."""
        self._cancel_requested = True

    async def run(self) -> PollResult[T]:
        """Poll until a terminal state is reached."""
        if self._state is not PollState.PENDING:
            raise RuntimeError(f"Poller already used (state={self._state.value})")
        self._state = PollState.RUNNING

        delay = self.interval
        value: Optional[T] = None
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            if self._cancel_requested:
                return self._finish(PollState.CANCELLED, value, attempt - 1, last_error)

            try:
                value = await self._check()
                last_error = None
            except Exception as e:
                last_error = e
                logger.warning("Poll attempt %d/%d failed: %s", attempt, self.max_attempts, e)
            else:
                for listener in list(self._listeners):
                    listener(attempt, value)
                if self._is_done(value):
                    return self._finish(PollState.SUCCEEDED, value, attempt, None)

            if attempt < self.max_attempts:
                await self._sleep(delay)
                delay = min(delay * self.backoff_multiplier, self.max_interval)

        final = PollState.FAILED if last_error is not None else PollState.EXHAUSTED
        return self._finish(final, value, self.max_attempts, last_error)

    def _finish(
        self,
        state: PollState,
        value: Optional[T],
        attempts: int,
        error: Optional[BaseException],
    ) -> PollResult[T]:
        self._state = state
        logger.debug("Poll finished: state=%s attempts=%d", state.value, attempts)
        return PollResult(state=state, value=value, attempts=attempts, error=error)
