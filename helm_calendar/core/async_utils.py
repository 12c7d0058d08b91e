"""Async orchestration helpers for helm_calendar.

Every collaborator call (fetch tasks, fetch todos, fetch recurring parents,
materialize) is an independent awaitable with no ordering guarantee. This
module provides the timeout and gather patterns the engine uses to
combine them.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncOrchestratorError(Exception):
    """Base exception for AsyncOrchestrator errors."""


class AsyncTimeoutError(AsyncOrchestratorError):
    """Raised when async operation exceeds timeout."""


class AsyncOrchestrator:
    """Timeout and gather helpers with simple operation accounting."""

    def __init__(self, default_timeout: float = 30.0):
        """Initialize async orchestrator.

        Args:
            default_timeout: Default timeout for operations in seconds
        """
        self.default_timeout = default_timeout

        self._operation_count = 0
        self._error_count = 0
        self._timeout_count = 0

    def _record_operation(self, success: bool = True, timeout: bool = False) -> None:
        self._operation_count += 1
        if not success:
            self._error_count += 1
        if timeout:
            self._timeout_count += 1

    async def run_with_timeout(
        self,
        coro: Awaitable[T],
        timeout: Optional[float] = None,
    ) -> T:
        """Run an awaitable with a timeout.

        Raises:
            AsyncTimeoutError: If the timeout elapses first
        """
        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = await asyncio.wait_for(coro, timeout=effective_timeout)
        except asyncio.TimeoutError as e:
            self._record_operation(success=False, timeout=True)
            logger.warning("Operation timed out after %.1fs", effective_timeout)
            raise AsyncTimeoutError(f"Operation exceeded timeout of {effective_timeout}s") from e
        except Exception:
            self._record_operation(success=False)
            raise
        self._record_operation(success=True)
        return result

    async def gather_with_timeout(
        self,
        *coroutines: Awaitable[Any],
        timeout: Optional[float] = None,
        return_exceptions: bool = False,
    ) -> list[Any]:
        """Gather awaitables under one overall timeout.

        With ``return_exceptions=True`` a failing awaitable yields its
        exception in the result list instead of aborting the others.

        Raises:
            AsyncTimeoutError: If the overall timeout elapses
        """
        gather_future = asyncio.gather(*coroutines, return_exceptions=return_exceptions)
        try:
            return list(await self.run_with_timeout(gather_future, timeout=timeout))
        except AsyncTimeoutError:
            gather_future.cancel()
            raise

    def get_health_stats(self) -> dict[str, Any]:
        """Operation counters for monitoring."""
        error_rate = self._error_count / self._operation_count if self._operation_count else 0.0
        return {
            "operation_count": self._operation_count,
            "error_count": self._error_count,
            "timeout_count": self._timeout_count,
            "error_rate": error_rate,
        }
