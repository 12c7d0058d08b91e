"""Tests for the async orchestration helpers."""

import asyncio

import pytest

from helm_calendar.core.async_utils import (
    AsyncOrchestrator,
    AsyncTimeoutError,
)

pytestmark = pytest.mark.unit


class TestAsyncOrchestrator:
    def setup_method(self):
        self.orchestrator = AsyncOrchestrator(default_timeout=1.0)

    async def test_run_with_timeout_returns_result(self):
        async def work():
            return 42

        assert await self.orchestrator.run_with_timeout(work()) == 42
        assert self.orchestrator.get_health_stats()["operation_count"] == 1

    async def test_run_with_timeout_raises(self):
        with pytest.raises(AsyncTimeoutError):
            await self.orchestrator.run_with_timeout(asyncio.sleep(1), timeout=0.01)

        stats = self.orchestrator.get_health_stats()
        assert stats["timeout_count"] == 1
        assert stats["error_rate"] == 1.0

    async def test_gather_returns_exceptions_in_place(self):
        async def ok():
            return "ok"

        async def bad():
            raise ValueError("bad")

        results = await self.orchestrator.gather_with_timeout(ok(), bad(), return_exceptions=True)

        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)

    async def test_gather_timeout(self):
        with pytest.raises(AsyncTimeoutError):
            await self.orchestrator.gather_with_timeout(asyncio.sleep(1), timeout=0.01)

    async def test_run_with_timeout_counts_failures(self):
        async def broken():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await self.orchestrator.run_with_timeout(broken())

        stats = self.orchestrator.get_health_stats()
        assert stats["error_count"] == 1
        assert stats["timeout_count"] == 0
