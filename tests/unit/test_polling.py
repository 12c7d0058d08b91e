"""Tests for the bounded Poller."""

import pytest

from helm_calendar.core.polling import Poller, PollState

pytestmark = pytest.mark.unit


class SequenceCheck:
    """Async check returning successive values; exceptions are raised."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        if isinstance(value, Exception):
            raise value
        return value


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


class TestPoller:
    async def test_succeeds_when_predicate_holds(self, sleep):
        check = SequenceCheck(1, 2, 3)
        poller = Poller(check, lambda v: v >= 2, max_attempts=5, interval=0.5, sleep=sleep)

        result = await poller.run()

        assert result.state is PollState.SUCCEEDED
        assert result.succeeded
        assert result.value == 2
        assert result.attempts == 2
        assert sleep.delays == [0.5]

    async def test_exhausted_after_budget(self, sleep):
        poller = Poller(SequenceCheck(0), lambda v: v > 0, max_attempts=4, interval=1, max_interval=3, sleep=sleep)

        result = await poller.run()

        assert result.state is PollState.EXHAUSTED
        assert result.attempts == 4
        assert result.value == 0
        assert sleep.delays == [1, 2, 3]

    async def test_failed_when_last_attempt_raises(self, sleep):
        poller = Poller(SequenceCheck(0, RuntimeError("down")), lambda v: v > 0, max_attempts=2, sleep=sleep)

        result = await poller.run()

        assert result.state is PollState.FAILED
        assert isinstance(result.error, RuntimeError)
        assert result.value == 0

    async def test_recovers_after_transient_error(self, sleep):
        poller = Poller(SequenceCheck(RuntimeError("blip"), 5), lambda v: v == 5, max_attempts=3, sleep=sleep)

        result = await poller.run()

        assert result.state is PollState.SUCCEEDED
        assert result.error is None

    async def test_cancel_before_next_attempt(self):
        check = SequenceCheck(0)
        poller = Poller(check, lambda v: False, max_attempts=10)

        async def cancel_during_sleep(_delay):
            poller.cancel()

        poller._sleep = cancel_during_sleep
        result = await poller.run()

        assert result.state is PollState.CANCELLED
        assert result.attempts == 1
        assert check.calls == 1

    async def test_listener_and_unsubscribe(self, sleep):
        seen = []
        poller = Poller(SequenceCheck(1, 2), lambda v: v == 2, sleep=sleep)
        unsubscribe = poller.subscribe(lambda attempt, value: seen.append((attempt, value)))

        await poller.run()
        unsubscribe()
        unsubscribe()

        assert seen == [(1, 1), (2, 2)]

    async def test_single_use(self, sleep):
        poller = Poller(SequenceCheck(1), lambda v: True, sleep=sleep)
        await poller.run()

        assert poller.state.is_terminal
        with pytest.raises(RuntimeError):
            await poller.run()

    def test_max_attempts_validated(self):
        with pytest.raises(ValueError):
            Poller(SequenceCheck(1), lambda v: True, max_attempts=0)
