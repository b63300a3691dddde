"""Unit tests for readiness polling."""

import pytest

from app.core.poller import PollOutcome, ProgressivePoller, index_readiness
from app.core.exceptions import TransientRemoteError
from app.models.compliance import IndexStatusSnapshot


def snapshot(status="in_progress", in_progress=1, completed=0, failed=0):
    return IndexStatusSnapshot(
        status=status, in_progress=in_progress, completed=completed, failed=failed
    )


class RecordingObserver:
    def __init__(self):
        self.statuses = []

    def on_status_change(self, target_id, snap):
        self.statuses.append(snap.status)


class TestIndexReadiness:

    def test_completed_when_nothing_in_progress_or_failed(self):
        assert index_readiness(snapshot("completed", 0, 1, 0)) is PollOutcome.COMPLETED

    def test_failed_when_any_file_failed(self):
        assert index_readiness(snapshot("completed", 0, 0, 1)) is PollOutcome.FAILED

    def test_still_building(self):
        assert index_readiness(snapshot("in_progress", 1, 0, 0)) is None

    def test_empty_index_is_not_ready(self):
        assert index_readiness(snapshot("completed", 0, 0, 0)) is None


class TestProgressivePoller:

    @pytest.mark.asyncio
    async def test_returns_completed_after_progress(self, fake_clock):
        responses = iter([
            snapshot("in_progress", 1, 0, 0),
            snapshot("in_progress", 1, 0, 0),
            snapshot("completed", 0, 1, 0),
        ])

        async def fetch(target_id):
            return next(responses)

        observer = RecordingObserver()
        poller = ProgressivePoller(fetch, sleep=fake_clock.sleep, clock=fake_clock)

        outcome = await poller.poll("vs-1", base_interval=3, timeout=600, observer=observer)

        assert outcome is PollOutcome.COMPLETED
        assert fake_clock.sleeps == [3, 3]
        # One notification per distinct status
        assert observer.statuses == ["in_progress", "completed"]

    @pytest.mark.asyncio
    async def test_returns_failed(self, fake_clock):
        async def fetch(target_id):
            return snapshot("completed", 0, 0, 1)

        poller = ProgressivePoller(fetch, sleep=fake_clock.sleep, clock=fake_clock)

        assert await poller.poll("vs-1", base_interval=3, timeout=600) is PollOutcome.FAILED

    @pytest.mark.asyncio
    async def test_times_out(self, fake_clock):
        async def fetch(target_id):
            return snapshot("in_progress", 1, 0, 0)

        poller = ProgressivePoller(fetch, sleep=fake_clock.sleep, clock=fake_clock)

        outcome = await poller.poll("vs-1", base_interval=3, timeout=30)

        assert outcome is PollOutcome.TIMEOUT
        assert fake_clock.now > 30

    @pytest.mark.asyncio
    async def test_interval_relaxes_after_first_minute(self, fake_clock):
        async def fetch(target_id):
            return snapshot("in_progress", 1, 0, 0)

        poller = ProgressivePoller(fetch, sleep=fake_clock.sleep, clock=fake_clock)

        await poller.poll("vs-1", base_interval=3, timeout=120)

        assert set(fake_clock.sleeps[:20]) == {3}
        assert fake_clock.sleeps[-1] == 6

    def test_relaxed_interval_is_capped(self):
        assert ProgressivePoller.next_interval(8, elapsed=90) == 10
        assert ProgressivePoller.next_interval(8, elapsed=10) == 8

    @pytest.mark.asyncio
    async def test_fetch_errors_do_not_stop_polling(self, fake_clock):
        calls = []

        async def fetch(target_id):
            calls.append(target_id)
            if len(calls) == 1:
                raise TransientRemoteError("connection reset")
            return snapshot("completed", 0, 2, 0)

        poller = ProgressivePoller(fetch, sleep=fake_clock.sleep, clock=fake_clock)

        assert await poller.poll("vs-1", base_interval=3, timeout=600) is PollOutcome.COMPLETED
        assert len(calls) == 2
