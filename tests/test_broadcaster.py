"""Tests for the in-process progress broadcaster."""

import asyncio

import pytest

from lead_intel.progress.broadcaster import ProgressBroadcaster


async def _collect(sub, timeout=1.0):
    async def drain():
        return [event async for event in sub]
    return await asyncio.wait_for(drain(), timeout)


class TestPublishSubscribe:
    @pytest.mark.asyncio
    async def test_live_events_end_at_terminal_status(self):
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(1)

        broadcaster.publish(1, "Discovering sources...", status="DISCOVERING")
        broadcaster.publish(1, "Found 8 sources")
        broadcaster.publish(1, "Research complete", status="COMPLETED")

        events = await _collect(sub)

        assert [e.message for e in events] == [
            "Discovering sources...", "Found 8 sources", "Research complete",
        ]
        assert events[-1].status == "COMPLETED"
        assert broadcaster.subscriber_count(1) == 0

    @pytest.mark.asyncio
    async def test_jobs_are_isolated(self):
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(1)

        broadcaster.publish(2, "other job", status="FAILED")
        broadcaster.publish(1, "mine", status="COMPLETED")

        assert [e.message for e in await _collect(sub)] == ["mine"]

    @pytest.mark.asyncio
    async def test_late_subscriber_replays_backlog(self):
        broadcaster = ProgressBroadcaster()
        broadcaster.publish(1, "step one", status="DISCOVERING")
        broadcaster.publish(1, "step two")

        sub = broadcaster.subscribe(1)
        broadcaster.publish(1, "done", status="COMPLETED")

        assert [e.message for e in await _collect(sub)] == ["step one", "step two", "done"]

    @pytest.mark.asyncio
    async def test_subscribing_to_finished_job_replays_and_ends(self):
        broadcaster = ProgressBroadcaster()
        broadcaster.publish(1, "failed", status="FAILED")

        sub = broadcaster.subscribe(1)

        assert [e.message for e in await _collect(sub)] == ["failed"]
        assert broadcaster.subscriber_count(1) == 0


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_full_queue_drops_and_counts(self):
        broadcaster = ProgressBroadcaster(queue_size=3)
        sub = broadcaster.subscribe(1)

        for i in range(5):
            broadcaster.publish(1, f"event {i}")
        broadcaster.publish(1, "done", status="COMPLETED")

        events = await _collect(sub)

        assert [e.message for e in events] == ["event 0", "event 1", "event 2"]
        assert sub.dropped == 3
        assert broadcaster.dropped == 3

    def test_publish_without_subscribers_or_loop_never_raises(self):
        broadcaster = ProgressBroadcaster(backlog_size=2)
        for i in range(5):
            broadcaster.publish(1, f"event {i}")
        assert broadcaster.has_history(1)
        assert not broadcaster.has_history(2)

    @pytest.mark.asyncio
    async def test_backlog_is_bounded(self):
        broadcaster = ProgressBroadcaster(backlog_size=2)
        for i in range(5):
            broadcaster.publish(1, f"event {i}")
        broadcaster.publish(1, "done", status="COMPLETED")

        events = await _collect(broadcaster.subscribe(1))

        assert [e.message for e in events] == ["event 4", "done"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_ends_iteration(self):
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(1)
        broadcaster.publish(1, "working")

        sub.close()

        assert [e.message for e in await _collect(sub)] == ["working"]
        assert broadcaster.subscriber_count(1) == 0

    @pytest.mark.asyncio
    async def test_reopen_accepts_new_live_subscribers(self):
        broadcaster = ProgressBroadcaster()
        broadcaster.publish(1, "failed", status="FAILED")

        broadcaster.reopen(1)
        sub = broadcaster.subscribe(1)
        assert broadcaster.subscriber_count(1) == 1

        broadcaster.publish(1, "retrying analysis", status="ANALYZING")
        broadcaster.publish(1, "done", status="COMPLETED")

        assert [e.message for e in await _collect(sub)] == [
            "failed", "retrying analysis", "done",
        ]

    @pytest.mark.asyncio
    async def test_close_job_forgets_history(self):
        broadcaster = ProgressBroadcaster()
        sub = broadcaster.subscribe(1)
        broadcaster.publish(1, "working")

        broadcaster.close_job(1)

        assert [e.message for e in await _collect(sub)] == ["working"]
        assert not broadcaster.has_history(1)

    def test_only_recent_finished_jobs_keep_history(self):
        broadcaster = ProgressBroadcaster(retained_jobs=5)
        for job_id in range(1, 21):
            broadcaster.publish(job_id, "Working", status="SCRAPING")
            broadcaster.publish(job_id, "Done", status="COMPLETED")

        kept = [job_id for job_id in range(1, 21) if broadcaster.has_history(job_id)]

        assert kept == [16, 17, 18, 19, 20]
        assert len(broadcaster._backlog) == 5
        assert len(broadcaster._finished) == 5

    def test_running_jobs_are_not_evicted(self):
        broadcaster = ProgressBroadcaster(retained_jobs=1)
        broadcaster.publish(1, "Working", status="SCRAPING")
        broadcaster.publish(2, "Done", status="COMPLETED")
        broadcaster.publish(3, "Done", status="FAILED")

        assert broadcaster.has_history(1)
        assert not broadcaster.has_history(2)
        assert broadcaster.has_history(3)
