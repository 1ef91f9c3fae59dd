"""In-process fan-out of job progress lines to live observers.

Publishing never blocks the pipeline: each subscriber owns a bounded queue,
and an event that does not fit is dropped and counted. A short backlog per
job lets an observer that connects mid-run catch up; once a job finishes its
backlog is kept only until newer finished jobs push it out.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, deque

from lead_intel.models import TERMINAL_STATUSES, ProgressEvent

logger = logging.getLogger(__name__)


class Subscription:
    """Async iterator over one job's progress events.

    Iteration ends after the job's terminal event, or after ``close()``.
    """

    def __init__(self, broadcaster: ProgressBroadcaster, job_id: int, maxsize: int):
        self.job_id = job_id
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._done = False

    def offer(self, event: ProgressEvent | None) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            if event is not None:
                self.dropped += 1
            return False

    def finish(self) -> None:
        self._done = True
        self.offer(None)

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)
        self.finish()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._done and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ProgressBroadcaster:
    def __init__(self, queue_size: int = 100, backlog_size: int = 200, retained_jobs: int = 100):
        self.queue_size = queue_size
        self.backlog_size = backlog_size
        self.retained_jobs = retained_jobs
        self.dropped = 0
        self._subscribers: dict[int, set[Subscription]] = {}
        self._backlog: dict[int, deque[ProgressEvent]] = {}
        # finished job ids, oldest first; only the newest retained_jobs keep a backlog
        self._finished: OrderedDict[int, None] = OrderedDict()

    def subscribe(self, job_id: int) -> Subscription:
        """Subscribe to a job, replaying its most recent backlog first."""
        sub = Subscription(self, job_id, self.queue_size)
        for event in list(self._backlog.get(job_id, ()))[-self.queue_size:]:
            sub.offer(event)
        if job_id in self._finished:
            sub.finish()
        else:
            self._subscribers.setdefault(job_id, set()).add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.job_id)
        if subs is not None:
            subs.discard(sub)
            if not subs:
                del self._subscribers[sub.job_id]

    def publish(self, job_id: int, message: str, status: str | None = None) -> None:
        """Record and fan out one progress line. Never raises."""
        try:
            event = ProgressEvent(job_id=job_id, message=message, status=status)
            backlog = self._backlog.get(job_id)
            if backlog is None:
                backlog = self._backlog[job_id] = deque(maxlen=self.backlog_size)
            backlog.append(event)

            for sub in list(self._subscribers.get(job_id, ())):
                if not sub.offer(event):
                    self.dropped += 1
                    logger.debug("Progress queue full for job %d, event dropped", job_id)

            if status is not None and status.upper() in TERMINAL_STATUSES:
                self._finished[job_id] = None
                self._finished.move_to_end(job_id)
                self._evict_finished()
                for sub in self._subscribers.pop(job_id, set()):
                    sub.finish()
        except Exception as e:
            logger.warning("Progress publish failed for job %d: %s", job_id, e)

    def reopen(self, job_id: int) -> None:
        """Allow new live events for a job that is being retried."""
        self._finished.pop(job_id, None)

    def close_job(self, job_id: int) -> None:
        """Forget a job's backlog and end its subscriptions."""
        self._backlog.pop(job_id, None)
        self._finished.pop(job_id, None)
        for sub in self._subscribers.pop(job_id, set()):
            sub.finish()

    def _evict_finished(self) -> None:
        while len(self._finished) > self.retained_jobs:
            old_id, _ = self._finished.popitem(last=False)
            self._backlog.pop(old_id, None)

    def subscriber_count(self, job_id: int) -> int:
        return len(self._subscribers.get(job_id, ()))

    def has_history(self, job_id: int) -> bool:
        return bool(self._backlog.get(job_id))
