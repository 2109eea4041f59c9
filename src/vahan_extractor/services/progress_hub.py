"""In-memory publish/subscribe for job progress events."""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

import structlog

from ..models.job import Job, JobProgress

logger = structlog.get_logger()

ProgressCallback = Callable[[JobProgress], None]
JobLoader = Callable[[str], Awaitable[Optional[Job]]]


class _Subscription:
    """One callback registration. Identity-based so the same callable can register twice.

    Events published while the snapshot is still loading wait in ``pending``.
    """

    __slots__ = ("callback", "pending")

    def __init__(self, callback: ProgressCallback):
        self.callback = callback
        self.pending: Optional[list[JobProgress]] = []


class ProgressHub:
    """Broadcasts progress events per job id to live observers.

    Delivery is synchronous and in publish order. A callback that raises is
    logged and dropped so one broken observer cannot stall a job.
    """

    def __init__(self, job_loader: JobLoader):
        self._job_loader = job_loader
        self._subscribers: dict[str, list[_Subscription]] = {}

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))

    async def subscribe(
        self, job_id: str, callback: ProgressCallback
    ) -> Callable[[], None]:
        """Register a callback and immediately send it the current job state.

        Returns:
            An idempotent unsubscribe function
        """
        # Register before loading so nothing published during the load is lost
        subscription = _Subscription(callback)
        self._subscribers.setdefault(job_id, []).append(subscription)

        try:
            job = await self._job_loader(job_id)
        except BaseException:
            self._remove(job_id, subscription)
            raise

        held, subscription.pending = subscription.pending, None
        if job is not None:
            snapshot = JobProgress.from_job(job, f"Current status: {job.status.value}")
            held.insert(0, snapshot)
        for event in held:
            if not self._deliver(job_id, subscription, event):
                break

        def unsubscribe() -> None:
            self._remove(job_id, subscription)

        return unsubscribe

    def publish(self, job_id: str, event: JobProgress) -> None:
        """Deliver an event to every current subscriber of a job."""
        for subscription in list(self._subscribers.get(job_id, [])):
            if subscription.pending is not None:
                subscription.pending.append(event)
            else:
                self._deliver(job_id, subscription, event)

    async def stream(self, job_id: str) -> AsyncIterator[JobProgress]:
        """Iterate a job's progress events, ending after a terminal status."""
        queue: asyncio.Queue[JobProgress] = asyncio.Queue()
        unsubscribe = await self.subscribe(job_id, queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            unsubscribe()

    def _deliver(
        self, job_id: str, subscription: _Subscription, event: JobProgress
    ) -> bool:
        try:
            subscription.callback(event)
        except Exception as e:
            logger.warning("progress_subscriber_failed", job_id=job_id, error=str(e))
            self._remove(job_id, subscription)
            return False
        return True

    def _remove(self, job_id: str, subscription: _Subscription) -> None:
        subscriptions = self._subscribers.get(job_id)
        if not subscriptions:
            return
        try:
            subscriptions.remove(subscription)
        except ValueError:
            return
        if not subscriptions:
            del self._subscribers[job_id]
