"""
Notification dispatcher.

Record changes are announced through a bounded asyncio queue drained by a
fixed pool of worker tasks. Request handlers only ever enqueue; delivery
happens after the response has gone out. A full queue or a stopped
dispatcher drops the job with a warning.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import logging

from ..models.records import Record
from .slack import SlackNotifier
from .webhooks import WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class DispatchJob:
    """One outbound delivery."""
    kind: str                 # "webhook" or "slack"
    description: str
    run: Callable[[], Awaitable[Dict[str, Any]]]


class NotificationDispatcher:
    """
    Fans record changes out to the webhook receiver and the chat service.

    Features:
    - Bounded queue; submit() never blocks the caller
    - Fixed worker pool started and drained with the app lifespan
    - Delivery failures logged and counted, never retried
    """

    def __init__(
        self,
        config: Dict[str, Any],
        webhook: WebhookNotifier,
        slack: Optional[SlackNotifier] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            config: Configuration including:
                - queue_size: Maximum pending jobs
                - workers: Number of worker tasks
                - drain_timeout: Seconds to wait for pending jobs on stop
            webhook: Webhook notifier
            slack: Chat notifier (None disables chat notifications)
        """
        self.queue_size = config.get("queue_size", 100)
        self.workers = config.get("workers", 4)
        self.drain_timeout = config.get("drain_timeout", 5.0)
        self.webhook = webhook
        self.slack = slack

        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self.stats = {"submitted": 0, "delivered": 0, "failed": 0, "dropped": 0}

    @property
    def running(self) -> bool:
        return self._queue is not None

    async def start(self) -> None:
        """Create the queue and spawn the workers."""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"dispatch-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info("Dispatcher started with %d workers (queue size %d)", self.workers, self.queue_size)

    async def stop(self) -> None:
        """Wait for pending jobs up to the drain timeout, then cancel the workers."""
        if not self.running:
            return

        queue, self._queue = self._queue, None
        try:
            await asyncio.wait_for(queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dispatcher drain timed out with %d jobs pending", queue.qsize())

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Dispatcher stopped: %s", self.stats)

    def submit(self, job: DispatchJob) -> bool:
        """Enqueue a job; returns False if it was dropped."""
        if self._queue is None:
            self.stats["dropped"] += 1
            logger.warning("Dispatcher not running, dropping %s", job.description)
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.stats["dropped"] += 1
            logger.warning("Dispatch queue full, dropping %s", job.description)
            return False

        self.stats["submitted"] += 1
        return True

    async def _worker(self, index: int) -> None:
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                result = await job.run()
                if result.get("success"):
                    self.stats["delivered"] += 1
                else:
                    self.stats["failed"] += 1
            except Exception:
                self.stats["failed"] += 1
                logger.exception("Worker %d failed on %s", index, job.description)
            finally:
                queue.task_done()

    def _submit_webhook(self, table_name: str, record: Record, action_type: str) -> bool:
        if not self.webhook.enabled:
            return False
        envelope = self.webhook.build_envelope(table_name, record, action_type)
        return self.submit(DispatchJob(
            kind="webhook",
            description=f"webhook {table_name}/{action_type} {record.get('number')}",
            run=lambda: self.webhook.send(envelope),
        ))

    def notify_created(self, table_name: str, record: Record) -> None:
        """Announce a new record: webhook plus chat message."""
        self._submit_webhook(table_name, record, "insert")

        if self.slack is not None and self.slack.enabled:
            self.submit(DispatchJob(
                kind="slack",
                description=f"slack notification {record.get('number')}",
                run=lambda: self.slack.post(self.slack.build_message(table_name, record)),
            ))

    def notify_updated(self, table_name: str, record: Record) -> None:
        """Announce a command- or button-driven update: webhook only."""
        self._submit_webhook(table_name, record, "update")
