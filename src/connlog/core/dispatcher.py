"""
Background service delivering notifications.

Messages are queued by the ingestion pipeline and delivered by worker tasks
owned by the application, never by the originating request.
"""

import asyncio
from typing import List, Optional, Sequence

import aiohttp
import structlog

from .exceptions import NotificationError
from .metrics import MetricsCollector
from .notifier import NotificationTarget, describe_targets

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """
    Fire-and-forget delivery of connection summaries.

    Features:
    - Bounded queue, full queue drops the message with a warning
    - Independent workers with their own aiohttp session and timeout
    - Every target attempted once per message, failures isolated per target
    - Failures logged and counted, never raised to the caller
    """

    def __init__(
        self,
        targets: Sequence[NotificationTarget],
        timeout_seconds: float = 5.0,
        queue_size: int = 1000,
        workers: int = 2,
        drain_timeout_seconds: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.targets = list(targets)
        self.timeout_seconds = timeout_seconds
        self.worker_count = workers
        self.drain_timeout = drain_timeout_seconds
        self.metrics = metrics
        self.session: Optional[aiohttp.ClientSession] = None
        self._queue: "asyncio.Queue[str]" = asyncio.Queue(maxsize=queue_size)
        self._workers: List["asyncio.Task[None]"] = []
        self._running = False

        logger.info(
            "Notification dispatcher initialized",
            targets=describe_targets(self.targets),
            queue_size=queue_size,
            workers=workers,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.targets)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Open the HTTP session and spawn the workers."""
        if self._running or not self.enabled:
            return

        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
        )
        self._running = True
        self._workers = [
            asyncio.create_task(self._run_worker(i)) for i in range(self.worker_count)
        ]

        logger.info("Notification dispatcher started", workers=self.worker_count)

    async def stop(self) -> None:
        """Drain queued messages (bounded wait), then stop the workers."""
        if not self._running:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Notification queue not drained before shutdown", pending=self.pending)

        self._running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        if self.session:
            await self.session.close()
            self.session = None

        logger.info("Notification dispatcher stopped")

    def notify(self, message: str) -> None:
        """
        Queue a message for delivery to every target.

        Never blocks and never raises; without targets this is a no-op.
        """
        if not self.enabled:
            return

        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping message", queue_size=self._queue.maxsize)
            if self.metrics:
                self.metrics.record_notification_dropped()

    async def deliver(self, message: str) -> List[bool]:
        """Send one message to all targets concurrently. Returns per-target success."""
        session = self.session
        if session is None:
            raise RuntimeError("Notification dispatcher not started")

        return list(
            await asyncio.gather(*(self._send_to_target(session, target, message) for target in self.targets))
        )

    async def _send_to_target(
        self,
        session: aiohttp.ClientSession,
        target: NotificationTarget,
        message: str,
    ) -> bool:
        try:
            await target.send(session, message)
        except NotificationError as e:
            logger.warning(
                "Notification failed",
                target=target.name,
                status=e.status,
                error=str(e),
            )
            success = False
        else:
            success = True

        if self.metrics:
            self.metrics.record_notification(target.name, success)
        return success

    async def _run_worker(self, worker_id: int) -> None:
        """Worker loop: one message at a time until cancelled."""
        while True:
            message = await self._queue.get()
            try:
                await self.deliver(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Notification worker error",
                    worker_id=worker_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
