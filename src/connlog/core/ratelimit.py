"""
Per-client admission control.

Fixed-window counter keyed by client address, plus a background sweeper
evicting visitors whose window has expired.
"""

import asyncio
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class VisitorState:
    """Counter for one client within its current window."""
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of an admission check."""
    allowed: bool
    retry_after: float

    @property
    def retry_after_seconds(self) -> int:
        """Advisory delay for the Retry-After header, never below one second."""
        return max(1, math.ceil(self.retry_after))


class RateLimiter:
    """
    Fixed-window rate limiter.

    The first request from a key opens a window of ``window_seconds``; up to
    ``limit`` requests are admitted until it expires, then the next request
    opens a fresh window. Bursty at window boundaries.

    Lookup, insertion and increment share one lock over the visitor map, so
    concurrent requests for a key can never be admitted past the limit.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._visitors: Dict[str, VisitorState] = {}

    def admit(self, key: str) -> AdmissionDecision:
        """
        Count one request for ``key`` and decide whether it may proceed.

        Returns:
            AdmissionDecision with the time left until the key's window resets
        """
        with self._lock:
            now = self._clock()
            visitor = self._visitors.get(key)

            if visitor is None or now >= visitor.window_reset_at:
                self._visitors[key] = VisitorState(count=1, window_reset_at=now + self.window_seconds)
                return AdmissionDecision(allowed=True, retry_after=self.window_seconds)

            if visitor.count < self.limit:
                visitor.count += 1
                return AdmissionDecision(allowed=True, retry_after=visitor.window_reset_at - now)

            return AdmissionDecision(allowed=False, retry_after=visitor.window_reset_at - now)

    def sweep(self) -> int:
        """Drop visitors whose window has expired. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, visitor in self._visitors.items() if now >= visitor.window_reset_at]
            for key in expired:
                del self._visitors[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._visitors)


class RateLimitSweeper:
    """
    Background service that bounds the visitor map.

    Features:
    - Periodic eviction of expired windows
    - Automatic startup/shutdown from the app lifespan
    """

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 300) -> None:
        self.limiter = limiter
        self.interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_sweep_loop())

        logger.info("Rate limit sweeper started", interval_seconds=self.interval)

    async def stop(self) -> None:
        """Stop the sweep loop."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Rate limit sweeper stopped")

    async def _run_sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)

            removed = self.limiter.sweep()
            if removed:
                logger.debug(
                    "Evicted expired visitors",
                    removed=removed,
                    remaining=len(self.limiter),
                )
