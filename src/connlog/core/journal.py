"""
Append-only connection log.

One compact JSON record per line (JSON Lines), written under a single
exclusive lock so concurrent appends never interleave.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
from aiofiles import open as aio_open

from ..models.connection import ConnectionRecord
from .exceptions import PersistenceError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class JournalWriter:
    """
    Writes connection records to a JSON Lines file.

    Features:
    - Open-append-close per record, existing content is never truncated
    - One process-wide lock around the whole write sequence
    - No buffering across calls, each line is on disk when append returns
    - Any prefix of whole lines is valid, records share no framing
    """

    def __init__(self, path: Path, metrics: Optional[MetricsCollector] = None) -> None:
        self.path = Path(path)
        self.metrics = metrics
        self._lock = asyncio.Lock()

        logger.info("Journal writer initialized", path=str(self.path))

    def _ensure_parent_directory(self) -> None:
        """Create the log directory if it doesn't exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def append(self, record: ConnectionRecord) -> int:
        """
        Append one record as a single line.

        Returns:
            Number of bytes written

        Raises:
            PersistenceError: If the file cannot be opened or written
        """
        data = record.to_json_line().encode("utf-8")
        loop = asyncio.get_running_loop()

        async with self._lock:
            started = loop.time()
            try:
                self._ensure_parent_directory()
                async with aio_open(self.path, "ab") as f:
                    await f.write(data)
                    await f.flush()
            except OSError as e:
                logger.error(
                    "Failed to append connection record",
                    path=str(self.path),
                    record_id=record.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self.metrics:
                    self.metrics.record_append_failure()
                raise PersistenceError(f"Cannot append to {self.path}: {e}", path=self.path) from e

            if self.metrics:
                self.metrics.record_append(loop.time() - started)

        logger.debug("Appended connection record", record_id=record.id, size_bytes=len(data))
        return len(data)
