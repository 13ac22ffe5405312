"""
Ingestion pipeline for connection metadata.

Orchestrates, in order:
1. Admission check (rate limiting by client address)
2. Payload decoding
3. Redaction (before anything is persisted or sent)
4. Enrichment (id, timestamp, address, path, method)
5. Append to the connection log
6. Notification hand-off (queued, never awaited)
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ..models.connection import ConnectionRecord
from .dispatcher import NotificationDispatcher
from .exceptions import InvalidPayloadError, RateLimitError
from .identity import new_record_id, utc_timestamp
from .journal import JournalWriter
from .metrics import MetricsCollector
from .notifier import compose_summary
from .ratelimit import RateLimiter
from .redaction import Redactor

logger = structlog.get_logger(__name__)


@dataclass
class IngestionResult:
    """Result of ingesting one connection."""
    record: ConnectionRecord
    bytes_written: int


MAX_NESTING_DEPTH = 64


def _reject_constant(name: str) -> Any:
    raise InvalidPayloadError(details={"reason": f"non-standard constant {name}"})


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise InvalidPayloadError(details={"reason": "number out of range"})
    return value


def nesting_depth(value: Any, limit: Optional[int] = None) -> int:
    """
    Deepest container nesting of a decoded JSON value (a scalar is 0).

    Walks with an explicit stack and stops early once ``limit`` is exceeded.
    """
    deepest = 0
    stack = [(value, 1)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, dict):
            children = current.values()
        elif isinstance(current, list):
            children = current
        else:
            continue

        deepest = max(deepest, depth)
        if limit is not None and deepest > limit:
            break
        stack.extend((child, depth + 1) for child in children)

    return deepest


def decode_payload(body: bytes, max_depth: int = MAX_NESTING_DEPTH) -> Dict[str, Any]:
    """
    Decode a request body into a JSON object.

    NaN, Infinity and overflowing floats are refused, as are integers
    beyond the interpreter's digit limit and documents nested deeper than
    ``max_depth``.

    Raises:
        InvalidPayloadError: If the body is not strict UTF-8 JSON, not an
            object, or nested too deeply
    """
    try:
        payload = json.loads(
            body.decode("utf-8"),
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidPayloadError(details={"reason": type(e).__name__}) from e
    except RecursionError as e:
        raise InvalidPayloadError(details={"reason": "nesting too deep", "max_depth": max_depth}) from e
    except ValueError as e:
        # int() digit limit on very long integer literals
        raise InvalidPayloadError(details={"reason": "number out of range"}) from e

    if not isinstance(payload, dict):
        raise InvalidPayloadError(details={"reason": f"expected object, got {type(payload).__name__}"})

    if nesting_depth(payload, limit=max_depth) > max_depth:
        raise InvalidPayloadError(details={"reason": "nesting too deep", "max_depth": max_depth})

    return payload


class IngestionPipeline:
    """
    Main processing pipeline for connection ingestion.

    Holds references to the app-owned components, one instance per app.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        journal: JournalWriter,
        dispatcher: NotificationDispatcher,
        redactor: Redactor,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.limiter = limiter
        self.journal = journal
        self.dispatcher = dispatcher
        self.redactor = redactor
        self.metrics = metrics

    def check_admission(self, client_ip: str) -> None:
        """
        Count a request against the client's window.

        Raises:
            RateLimitError: When the client exhausted its window
        """
        decision = self.limiter.admit(client_ip)

        if self.metrics:
            self.metrics.record_admission(decision.allowed, len(self.limiter))

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                ip=client_ip,
                retry_after=decision.retry_after_seconds,
                limit=self.limiter.limit,
            )
            raise RateLimitError(retry_after=decision.retry_after_seconds)

    async def ingest(
        self,
        payload: Dict[str, Any],
        client_ip: str,
        path: str,
        method: str,
    ) -> IngestionResult:
        """
        Redact, enrich and persist one connection, then queue its notification.

        Raises:
            PersistenceError: If the record cannot be appended
        """
        record = ConnectionRecord(
            id=new_record_id(),
            timestamp=utc_timestamp(),
            ip=client_ip,
            path=path,
            method=method,
            client=self.redactor.redact(payload),
        )

        bytes_written = await self.journal.append(record)

        logger.info(
            "Connection recorded",
            record_id=record.id,
            ip=client_ip,
            size_bytes=bytes_written,
        )

        self.dispatcher.notify(compose_summary(record))

        return IngestionResult(record=record, bytes_written=bytes_written)
