"""
Server-side enrichment: caller address, record identifier and timestamp.
"""

import itertools
import time
import uuid
from datetime import datetime, timezone
from typing import Mapping, Optional

import structlog

logger = structlog.get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_fallback_counter = itertools.count(1)


def resolve_client_ip(headers: Mapping[str, str], peer_host: Optional[str]) -> str:
    """
    Resolve the caller address.

    Precedence: first X-Forwarded-For entry, then X-Real-IP, then the
    transport peer.
    """
    forwarded_for = headers.get("x-forwarded-for", "")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    return peer_host or "unknown"


def new_record_id() -> str:
    """
    Random version-4 UUID.

    Degrades to a time-based identifier, unique within the process, when the
    OS entropy source is unavailable.
    """
    try:
        return str(uuid.uuid4())
    except (NotImplementedError, OSError) as e:
        fallback_id = f"fallback-{time.time_ns()}-{next(_fallback_counter)}"
        logger.warning("Entropy source unavailable, using fallback id", record_id=fallback_id, error=str(e))
        return fallback_id


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """RFC3339 UTC timestamp with second precision, e.g. 2025-01-31T08:15:00Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
