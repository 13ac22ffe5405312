"""
Connection record and API response models.

- ConnectionRecord: one line of the connection log, immutable once built
- LoginResponse / HealthResponse: success bodies
- ErrorResponse: shared shape of every 4xx/5xx body
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionRecord(BaseModel):
    """
    Enriched connection metadata persisted to the log.

    Field order is the serialized order.
    """

    id: str = Field(description="Server-generated unique identifier")
    timestamp: str = Field(description="Receipt time, RFC3339 UTC")
    ip: str = Field(description="Resolved caller address")
    path: str = Field(description="Request path")
    method: str = Field(description="Request method")
    client: Dict[str, Any] = Field(description="Caller payload, already redacted")

    model_config = ConfigDict(frozen=True)

    def to_json_line(self) -> str:
        """Compact JSON terminated by a newline."""
        return self.model_dump_json() + "\n"


class LoginResponse(BaseModel):
    """Response from the login endpoint."""

    status: str = Field(default="ok", description="Always 'ok' on success")
    id: str = Field(description="Identifier of the stored record")
    timestamp: str = Field(description="Timestamp of the stored record")


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str = Field(default="ok")


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
    retry_after_sec: Optional[int] = Field(
        default=None,
        description="Seconds to wait before retrying (rate limit only)"
    )
