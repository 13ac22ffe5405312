"""
Pydantic data models package.

Contains the persisted connection record and the API response schemas.
"""

from .connection import ConnectionRecord, ErrorResponse, HealthResponse, LoginResponse

__all__ = [
    "ConnectionRecord",
    "ErrorResponse",
    "HealthResponse",
    "LoginResponse",
]
