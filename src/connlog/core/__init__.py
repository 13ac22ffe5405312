"""
Core business logic components.

This package contains the ingestion pipeline components:
- Rate limiting per client address
- Redaction of sensitive fields
- Append-only connection log
- Notification dispatch to chat webhooks
- Metrics collection
"""
