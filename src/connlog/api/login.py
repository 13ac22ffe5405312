"""
Connection ingestion endpoint.

Main endpoint: POST /login
"""

import structlog
from fastapi import APIRouter, Depends, Request

from ..core.exceptions import InvalidPayloadError
from ..core.identity import resolve_client_ip
from ..core.pipeline import IngestionPipeline, decode_payload
from ..models.connection import ErrorResponse, LoginResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


async def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    """Dependency to get the ingestion pipeline from app state."""
    return request.app.state.pipeline


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """
    Read the request body, refusing anything above ``max_bytes``.

    Raises:
        InvalidPayloadError: When the body is larger than allowed
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise InvalidPayloadError(
            message="Request body too large",
            details={"max_bytes": max_bytes},
        )

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise InvalidPayloadError(
                message="Request body too large",
                details={"max_bytes": max_bytes},
            )
        chunks.append(chunk)

    return b"".join(chunks)


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=200,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or oversized JSON"},
        405: {"model": ErrorResponse, "description": "Method other than POST"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Connection log unavailable"},
    },
    summary="Record a client connection",
    description="""
    Record connection metadata sent by a client.

    **Processing Pipeline:**
    1. Rate limiting per client address
    2. JSON decoding (object, max 1 MiB)
    3. Redaction of sensitive fields
    4. Enrichment with id, timestamp and client address
    5. Append to the connection log
    6. Response
    7. Best-effort chat notification (not awaited)

    **Client address:** X-Forwarded-For (first entry), then X-Real-IP,
    then the peer address.
    """,
)
async def login(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> LoginResponse:
    """
    Ingest one connection.
    """
    client_ip = resolve_client_ip(
        request.headers,
        request.client.host if request.client else None,
    )

    pipeline.check_admission(client_ip)

    body = await read_limited_body(request, request.app.state.settings.max_body_bytes)
    try:
        payload = decode_payload(body)
    except InvalidPayloadError as e:
        logger.info("Rejected invalid payload", ip=client_ip, reason=e.details.get("reason"))
        raise

    result = await pipeline.ingest(
        payload,
        client_ip=client_ip,
        path=request.url.path,
        method=request.method,
    )

    return LoginResponse(
        status="ok",
        id=result.record.id,
        timestamp=result.record.timestamp,
    )
