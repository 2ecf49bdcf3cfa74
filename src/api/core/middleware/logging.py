import time
import uuid

import structlog
from fastapi import Request

from src.api.core.constants import CALLER_KEY_HEADER
from src.utils.logger import get_client_ip, get_logger
from src.utils.masking import mask_secret

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/health/", "/health/liveness")


def _caller_key(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.headers.get(CALLER_KEY_HEADER)


async def logging_middleware(request: Request, call_next):
    if request.url.path in QUIET_PATHS:
        return await call_next(request)

    start = time.perf_counter()
    structlog.contextvars.clear_contextvars()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    context = {
        "ip_address": get_client_ip(request),
        "method": request.method,
        "path": request.url.path,
        "request_id": request_id,
    }
    caller_key = _caller_key(request)
    if caller_key:
        context["caller_key"] = mask_secret(caller_key)
    structlog.contextvars.bind_contextvars(**context)

    response = await call_next(request)

    logger.info(
        "request",
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000),
        **context,
    )
    response.headers["X-Request-ID"] = request_id
    return response
