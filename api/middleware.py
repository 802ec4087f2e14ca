# ============================================================================
# File: api/middleware.py
# ============================================================================

import logging
import time
import uuid
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from core.logging import log_context

logger = logging.getLogger(__name__)

# Longest incoming X-Request-ID kept; longer ids are cut
MAX_REQUEST_ID_LENGTH = 64


def resolve_request_id(incoming: Optional[str] = None) -> str:
    request_id = (incoming or "").strip()[:MAX_REQUEST_ID_LENGTH]
    return request_id or str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Injects:
    - request_id (reuses an incoming X-Request-ID) into the response
      headers and into every log line written while serving the request
    - api_latency_ms
    """

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        start_time = time.perf_counter()

        request.state.request_id = request_id

        with log_context(request_id=request_id):
            response: Response = await call_next(request)

            latency_ms = int((time.perf_counter() - start_time) * 1000)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-API-Latency-ms"] = str(latency_ms)

            if response.status_code >= 500:
                logger.warning(
                    f"{request.method} {request.url.path} "
                    f"-> {response.status_code} in {latency_ms}ms"
                )
            else:
                logger.debug(
                    f"{request.method} {request.url.path} "
                    f"-> {response.status_code} in {latency_ms}ms"
                )
        return response
