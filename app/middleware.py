"""Request id assignment and request/response logging."""
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

from infrastructure.logging import REQUEST_ID_CTX, StructuredLogger

REQUEST_ID_HEADER = "X-Request-Id"


def make_request_logging_middleware(
    logger: StructuredLogger,
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Build an HTTP middleware that tags each request with a correlation id.

    An incoming ``X-Request-Id`` header is reused, otherwise a UUID4 is
    generated. The id is stored on ``request.state``, in ``REQUEST_ID_CTX``
    for log records, and echoed on the response.
    """

    async def request_logging_middleware(request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        ctx_token = REQUEST_ID_CTX.set(request_id)

        start = time.perf_counter()
        status_code = 500
        logger.info("request.start", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            logger.info(
                "request.finish",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000),
            )
            REQUEST_ID_CTX.reset(ctx_token)

    return request_logging_middleware
