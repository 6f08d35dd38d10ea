import time
import uuid
from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from framework.logging.logger import _current_request

TRACE_HEADER = "X-Trace-ID"
# Docs and schema requests are not worth a log line each
_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi.json")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Trace id per request (client supplied or generated); logs each API call with its duration."""

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        token = _current_request.set(request)
        quiet = request.url.path.startswith(_QUIET_PREFIXES)
        started = time.perf_counter()

        with logger.contextualize(trace_id=trace_id):
            try:
                response = await call_next(request)
            except Exception as e:
                elapsed = (time.perf_counter() - started) * 1000
                logger.error(f"{request.method} {request.url.path} failed after {elapsed:.2f}ms: {str(e)}")
                raise
            finally:
                _current_request.reset(token)

            elapsed = (time.perf_counter() - started) * 1000
            if not quiet:
                client_host = request.client.host if request.client else "unknown"
                line = (
                    f"{request.method} {request.url.path} -> {response.status_code} "
                    f"| {elapsed:.2f}ms | client {client_host}"
                )
                if response.status_code >= 500:
                    logger.warning(line)
                else:
                    logger.info(line)
            response.headers[TRACE_HEADER] = trace_id
            return response
