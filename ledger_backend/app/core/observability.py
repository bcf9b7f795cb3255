"""
Observability Middleware.

Adds correlation IDs and structured logging context to requests.
"""

import time
import uuid
import logging
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

# Configure structured logger
logger = logging.getLogger("ledger.requests")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the correlation id of the current request."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once; repeated calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(handler, "_ledger_handler", False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    handler._ledger_handler = True
    root.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # 1. Generate or extract Correlation ID
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        token = correlation_id_var.set(correlation_id)

        # 2. Start Timer
        start_time = time.perf_counter()

        try:
            # 3. Process Request
            response = await call_next(request)

            # 4. Calculate Duration
            process_time = (time.perf_counter() - start_time) * 1000  # ms

            # 5. Add Header to Response
            response.headers["X-Correlation-ID"] = correlation_id
            response.headers["X-Process-Time"] = f"{process_time:.2f}"

            # 6. Structured Log
            log_data = {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(process_time, 2),
                "ip": request.client.host if request.client else "unknown"
            }
            message = "%s %s -> %s (%.2f ms)"
            args = (request.method, request.url.path, response.status_code, process_time)

            # Log level based on status
            if response.status_code >= 500:
                logger.error(message, *args, extra=log_data)
            elif response.status_code >= 400:
                logger.warning(message, *args, extra=log_data)
            else:
                logger.info(message, *args, extra=log_data)

            return response
        finally:
            correlation_id_var.reset(token)
