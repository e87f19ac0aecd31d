import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from messenger.metrics import record_http_request
from messenger.phone import mask_phone


REQUEST_LOGGER = "messenger.requests"

# Set per request by the middleware, read by the formatter
current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


class MessengerJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with a UTC millisecond `ts`, `level` and the active request id."""

    def add_fields(self, log_record, record, message_dict):
        super(MessengerJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record.setdefault("ts", _utc_timestamp())
        log_record["level"] = record.levelname

        request_id = current_request_id.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def setup_logging(log_level: str = "INFO"):
    """
    Route the root logger and uvicorn's loggers to one stdout JSON handler.

    Args:
        log_level: Logging level name, case-insensitive
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(MessengerJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False

    # request lines come from RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").disabled = True
    # AnnaClient and AgentClient log their own outcomes
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emit one structured log line per request and feed the HTTP metrics.

    Every line carries request_id, method, path, status and latency_ms.
    Sign-in requests add the masked phone and the verification result.
    Metrics are labelled by route template, not by the concrete path.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
        reset_token = current_request_id.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers["X-Request-ID"] = request_id

            template = _route_template(request)
            if template != "/metrics":
                record_http_request(request.method, template, response.status_code, elapsed)

            fields = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(elapsed * 1000, 2),
            }
            fields.update(getattr(request.state, "auth_log_data", {}))

            logging.getLogger(REQUEST_LOGGER).log(
                _level_for(response.status_code), "request handled", extra=fields
            )
            return response
        finally:
            current_request_id.reset(reset_token)


def log_auth_event(request: Request, phone: Optional[str] = None, result: Optional[str] = None):
    """Stash sign-in details on the request; the middleware adds them to its log line."""
    details = {}
    if phone is not None:
        details["phone"] = mask_phone(phone)
    if result is not None:
        details["result"] = result
    request.state.auth_log_data = details
