import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from pythonjsonlogger.json import JsonFormatter

from sms_receiver.errors import ResponseWriteError
from sms_receiver.metrics import record_http_request


# Context variable to store request_id for the current request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_ctx.get()


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter to ensure ISO-8601 timestamps and request_id."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        log_record["level"] = record.levelname

        if "request_id" not in log_record:
            req_id = request_id_ctx.get()
            if req_id:
                log_record["request_id"] = req_id


def setup_logging(log_level: str = "INFO"):
    """
    Setup structured JSON logging for the process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger = logging.getLogger()
    logger.setLevel(log_level.upper())
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    json_handler.setFormatter(CustomJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))
    logger.addHandler(json_handler)

    # Route Uvicorn loggers through the same JSON handler
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(json_handler)
        uvicorn_logger.propagate = False

    # Access lines come from RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").disabled = True

    return logger


class RequestLoggingMiddleware:
    """
    ASGI middleware that logs every HTTP request as one JSON line.

    Log keys: ts, level, request_id, method, path, status, latency_ms.
    For POST /sms, also message_sid (when extracted) and result.

    It wraps ``send`` directly, so a response that cannot be delivered to
    the client is logged as a ResponseWriteError here instead of escaping
    the app. Anything already committed by the handler stays committed.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        state = scope.setdefault("state", {})
        state["request_id"] = request_id
        token = request_id_ctx.set(request_id)
        start_time = time.time()
        status_code = 500
        write_failed = False

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, write_failed
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message).append("X-Request-ID", request_id)

            if write_failed:
                return
            try:
                await send(message)
            except OSError as e:
                write_failed = True
                error = ResponseWriteError(f"Error writing response: {e!r}")
                logging.getLogger("sms_receiver.requests").error(
                    error.detail,
                    extra={"error_type": error.error_type, "path": scope["path"]},
                )

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_id_ctx.reset(token)
            self.log_request(scope, status_code, time.time() - start_time)

    def log_request(self, scope: Scope, status_code: int, latency_seconds: float) -> None:
        method = scope["method"]
        path = scope["path"]

        # /metrics is not counted in its own output
        if path != "/metrics":
            record_http_request(method, path, status_code, latency_seconds)

        log_data = {
            "request_id": scope["state"]["request_id"],
            "method": method,
            "path": path,
            "status": status_code,
            "latency_ms": round(latency_seconds * 1000, 2),
        }
        log_data.update(scope["state"].get("webhook_log_data", {}))

        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logging.getLogger("sms_receiver.requests").log(level, "Request completed", extra=log_data)


def log_webhook_data(request: Request, message_sid: Optional[str] = None, result: Optional[str] = None):
    """
    Attach webhook-specific logging data to the request state.
    This data will be included in the request log by the middleware.

    Args:
        request: FastAPI request object
        message_sid: MessageSid from the webhook payload, if extracted
        result: Processing result (stored, malformed_request, missing_fields, ...)
    """
    webhook_data = {}
    if message_sid is not None:
        webhook_data["message_sid"] = message_sid
    if result is not None:
        webhook_data["result"] = result

    request.state.webhook_log_data = webhook_data
