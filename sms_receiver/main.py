import logging
from contextlib import asynccontextmanager
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from sms_receiver import __version__
from sms_receiver.config import Settings, get_settings
from sms_receiver.errors import (
    InputTooLong,
    MalformedRequest,
    MissingFields,
    PersistenceError,
    WebhookError,
)
from sms_receiver.extraction import extract_fields, validate_fields
from sms_receiver.logging_utils import RequestLoggingMiddleware, log_webhook_data
from sms_receiver.metrics import get_metrics, get_metrics_content_type, record_webhook_outcome
from sms_receiver.responses import TwiMLResponse
from sms_receiver.schemas import HealthResponse, IncomingMessage
from sms_receiver.storage import MessageGateway, check_db_health, create_db_engine, init_db
from sms_receiver.utils import parse_form_body


logger = logging.getLogger(__name__)
router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================

def get_gateway(request: Request) -> MessageGateway:
    """The gateway built at startup by create_app."""
    return request.app.state.gateway


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _reject(
    request: Request,
    error: WebhookError,
    log_message: str,
    result: str,
    message_sid: Optional[str] = None,
    **log_fields,
) -> NoReturn:
    """Log, count and attach the failed outcome, then raise ``error``."""
    level = logging.ERROR if error.status_code >= 500 else logging.WARNING
    logger.log(level, log_message, extra={"error_type": error.error_type, **log_fields})
    record_webhook_outcome(result)
    log_webhook_data(request=request, message_sid=message_sid, result=result)
    raise error


async def webhook_error_handler(request: Request, exc: WebhookError) -> PlainTextResponse:
    """Render webhook errors as plain text; details stay in the logs."""
    return PlainTextResponse(exc.detail, status_code=exc.status_code)


# =============================================================================
# Health Check Routes
# =============================================================================

@router.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    sms_messages table exists, otherwise 503.
    """
    healthy = await run_in_threadpool(check_db_health, request.app.state.engine)
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# SMS Webhook Route
# =============================================================================

@router.post(
    "/sms",
    response_class=TwiMLResponse,
    responses={
        400: {"description": "Malformed, missing or oversized input", "content": {"text/plain": {}}},
        500: {"description": "Message could not be stored", "content": {"text/plain": {}}},
    },
)
async def receive_sms(
    request: Request,
    gateway: MessageGateway = Depends(get_gateway),
    settings: Settings = Depends(get_app_settings),
) -> TwiMLResponse:
    """
    Store an inbound SMS posted by Twilio.

    Accepts application/x-www-form-urlencoded with MessageSid, From and
    Body (lower-case keys accepted). When the provider nests the whole
    payload inside a single 'body' field, that field is re-parsed as a
    query string to fill whatever is still missing.

    Every accepted request is inserted as a new row; MessageSid is not
    deduplicated.
    """
    raw_body = await request.body()

    try:
        form = parse_form_body(raw_body, request.headers.get("content-type", ""))
    except ValueError as e:
        _reject(
            request,
            MalformedRequest(),
            f"Failed to parse form data: {e}",
            result="malformed_request",
        )

    try:
        fields = extract_fields(form)
    except MalformedRequest as e:
        _reject(
            request,
            e,
            f"Failed to parse body parameter: {e.__cause__}",
            result="malformed_request",
        )

    try:
        validate_fields(fields, enforce_lengths=settings.ENFORCE_FIELD_LENGTHS)
    except MissingFields as e:
        _reject(
            request,
            e,
            f"Missing required fields: {', '.join(e.fields)}",
            result="missing_fields",
            message_sid=fields.message_sid,
            missing_fields=e.fields,
        )
    except InputTooLong as e:
        _reject(
            request,
            e,
            f"Input length exceeded: {', '.join(e.fields)}",
            result="input_too_long",
            message_sid=fields.message_sid,
            oversized_fields=e.fields,
        )

    message = IncomingMessage(
        message_sid=fields.message_sid,
        from_number=fields.from_number,
        body=fields.body,
    )

    try:
        await run_in_threadpool(gateway.save, message)
    except PersistenceError as e:
        _reject(
            request,
            e,
            f"Failed to save SMS to database: {e.__cause__}",
            result="persistence_error",
            message_sid=message.message_sid,
        )

    logger.info(
        f"Saved SMS from {message.from_number}: {message.body}",
        extra={"message_sid": message.message_sid},
    )
    record_webhook_outcome("stored")
    log_webhook_data(request=request, message_sid=message.message_sid, result="stored")

    return TwiMLResponse()


# =============================================================================
# Metrics Route
# =============================================================================

@router.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the ASGI application.

    The engine (and so the connection pool) is created once here, or
    supplied by the caller, and shared by every request through
    ``app.state``. Engines created here are disposed on shutdown.
    """
    settings = settings or get_settings()
    owns_engine = engine is None
    if engine is None:
        engine = create_db_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.CREATE_TABLES:
            init_db(engine)
        yield
        if owns_engine:
            engine.dispose()

    app = FastAPI(
        title="SMS Webhook Receiver",
        description="Stores inbound Twilio SMS webhooks in the sms_messages table",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.gateway = MessageGateway(engine)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(WebhookError, webhook_error_handler)
    app.include_router(router)

    return app
