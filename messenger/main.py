import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from messenger.auth import get_agent_client, get_anna_client
from messenger.config import settings
from messenger.errors import MessengerError
from messenger.logging_utils import setup_logging, RequestLoggingMiddleware
from messenger.metrics import render_metrics
from messenger.routers import anna, auth, calls, chats, favorites, messages, privacy, social, stories, sync, users
from messenger.schemas import HealthResponse
from messenger.storage import init_db, check_db_health


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup; close the outbound AI and agent clients on shutdown."""
    init_db()
    yield
    for factory in (get_anna_client, get_agent_client):
        if factory.cache_info().currsize:
            factory().close()
            factory.cache_clear()


app = FastAPI(
    title="Messenger API",
    description="Messenger backend with phone sign-in, chats and the Anna AI assistant",
    version="1.0.0",
    lifespan=lifespan,
)

# one JSON log line and metrics sample per request
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(MessengerError)
async def messenger_error_handler(request: Request, exc: MessengerError) -> JSONResponse:
    """Translate domain failures into JSON error responses."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
    else:
        logger.info(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


for module in (auth, users, sync, chats, messages, favorites, social, stories, calls, anna, privacy):
    app.include_router(module.router)


# =============================================================================
# Operations
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """The process is up and serving."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Ready to accept traffic: tokens can be signed and the schema is in place.
    Answers 503 with a reason otherwise.
    """
    reason = None
    if not settings.AUTH_SECRET:
        reason = "AUTH_SECRET not configured"
    elif not check_db_health():
        reason = "Database not reachable or schema not applied"

    if reason:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason=reason)
    return HealthResponse(status="ready")


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus text exposition of the series in messenger.metrics."""
    body, content_type = render_metrics()
    return Response(content=body, media_type=content_type)
