"""
Wazzup Relay - Main FastAPI Application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wazzup_relay import __version__
from wazzup_relay.api.routes import router as api_router
from wazzup_relay.core.config import settings
from wazzup_relay.core.logging import setup_logging, get_logger
from wazzup_relay.core.middleware import setup_middleware, setup_exception_handlers
from wazzup_relay.domain.services.health_service import check_readiness
from wazzup_relay.runtime import RelayRuntime

# Setup logging before anything else
setup_logging(
    level=settings.log_level,
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the relay runtime, start the queue worker, close everything on shutdown"""
    logger.info("Starting application", extra_data={
        "app_name": settings.APP_NAME,
        "webhook_path": settings.WAZZUP_WEBHOOK_PATH,
        "queue_enabled": settings.USE_WAZZUP_QUEUE,
    })
    runtime = RelayRuntime(settings)
    app.state.runtime = runtime
    await runtime.start()

    yield

    logger.info("Shutting down application")
    await runtime.stop()
    logger.info("Relay runtime stopped")


_OPENAPI_TAGS = [
    {"name": "webhooks", "description": "Wazzup webhook: customer messages in, agent replies out."},
    {"name": "admin", "description": "Diagnostics: outbound queue, dead letters and per-chat stop flags."},
    {"name": "Health", "description": "Liveness and readiness probes."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version=__version__,
    description="Relay between Wazzup chats and the conversational agent.",
    openapi_tags=_OPENAPI_TAGS,
    lifespan=lifespan,
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router)


@app.get(
    "/health",
    summary="Liveness probe",
    description="The process is alive and answers. Dependencies are not checked.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description=(
        "Checks Redis and the queue worker. "
        "Returns status=healthy when everything is fine, or status=degraded with details."
    ),
    responses={
        200: {
            "description": "All dependencies are fine",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "redis": "ok", "queue_worker": "ok"}
                }
            },
        },
        503: {
            "description": "At least one dependency is unavailable",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "redis": "error: redis_unavailable",
                        "queue_worker": "ok",
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check(request: Request) -> JSONResponse:
    result = await check_readiness(request.app.state.runtime)
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
