from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from stagepipe.api.routes import router as api_router
from stagepipe.core.context import get_correlation_id
from stagepipe.core.config import get_settings
from stagepipe.core.errors import StagepipeError
from stagepipe.events import InternalEvent, event_bus
from stagepipe.logging import configure_logging
from stagepipe.middleware.correlation_id import CorrelationIdMiddleware
from stagepipe.middleware.request_logging import RequestLoggingMiddleware
from stagepipe.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("stagepipe.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_project_stage_changed(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    if not isinstance(payload, dict):
        return
    logger.info(
        "project.stage_changed",
        extra={
            "event_name": event.name,
            "project_id": payload.get("project_id"),
            "previous_status": payload.get("from_status"),
            "attempted_status": payload.get("to_status"),
            "principal_id": event.payload.get("actor_user_id"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        event_bus.subscribe("project.stage_changed", _on_project_stage_changed)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "stagepipe-api"})
    yield


async def stagepipe_error_handler(request: Request, exc: StagepipeError) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "details": exc.details,
            "correlation_id": correlation_id,
        },
    )


app = FastAPI(title="Stagepipe API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(StagepipeError, stagepipe_error_handler)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("stagepipe-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
