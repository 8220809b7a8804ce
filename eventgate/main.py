"""
EventGate admin core

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from eventgate.api.middleware.request_id import RequestIdMiddleware
from eventgate.api.v1 import router as api_v1_router
from eventgate.config import get_settings
from eventgate.database import async_session_maker, close_db, init_db
from eventgate.kernel.audit.recorder import AuditRecorder
from eventgate.kernel.errors import StoreFailureError
from eventgate.logging_config import configure_logging, get_logger
from eventgate.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Pending audit writes get a grace period on shutdown before the
    database connections are closed.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    recorder: AuditRecorder = app.state.audit_recorder
    if recorder.pending:
        logger.info("Waiting for %d pending audit writes", recorder.pending)
    drained = await recorder.drain(settings.audit_drain_timeout_seconds)
    if not drained:
        logger.error("Shut down with undelivered audit entries")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Authorization and audit core for the event-validation admin platform.

    ## Features

    - **Capabilities**: role -> action matrix per resource kind
    - **Permission checks**: events and rules, with ownership, global admin,
      resource grants and rule -> event fallback
    - **Grants**: resource-scoped roles, replaced rather than duplicated
    - **Audit log**: append-only before/after history, paginated per team
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.audit_recorder = AuditRecorder(async_session_maker, settings)

app.add_middleware(RequestIdMiddleware)


def _error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
        if status_code >= 500:
            content["request_id"] = req_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(request, exc.status_code, {"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "errors": errors},
    )


@app.exception_handler(StoreFailureError)
async def store_failure_handler(request: Request, exc: StoreFailureError):
    """The store could not answer; this is not a denial."""
    logger.error("Store failure: %s", exc, extra={"operation": exc.operation})
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        {"detail": "Service temporarily unavailable", "code": "store_failure"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__}
    else:
        content = {"detail": "Internal server error"}
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        pending_audit_writes=request.app.state.audit_recorder.pending,
    )


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "eventgate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
