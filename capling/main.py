"""
FastAPI application factory
"""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from capling.api.v1 import admin, badges, budget, progression, transactions
from capling.application.errors import (
    CaplingError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)
from capling.config import get_settings
from capling.infrastructure.db.session import check_db_connection

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[CaplingError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    UpstreamError: 503,
    PersistenceError: 500,
}


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the exception handlers did not, sync routes included"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return JSONResponse({"error": "internal_error", "detail": "Internal Server Error"}, status_code=500)


def status_for(exc: CaplingError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


async def capling_error_handler(request: Request, exc: CaplingError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    headers = {"Retry-After": "5"} if getattr(exc, "retryable", False) else None
    return JSONResponse({"error": exc.code, "detail": str(exc)}, status_code=status_code, headers=headers)


def create_app() -> FastAPI:
    """
    Application factory - builds and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Capling",
        debug=settings.DEBUG,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    app.add_exception_handler(CaplingError, capling_error_handler)

    app.include_router(transactions.router)
    app.include_router(budget.router)
    app.include_router(progression.router)
    app.include_router(badges.router)
    app.include_router(admin.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "capling.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
