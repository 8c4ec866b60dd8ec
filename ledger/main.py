"""
FastAPI application factory
"""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from ledger.api.v1 import budgets, encryption, templates
from ledger.application.budget import BudgetValidationError
from ledger.config import get_settings
from ledger.errors import (
    DecryptionFailed, IncorrectPin, InvalidPeriodInput, InvalidRecoveryKey, KeyDerivationFailed,
    LedgerError, RecoveryKeyAlreadyExists, RecoveryNotConfigured,
)
from ledger.infrastructure.db.session import check_db_connection

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Status code per error kind; anything not listed is a 500
ERROR_STATUS = {
    IncorrectPin: 403,
    InvalidPeriodInput: 400,
    RecoveryNotConfigured: 400,
    InvalidRecoveryKey: 400,
    RecoveryKeyAlreadyExists: 409,
    KeyDerivationFailed: 500,
    DecryptionFailed: 500,
}


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the exception handlers did not, including sync routes"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content="Internal Server Error", status_code=500)


def _status_for(exc: LedgerError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        # Server-side problem: details go to the log, not to the client
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"code": exc.code, "detail": "Internal error"})
    return JSONResponse(status_code=status_code, content={"code": exc.code, "detail": str(exc)})


async def budget_validation_handler(request: Request, exc: BudgetValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"code": "invalid_budget_input", "detail": str(exc)})


def create_app() -> FastAPI:
    """
    Application factory

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Pulpe Ledger",
        debug=settings.DEBUG,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(BudgetValidationError, budget_validation_handler)

    app.include_router(encryption.router)
    app.include_router(budgets.router)
    app.include_router(templates.router)

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


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ledger.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
