"""
Loan Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..errors import (
    LoanLedgerError, NotFoundError, InvalidStateError, LoanValidationError, ConflictError
)
from ..logging_config import setup_logging, get_logger, log_action
from .loans import router as loans_router, router_v2 as loans_v2_router


ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 400,
    LoanValidationError: 400,
    ConflictError: 409,
}


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, "loan_ledger", config.log_format)
    logger = get_logger("loan_ledger.api")

    app = FastAPI(
        title="Loan Ledger API",
        description="Loan lifecycle, amortization schedules, payments and abonos",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    @app.exception_handler(LoanLedgerError)
    async def loan_error_handler(request: Request, exc: LoanLedgerError):
        status_code = ERROR_STATUS.get(type(exc), 400)
        log_action(
            logger, "warning", exc.message,
            action=request.url.path, extra={"kind": exc.kind, "status_code": status_code}
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(loans_router, prefix="/v1/loan", tags=["Loans"])
    app.include_router(loans_v2_router, prefix="/v2/loan", tags=["Loans v2"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_ledger_api",
            "version": __version__
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "loan_ledger.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
