"""
FastAPI Application Entry Point.

This is the main application file for the Ledger Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from ledger_backend.app.core.config import settings
from ledger_backend.app.api.v1.router import router as api_v1_router
from ledger_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from ledger_backend.app.core.redis_client import ping_redis
from ledger_backend.app.db.session import engine, Base
from ledger_backend.app.domain.ledger.sweeper import start_overdue_sweeper, stop_overdue_sweeper
from ledger_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from ledger_backend.app.models.audit_log import AuditLog
from ledger_backend.app.models.counterparty import Supplier, Customer
from ledger_backend.app.models.installment_plan import InstallmentPlan  # Before records for FK
from ledger_backend.app.models.ledger_record import AccountPayable, AccountReceivable
from ledger_backend.app.models.payment_entry import PaymentEntry

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the scheduled overdue sweeper and stops it on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sweeper_task = start_overdue_sweeper()
    logger.info("%s started", settings.app_name)
    yield
    await stop_overdue_sweeper(sweeper_task)
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Accounts payable and receivable ledger",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
