"""Application configuration and router setup."""

import logging

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware import cors
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from components.core import init_db
from components.core.config import get_settings
from components.core.errors import LedgerError
from components.core.logging_config import configure_logging
from restapi.endpoints import health_check, payment, remittance, report, settlement, transaction

logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Answer a ledger error with its status code and ``{"error": message}``."""
    logger.warning(
        "request rejected",
        extra={"path": request.url.path, "error_code": exc.code, "error": exc.message, **exc.details},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Flatten request validation failures into a single error message."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=422, content={"error": "; ".join(messages) or "Invalid request"})


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    app = fastapi.FastAPI(
        title="Remittance Ledger",
        description="Remittance settlement and partial payment ledger",
        version="1.0.0",
        lifespan=init_db.lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        cors.CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Include routers
    app.include_router(health_check.router)
    app.include_router(remittance.router)
    app.include_router(settlement.router)
    app.include_router(transaction.router)
    app.include_router(payment.router)
    app.include_router(report.router)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title="Remittance Ledger",
            version="1.0.0",
            description="Remittance settlement and partial payment ledger",
            routes=app.routes,
        )
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app
