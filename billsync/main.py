"""
Main FastAPI application entry point.
Configures the app, middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from typing import Dict, Any, Optional, Tuple

from billsync.config import Settings, get_settings
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.issue_tracker import IssueTrackerClient
from billsync.domain.services.numbering_service import InMemoryInvoiceNumberSequence, InvoiceNumberSequence
from billsync.infrastructure.db.database import create_db_engine, create_session_factory, init_db
from billsync.infrastructure.repositories import (
    InMemoryBackingStore,
    SQLAlchemyBackingStore,
    SQLAlchemyInvoiceNumberSequence
)
from billsync.infrastructure.pdf import InvoicePDFService
from billsync.infrastructure.tracker import JiraClient
from billsync.infrastructure.web.middleware.error_handler import ErrorHandlerMiddleware
from billsync.infrastructure.web.routers import (
    time_entries,
    invoices,
    invoice_data,
    jira
)

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_persistence(settings: Settings) -> Tuple[BackingStore, InvoiceNumberSequence]:
    """
    Build the backing store and invoice number sequence.
    Uses SQLAlchemy when a database URL is configured, memory otherwise.
    """
    if settings.database_url:
        engine = create_db_engine(settings.database_url, echo=settings.debug)
        init_db(engine)
        session_factory = create_session_factory(engine)
        return (
            SQLAlchemyBackingStore(session_factory),
            SQLAlchemyInvoiceNumberSequence(session_factory, prefix=settings.invoice_number_prefix)
        )

    return InMemoryBackingStore(), InMemoryInvoiceNumberSequence(prefix=settings.invoice_number_prefix)


def build_tracker(settings: Settings) -> Optional[IssueTrackerClient]:
    """Build the Jira client when credentials are configured."""
    if not settings.jira_configured:
        return None
    return JiraClient(
        settings.jira_base_url,
        settings.jira_user_email,
        settings.jira_api_token,
        timeout=settings.tracker_timeout_seconds
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting {settings.api_title} v{settings.api_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Backing store: {type(app.state.store).__name__}")
    if app.state.tracker is None:
        logger.warning("Jira credentials not configured; tracker endpoints are disabled")

    yield

    # Shutdown
    logger.info("Shutting down application")


def create_application(
    settings: Optional[Settings] = None,
    store: Optional[BackingStore] = None,
    sequence: Optional[InvoiceNumberSequence] = None,
    tracker: Optional[IssueTrackerClient] = None,
    pdf_service: Optional[InvoicePDFService] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators not passed in are built from settings.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if store is None:
        store, default_sequence = build_persistence(settings)
        sequence = sequence or default_sequence
    elif sequence is None:
        sequence = InMemoryInvoiceNumberSequence(prefix=settings.invoice_number_prefix)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        debug=settings.debug,
        docs_url=f"{settings.api_prefix}/docs" if settings.debug else None,
        redoc_url=f"{settings.api_prefix}/redoc" if settings.debug else None,
        openapi_url=f"{settings.api_prefix}/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.store = store
    app.state.sequence = sequence
    app.state.tracker = tracker if tracker is not None else build_tracker(settings)
    app.state.pdf_service = pdf_service or InvoicePDFService(settings.company, settings.default_currency)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add custom error handler middleware
    app.add_middleware(ErrorHandlerMiddleware)

    # Include routers
    app.include_router(
        time_entries.router,
        prefix=f"{settings.api_prefix}/time-entries",
        tags=["Time Tracking"]
    )
    app.include_router(
        invoices.router,
        prefix=f"{settings.api_prefix}/invoices",
        tags=["Invoices"]
    )
    app.include_router(
        invoice_data.router,
        prefix=f"{settings.api_prefix}/invoice-data",
        tags=["Invoice Data"]
    )
    app.include_router(
        jira.router,
        prefix=f"{settings.api_prefix}/jira",
        tags=["Jira"]
    )

    # Health check endpoint
    @app.get(f"{settings.api_prefix}/health")
    async def health_check() -> Dict[str, Any]:
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": settings.api_version,
            "tracker_configured": app.state.tracker is not None
        }

    # Custom 404 handler
    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Custom 404 error handler; keeps details raised by the routers."""
        detail = getattr(exc, "detail", None)
        if isinstance(detail, dict):
            return JSONResponse(status_code=404, content={"detail": detail})
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "message": f"The path {request.url.path} was not found",
                "path": request.url.path
            }
        )

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "billsync.main:create_application",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
