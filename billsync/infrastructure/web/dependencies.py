"""
FastAPI dependencies.
Resolves the session user and wires domain services from application state.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from billsync.config import Settings
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.issue_tracker import IssueTrackerClient
from billsync.domain.services.aggregation_service import WorklogAggregator
from billsync.domain.services.billing_service import InvoiceBuilder
from billsync.domain.services.numbering_service import InvoiceNumberSequence
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.domain.services.sync_service import SyncStateMachine
from billsync.infrastructure.pdf.pdf_service import InvoicePDFService


def get_app_settings(request: Request) -> Settings:
    """Dependency to get the settings the app was built with."""
    return request.app.state.settings


def get_store(request: Request) -> BackingStore:
    """Dependency to get the backing store."""
    return request.app.state.store


def get_sequence(request: Request) -> InvoiceNumberSequence:
    """Dependency to get the invoice number sequence."""
    return request.app.state.sequence


def get_pdf_service(request: Request) -> InvoicePDFService:
    """Dependency to get the invoice PDF renderer."""
    return request.app.state.pdf_service


def get_tracker(request: Request) -> Optional[IssueTrackerClient]:
    """Dependency to get the issue tracker client, if one is configured."""
    return request.app.state.tracker


def require_tracker(tracker: Annotated[Optional[IssueTrackerClient], Depends(get_tracker)]) -> IssueTrackerClient:
    """Dependency that fails with 503 when no issue tracker is configured."""
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error_code": "TRACKER_NOT_CONFIGURED",
                "message": "Issue tracker credentials are not configured",
                "retryable": False
            }
        )
    return tracker


async def get_current_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    """
    FastAPI dependency to get the session user from the X-User-Id header.

    Raises:
        HTTPException: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "X-User-Id header is required",
                "retryable": False
            }
        )
    return x_user_id.strip()


def get_state_machine(
    store: Annotated[BackingStore, Depends(get_store)],
    tracker: Annotated[Optional[IssueTrackerClient], Depends(get_tracker)],
    settings: Annotated[Settings, Depends(get_app_settings)]
) -> SyncStateMachine:
    """Dependency to get the entry state machine."""
    return SyncStateMachine(
        store,
        tracker,
        store_timeout=settings.store_timeout_seconds,
        tracker_timeout=settings.tracker_timeout_seconds
    )


def get_invoice_builder(
    store: Annotated[BackingStore, Depends(get_store)],
    sequence: Annotated[InvoiceNumberSequence, Depends(get_sequence)],
    state_machine: Annotated[SyncStateMachine, Depends(get_state_machine)],
    settings: Annotated[Settings, Depends(get_app_settings)]
) -> InvoiceBuilder:
    """Dependency to get the invoice builder."""
    return InvoiceBuilder(
        store,
        sequence,
        default_hourly_rate=settings.default_hourly_rate,
        payment_terms_days=settings.payment_terms_days,
        store_timeout=settings.store_timeout_seconds,
        state_machine=state_machine
    )


def get_coordinator(
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    tracker: Annotated[IssueTrackerClient, Depends(require_tracker)],
    settings: Annotated[Settings, Depends(get_app_settings)]
) -> ReconciliationCoordinator:
    """Dependency to get a reconciliation coordinator acting for the session user."""
    return ReconciliationCoordinator(
        store,
        tracker,
        user_id,
        aggregator=WorklogAggregator(settings.bucket_granularity),
        reconciled_entries_billable=settings.reconciled_entries_billable,
        store_timeout=settings.store_timeout_seconds,
        tracker_timeout=settings.tracker_timeout_seconds
    )
