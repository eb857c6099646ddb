"""
Time tracking router.
Handles time entry CRUD, the billable flag and pushing entries to Jira.
"""

from datetime import date
from typing import Annotated, Optional

import pydantic
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from billsync.application.dto.base_dto import IdRequestDTO
from billsync.application.dto.time_entry_dto import (
    CreateTimeEntryRequestDTO,
    UpdateTimeEntryRequestDTO,
    ListTimeEntriesRequestDTO,
    SyncTimeEntryRequestDTO,
    TimeEntryResponseDTO,
    TimeEntryListResponseDTO
)
from billsync.application.use_cases.time_entry_use_cases import (
    CreateTimeEntryUseCase,
    GetTimeEntryUseCase,
    ListTimeEntriesUseCase,
    UpdateTimeEntryUseCase,
    DeleteTimeEntryUseCase,
    MarkBillableUseCase,
    SyncTimeEntryUseCase
)
from billsync.config import Settings
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.services.sync_service import SyncStateMachine
from billsync.infrastructure.web.dependencies import (
    get_app_settings,
    get_current_user_id,
    get_state_machine,
    get_store
)
from billsync.infrastructure.web.middleware.error_handler import unwrap_result


router = APIRouter()


def get_list_request(
    start_date: Optional[date] = Query(None, description="Filter from date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Filter to date (YYYY-MM-DD)"),
    billable: Optional[bool] = Query(None, description="Filter by billable flag"),
    invoiced: Optional[bool] = Query(None, description="Filter by invoiced flag"),
    invoice_id: Optional[str] = Query(None, description="Filter by invoice"),
    page: Optional[int] = Query(None, ge=1, description="Page number"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Items per page")
) -> ListTimeEntriesRequestDTO:
    """Dependency to build the list filter from query parameters."""
    try:
        return ListTimeEntriesRequestDTO(
            start_date=start_date,
            end_date=end_date,
            billable=billable,
            invoiced=invoiced,
            invoice_id=invoice_id,
            page=page,
            limit=limit
        )
    except pydantic.ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error_code": "INVALID_INPUT", "message": str(e), "retryable": False}
        )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TimeEntryResponseDTO)
async def create_time_entry(
    request: CreateTimeEntryRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """
    Create a manual time entry.

    - **description**: Description of work performed
    - **duration**: Decimal hours (``hours`` is accepted too)
    - **date**: Calendar day of the work
    - **billable**: Whether this time is billable (defaults to false)
    - **hourly_rate**: Override hourly rate for this entry
    """
    use_case = CreateTimeEntryUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))


@router.get("", response_model=TimeEntryListResponseDTO)
async def list_time_entries(
    request: Annotated[ListTimeEntriesRequestDTO, Depends(get_list_request)],
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """
    List the user's time entries ordered by date.

    Pass **page** and/or **limit** to get one page; totals still cover every match.
    """
    use_case = ListTimeEntriesUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))


@router.get("/{entry_id}", response_model=TimeEntryResponseDTO)
async def get_time_entry(
    entry_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Get a specific time entry by ID."""
    use_case = GetTimeEntryUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(IdRequestDTO(id=entry_id)))


@router.put("/{entry_id}", response_model=TimeEntryResponseDTO)
@router.patch("/{entry_id}", response_model=TimeEntryResponseDTO)
async def update_time_entry(
    entry_id: str,
    request: UpdateTimeEntryRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """
    Update a time entry. Invoiced entries cannot be edited.

    Only provided fields are changed.
    """
    use_case = UpdateTimeEntryUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request.model_copy(update={"id": entry_id})))


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(
    entry_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    store: Annotated[BackingStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_app_settings)]
):
    """Delete a time entry that is not invoiced."""
    use_case = DeleteTimeEntryUseCase(store, settings.store_timeout_seconds).set_current_user(user_id)
    unwrap_result(await use_case.execute(IdRequestDTO(id=entry_id)))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{entry_id}/billable", response_model=TimeEntryResponseDTO)
async def mark_time_entry_billable(
    entry_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    state_machine: Annotated[SyncStateMachine, Depends(get_state_machine)]
):
    """Flag a time entry as billable. Repeating the call changes nothing."""
    use_case = MarkBillableUseCase(state_machine).set_current_user(user_id)
    return unwrap_result(await use_case.execute(IdRequestDTO(id=entry_id)))


@router.post("/{entry_id}/sync-jira", response_model=TimeEntryResponseDTO)
async def sync_time_entry_to_jira(
    entry_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    state_machine: Annotated[SyncStateMachine, Depends(get_state_machine)],
    request: Annotated[Optional[SyncTimeEntryRequestDTO], Body()] = None
):
    """
    Push a time entry to a Jira issue as a worklog.

    The body is optional: without an **issue_key** the entry's own
    jira_issue_key is used. Syncing again to the same issue is a no-op.
    """
    use_case = SyncTimeEntryUseCase(state_machine).set_current_user(user_id)
    request = request or SyncTimeEntryRequestDTO()
    return unwrap_result(await use_case.execute(request.model_copy(update={"id": entry_id})))
