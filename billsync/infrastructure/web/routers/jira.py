"""
Jira sync router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from billsync.application.dto.jira_dto import (
    PullWorklogsRequestDTO,
    PushWorklogRequestDTO,
    PullResultResponseDTO
)
from billsync.application.dto.time_entry_dto import TimeEntryResponseDTO
from billsync.application.use_cases.sync_use_cases import PullWorklogsUseCase, PushWorklogUseCase
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.domain.services.sync_service import SyncStateMachine
from billsync.infrastructure.web.dependencies import (
    get_coordinator,
    get_current_user_id,
    get_state_machine,
    require_tracker
)
from billsync.infrastructure.web.middleware.error_handler import unwrap_result


router = APIRouter()


@router.post("/pull-worklogs", response_model=PullResultResponseDTO)
async def pull_worklogs(
    request: PullWorklogsRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    coordinator: Annotated[ReconciliationCoordinator, Depends(get_coordinator)]
):
    """
    Reconcile Jira worklogs in a date range into local time entries.

    Worklogs that fail are listed in ``failures``; the rest are committed.
    With ``fail_on_partial`` any failure turns the response into a 207.
    """
    use_case = PullWorklogsUseCase(coordinator).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))


@router.post("/push-worklog", response_model=TimeEntryResponseDTO, dependencies=[Depends(require_tracker)])
async def push_worklog(
    request: PushWorklogRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    state_machine: Annotated[SyncStateMachine, Depends(get_state_machine)]
):
    """Push one time entry to a Jira issue."""
    use_case = PushWorklogUseCase(state_machine).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))
