"""
Tracker sync and monthly invoice data use cases.
"""

import asyncio
from typing import Optional

from billsync.application.use_cases.base_use_case import (
    AuthorizedUseCase, CommandUseCase, QueryUseCase
)
from billsync.application.dto.invoice_data_dto import (
    MonthlyInvoiceDataRequestDTO, MonthlyInvoiceDataResponseDTO
)
from billsync.application.dto.jira_dto import (
    PullWorklogsRequestDTO, PushWorklogRequestDTO, PullResultResponseDTO
)
from billsync.application.dto.time_entry_dto import TimeEntryResponseDTO
from billsync.domain.models.base import EntityNotFoundError, ValidationError
from billsync.domain.models.value_objects import DateRange
from billsync.domain.services.external_calls import call_with_timeout
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.domain.services.sync_service import SyncStateMachine


class PullWorklogsUseCase(AuthorizedUseCase, CommandUseCase[PullWorklogsRequestDTO, PullResultResponseDTO]):
    """Use case for reconciling tracker worklogs into local entries."""

    def __init__(self, coordinator: ReconciliationCoordinator, cancel_event: Optional[asyncio.Event] = None):
        super().__init__()
        self.coordinator = coordinator
        self.cancel_event = cancel_event

    async def _execute_command_logic(self, request: PullWorklogsRequestDTO) -> PullResultResponseDTO:
        result = await self.coordinator.pull(
            DateRange(request.start_date, request.end_date),
            issue_keys=request.issue_keys,
            cancel_event=self.cancel_event
        )
        if request.fail_on_partial:
            result.raise_for_failures()
        return PullResultResponseDTO.from_domain(result)


class PushWorklogUseCase(AuthorizedUseCase, CommandUseCase[PushWorklogRequestDTO, TimeEntryResponseDTO]):
    """Use case for pushing one entry to the tracker by ID."""

    def __init__(self, state_machine: SyncStateMachine):
        super().__init__()
        self.state_machine = state_machine

    async def _execute_command_logic(self, request: PushWorklogRequestDTO) -> TimeEntryResponseDTO:
        entry = await call_with_timeout(
            self.state_machine.store.get_entry(request.time_entry_id),
            self.state_machine.store_timeout,
            "get_entry"
        )
        if entry is None or entry.user_id != self.current_user_id:
            raise EntityNotFoundError("TimeEntry", request.time_entry_id)

        synced = await self.state_machine.sync_to_tracker(entry.id, request.issue_key)
        return TimeEntryResponseDTO.from_entity(synced)


class GetMonthlyInvoiceDataUseCase(AuthorizedUseCase, QueryUseCase[MonthlyInvoiceDataRequestDTO, MonthlyInvoiceDataResponseDTO]):
    """Use case for the monthly per-epic worklog breakdown; per issue when no epics are named."""

    def __init__(self, coordinator: ReconciliationCoordinator):
        super().__init__()
        self.coordinator = coordinator

    async def _execute_business_logic(self, request: MonthlyInvoiceDataRequestDTO) -> MonthlyInvoiceDataResponseDTO:
        if not request.month:
            raise ValidationError("Month is required", "month")

        if request.epics:
            data = await self.coordinator.monthly_invoice_data(
                request.month,
                [epic.to_domain() for epic in request.epics]
            )
        else:
            data = await self.coordinator.monthly_invoice_data_by_issue(request.month)
        return MonthlyInvoiceDataResponseDTO.from_domain(data)
