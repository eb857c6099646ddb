"""
Time Entry use cases for the application layer.
Implements time entry CRUD and the sync transitions exposed over HTTP.
"""

from decimal import Decimal
from typing import Optional

from billsync.application.use_cases.base_use_case import (
    AuthorizedUseCase, CommandUseCase, QueryUseCase
)
from billsync.application.dto.base_dto import IdRequestDTO
from billsync.application.dto.time_entry_dto import (
    CreateTimeEntryRequestDTO, UpdateTimeEntryRequestDTO, ListTimeEntriesRequestDTO,
    SyncTimeEntryRequestDTO, TimeEntryResponseDTO, TimeEntryListResponseDTO
)
from billsync.domain.models.base import EntityNotFoundError, ImmutableEntryError, ValidationError
from billsync.domain.models.time_entry import TimeEntry
from billsync.domain.repositories.backing_store import BackingStore
from billsync.domain.repositories.time_entry_repository import TimeEntryFilter
from billsync.domain.services.external_calls import call_with_timeout
from billsync.domain.services.sync_service import SyncStateMachine
from billsync.domain.services.validation_service import TimeEntryValidator
from billsync.infrastructure.pagination import PaginationParams, paginate


class TimeEntryAccessMixin:
    """Loads entries owned by the current user; other users' entries are not found."""

    store: BackingStore
    store_timeout: Optional[float]
    current_user_id: Optional[str]

    async def _get_owned_entry(self, entry_id: str) -> TimeEntry:
        entry = await call_with_timeout(self.store.get_entry(entry_id), self.store_timeout, "get_entry")
        if entry is None or entry.user_id != self.current_user_id:
            raise EntityNotFoundError("TimeEntry", entry_id)
        return entry


class CreateTimeEntryUseCase(AuthorizedUseCase, CommandUseCase[CreateTimeEntryRequestDTO, TimeEntryResponseDTO]):
    """Use case for creating a manual time entry."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout
        self.validator = TimeEntryValidator()

    async def _execute_command_logic(self, request: CreateTimeEntryRequestDTO) -> TimeEntryResponseDTO:
        data = self.validator.validate_create(request.to_input())

        entry = TimeEntry.create_manual_entry(
            user_id=self.current_user_id,
            description=data.description,
            duration=data.duration,
            date=data.date,
            billable=bool(data.billable),
            hourly_rate=data.hourly_rate,
            jira_issue_key=data.jira_issue_key
        )

        saved = await call_with_timeout(self.store.save_entry(entry), self.store_timeout, "save_entry")
        return TimeEntryResponseDTO.from_entity(saved)


class GetTimeEntryUseCase(TimeEntryAccessMixin, AuthorizedUseCase, QueryUseCase[IdRequestDTO, TimeEntryResponseDTO]):
    """Use case for getting one time entry."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_business_logic(self, request: IdRequestDTO) -> TimeEntryResponseDTO:
        return TimeEntryResponseDTO.from_entity(await self._get_owned_entry(request.id))


class ListTimeEntriesUseCase(AuthorizedUseCase, QueryUseCase[ListTimeEntriesRequestDTO, TimeEntryListResponseDTO]):
    """Use case for listing the current user's time entries, one page at a time when asked."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_business_logic(self, request: ListTimeEntriesRequestDTO) -> TimeEntryListResponseDTO:
        criteria = TimeEntryFilter(
            user_id=self.current_user_id,
            start_date=request.start_date,
            end_date=request.end_date,
            billable=request.billable,
            invoiced=request.invoiced,
            invoice_id=request.invoice_id
        )
        entries = await call_with_timeout(self.store.list_entries(criteria), self.store_timeout, "list_entries")
        total_hours = sum((entry.duration for entry in entries), Decimal("0"))
        page, metadata = paginate(entries, PaginationParams(page=request.page, limit=request.limit))

        return TimeEntryListResponseDTO(
            items=[TimeEntryResponseDTO.from_entity(entry) for entry in page],
            total=len(entries),
            total_hours=float(total_hours),
            page=metadata.page if metadata else None,
            limit=metadata.limit if metadata else None,
            total_pages=metadata.total_pages if metadata else None
        )


class UpdateTimeEntryUseCase(TimeEntryAccessMixin, AuthorizedUseCase, CommandUseCase[UpdateTimeEntryRequestDTO, TimeEntryResponseDTO]):
    """Use case for editing a time entry that is not invoiced."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout
        self.validator = TimeEntryValidator()

    async def _execute_command_logic(self, request: UpdateTimeEntryRequestDTO) -> TimeEntryResponseDTO:
        if not request.id:
            raise ValidationError("Time entry ID is required", "id")

        entry = await self._get_owned_entry(request.id)
        version = entry.version
        data = self.validator.validate_update(entry, request.to_input())

        entry.update_info(
            description=data.description,
            duration=data.duration,
            date=data.date,
            billable=data.billable,
            hourly_rate=data.hourly_rate
        )
        if data.jira_issue_key is not None and not entry.is_synced:
            entry.jira_issue_key = data.jira_issue_key

        saved = await call_with_timeout(
            self.store.save_entry(entry, expected_version=version),
            self.store_timeout,
            "save_entry"
        )
        return TimeEntryResponseDTO.from_entity(saved)


class DeleteTimeEntryUseCase(TimeEntryAccessMixin, AuthorizedUseCase, CommandUseCase[IdRequestDTO, bool]):
    """Use case for deleting a time entry that is not invoiced."""

    def __init__(self, store: BackingStore, store_timeout: Optional[float] = None):
        super().__init__()
        self.store = store
        self.store_timeout = store_timeout

    async def _execute_command_logic(self, request: IdRequestDTO) -> bool:
        entry = await self._get_owned_entry(request.id)
        if not entry.can_be_deleted:
            raise ImmutableEntryError(entry.id, "delete")

        return await call_with_timeout(self.store.delete_entry(entry.id), self.store_timeout, "delete_entry")


class MarkBillableUseCase(TimeEntryAccessMixin, AuthorizedUseCase, CommandUseCase[IdRequestDTO, TimeEntryResponseDTO]):
    """Use case for flagging an entry as billable."""

    def __init__(self, state_machine: SyncStateMachine):
        super().__init__()
        self.state_machine = state_machine
        self.store = state_machine.store
        self.store_timeout = state_machine.store_timeout

    async def _execute_command_logic(self, request: IdRequestDTO) -> TimeEntryResponseDTO:
        await self._get_owned_entry(request.id)
        return TimeEntryResponseDTO.from_entity(await self.state_machine.mark_billable(request.id))


class SyncTimeEntryUseCase(TimeEntryAccessMixin, AuthorizedUseCase, CommandUseCase[SyncTimeEntryRequestDTO, TimeEntryResponseDTO]):
    """Use case for pushing an entry to the tracker, on the requested issue or the entry's own."""

    def __init__(self, state_machine: SyncStateMachine):
        super().__init__()
        self.state_machine = state_machine
        self.store = state_machine.store
        self.store_timeout = state_machine.store_timeout

    async def _execute_command_logic(self, request: SyncTimeEntryRequestDTO) -> TimeEntryResponseDTO:
        if not request.id:
            raise ValidationError("Time entry ID is required", "id")

        entry = await self._get_owned_entry(request.id)
        issue_key = request.issue_key or entry.jira_issue_key
        if not issue_key:
            raise ValidationError("Issue key is required when the entry has no jira_issue_key", "issue_key")

        entry = await self.state_machine.sync_to_tracker(request.id, issue_key)
        return TimeEntryResponseDTO.from_entity(entry)
