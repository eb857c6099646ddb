"""
Monthly invoice data router.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from billsync.application.dto.invoice_data_dto import (
    EpicRequestDTO,
    MonthlyInvoiceDataRequestDTO,
    MonthlyInvoiceDataResponseDTO
)
from billsync.application.use_cases.sync_use_cases import GetMonthlyInvoiceDataUseCase
from billsync.domain.services.reconciliation_service import ReconciliationCoordinator
from billsync.infrastructure.web.dependencies import get_coordinator, get_current_user_id
from billsync.infrastructure.web.middleware.error_handler import unwrap_result


router = APIRouter()


@router.post("/monthly/{month}", response_model=MonthlyInvoiceDataResponseDTO)
async def get_monthly_invoice_data(
    month: str,
    request: MonthlyInvoiceDataRequestDTO,
    user_id: Annotated[str, Depends(get_current_user_id)],
    coordinator: Annotated[ReconciliationCoordinator, Depends(get_coordinator)]
):
    """
    Break down a month's Jira worklogs per epic and time bucket.

    - **month**: YYYY-MM
    - **epics**: Epics to include, in output order; keys must be unique
    """
    use_case = GetMonthlyInvoiceDataUseCase(coordinator).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request.model_copy(update={"month": month})))


@router.get("/monthly/{month}", response_model=MonthlyInvoiceDataResponseDTO)
async def get_monthly_invoice_data_for_epics(
    month: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    coordinator: Annotated[ReconciliationCoordinator, Depends(get_coordinator)],
    epic: Annotated[Optional[List[str]], Query()] = None
):
    """
    Same breakdown as the POST form, with epics given as repeated ``epic`` query params.

    Without any epic the month's worklogs are grouped per issue.
    """
    try:
        request = MonthlyInvoiceDataRequestDTO(
            month=month,
            epics=[EpicRequestDTO(epic_key=key) for key in epic or []]
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e
    use_case = GetMonthlyInvoiceDataUseCase(coordinator).set_current_user(user_id)
    return unwrap_result(await use_case.execute(request))
