"""
Use case plumbing shared by every HTTP operation.
Use cases never raise: domain errors come back as a UseCaseResult carrying
the error code and whether a retry can succeed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, TypeVar, Generic
from dataclasses import dataclass
from datetime import datetime

import pydantic

from billsync.domain.models.base import DomainException, ValidationError, utcnow

logger = logging.getLogger(__name__)


T = TypeVar('T')
R = TypeVar('R')


@dataclass
class UseCaseResult(Generic[T]):
    """Outcome of one use case run."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def success_result(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "UseCaseResult[T]":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def error_result(
        cls,
        error: str,
        error_code: Optional[str] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "UseCaseResult[T]":
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            retryable=retryable,
            metadata=metadata
        )

    @classmethod
    def from_exception(cls, exc: Exception) -> "UseCaseResult[T]":
        """Map an exception to its error code and retryable flag."""
        if isinstance(exc, DomainException):
            return cls.error_result(exc.message, exc.code, bool(exc.retryable))
        elif isinstance(exc, pydantic.ValidationError):
            return cls.error_result(str(exc), ValidationError.code)
        else:
            return cls.error_result(str(exc), "UNKNOWN_ERROR")


class BaseUseCase(ABC, Generic[T, R]):
    """
    Template for use cases: validate, run, wrap the outcome.
    """

    def __init__(self):
        self.execution_start: Optional[datetime] = None
        self.execution_end: Optional[datetime] = None

    async def execute(self, request: T) -> UseCaseResult[R]:
        """Run the use case. Exceptions are converted, never raised."""
        self.execution_start = utcnow()

        try:
            # Validate input
            await self._validate_request(request)

            # Execute business logic
            result = await self._execute_business_logic(request)

            self.execution_end = utcnow()
            execution_time = (self.execution_end - self.execution_start).total_seconds()

            return UseCaseResult.success_result(
                result,
                metadata={
                    "execution_time_seconds": execution_time,
                    "executed_at": self.execution_end.isoformat()
                }
            )

        except Exception as exc:
            self.execution_end = utcnow()
            execution_time = (self.execution_end - self.execution_start).total_seconds()

            if not isinstance(exc, (DomainException, pydantic.ValidationError)):
                logger.error(f"Unexpected error in {type(self).__name__}: {exc}", exc_info=True)

            error_result = UseCaseResult.from_exception(exc)
            error_result.metadata = {
                "execution_time_seconds": execution_time,
                "failed_at": self.execution_end.isoformat(),
                "exception_type": type(exc).__name__
            }
            details = getattr(exc, "failures", None)
            if details:
                error_result.metadata["failures"] = [
                    failure.to_dict() if hasattr(failure, "to_dict") else failure for failure in details
                ]

            return error_result

    async def _validate_request(self, request: T) -> None:
        """Validate the request against its DTO rules."""
        if isinstance(request, pydantic.BaseModel):
            # Re-run validators on requests built with model_copy
            type(request).model_validate(request.model_dump(by_alias=False))

    @abstractmethod
    async def _execute_business_logic(self, request: T) -> R:
        pass


class QueryUseCase(BaseUseCase[T, R]):
    """Read-only use case."""
    pass


class CommandUseCase(BaseUseCase[T, R]):
    """Use case that writes to the store or the tracker."""

    async def _execute_business_logic(self, request: T) -> R:
        result = await self._execute_command_logic(request)
        logger.debug(f"{type(self).__name__} completed")
        return result

    @abstractmethod
    async def _execute_command_logic(self, request: T) -> R:
        pass


class AuthorizedUseCase(BaseUseCase[T, R]):
    """
    Mixin for use cases acting on behalf of a session user.
    """

    def __init__(self):
        super().__init__()
        self.current_user_id: Optional[str] = None

    def set_current_user(self, user_id: str) -> "AuthorizedUseCase":
        """Act on behalf of the session user. Returns self for chaining."""
        self.current_user_id = user_id
        return self

    async def _validate_request(self, request: T) -> None:
        """Validate request with authentication check."""
        await super()._validate_request(request)

        if not self.current_user_id:
            raise ValidationError("User authentication required", "user_id")
