"""Timeout wrapper for calls to external collaborators."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from billsync.domain.models.base import OperationTimeoutError

T = TypeVar("T")


async def call_with_timeout(awaitable: Awaitable[T], timeout: Optional[float], operation: str) -> T:
    """
    Await a store, tracker or sequence call, bounded by ``timeout`` seconds.
    Raises OperationTimeoutError on expiry. ``None`` waits indefinitely.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(operation, timeout) from None
