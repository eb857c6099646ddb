"""
Unit tests for the external call timeout wrapper.
"""

import asyncio
import pytest

from billsync.domain.models.base import OperationTimeoutError
from billsync.domain.services.external_calls import call_with_timeout


async def slow(value, delay):
    await asyncio.sleep(delay)
    return value


class TestCallWithTimeout:
    """Test cases for call_with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_value(self):
        assert await call_with_timeout(slow("ok", 0), 1.0, "fetch") == "ok"

    @pytest.mark.asyncio
    async def test_no_timeout(self):
        assert await call_with_timeout(slow("ok", 0), None, "fetch") == "ok"

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            await call_with_timeout(slow("late", 1), 0.01, "pull_worklogs")

        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.retryable is True
        assert "pull_worklogs" in exc_info.value.message
