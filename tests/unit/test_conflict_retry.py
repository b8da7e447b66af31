"""
Unit tests for conflict retry and deadlines.

Tests for:
- RetryConfig validation
- calculate_backoff function
- retry_on_conflict function
- bounded function
- FulfillmentConfig validation
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    OperationTimeoutError,
    RetriesExhaustedError,
)
from fulfillment.models import PaymentMethod
from fulfillment.retry import RetryConfig, bounded, calculate_backoff, retry_on_conflict

FAST = RetryConfig(max_retries=3, initial_delay=0.0001, max_delay=0.001)


def conflict() -> ConcurrentModificationError:
    return ConcurrentModificationError("inventory", 1, 1, 2)


class TestRetryConfig:
    """Tests for RetryConfig creation and validation."""

    def test_default_values(self):
        config = RetryConfig()
        assert config.max_retries == 4
        assert config.max_attempts == 5

    def test_zero_retries_means_one_attempt(self):
        assert RetryConfig(max_retries=0).max_attempts == 1

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError, match="max_retries"):
            RetryConfig(max_retries=-1)

    def test_max_delay_below_initial_rejected(self):
        with pytest.raises(ValueError, match="max_delay"):
            RetryConfig(initial_delay=1.0, max_delay=0.5)

    def test_exponential_base_below_one_rejected(self):
        with pytest.raises(ValueError, match="exponential_base"):
            RetryConfig(exponential_base=0.5)

    @pytest.mark.parametrize("jitter", [-0.1, 1.5])
    def test_jitter_out_of_range_rejected(self, jitter):
        with pytest.raises(ValueError, match="jitter"):
            RetryConfig(jitter=jitter)


class TestCalculateBackoff:
    """Tests for calculate_backoff."""

    def test_exponential_growth_without_jitter(self):
        config = RetryConfig(initial_delay=0.01, max_delay=1.0, jitter=0.0)
        assert calculate_backoff(0, config) == pytest.approx(0.01)
        assert calculate_backoff(1, config) == pytest.approx(0.02)
        assert calculate_backoff(2, config) == pytest.approx(0.04)

    def test_capped_at_max_delay(self):
        config = RetryConfig(initial_delay=0.01, max_delay=0.05, jitter=0.0)
        assert calculate_backoff(10, config) == pytest.approx(0.05)

    def test_jitter_stays_in_range(self):
        config = RetryConfig(initial_delay=0.01, max_delay=1.0, jitter=0.5)
        for _ in range(50):
            assert 0.005 <= calculate_backoff(0, config) <= 0.015


class TestRetryOnConflict:
    """Tests for retry_on_conflict."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value=3)
        assert await retry_on_conflict(operation, FAST) == 3
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_conflicts_until_success(self):
        operation = AsyncMock(side_effect=[conflict(), conflict(), 7])
        assert await retry_on_conflict(operation, FAST, "reserve") == 7
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_raises_after_bound(self):
        operation = AsyncMock(side_effect=conflict())
        with pytest.raises(RetriesExhaustedError) as exc_info:
            await retry_on_conflict(operation, FAST, "reserve product 1")

        error = exc_info.value
        assert operation.await_count == FAST.max_attempts
        assert error.attempts == FAST.max_attempts
        assert error.operation == "reserve product 1"
        assert isinstance(error.last_error, ConcurrentModificationError)
        assert error.__cause__ is error.last_error

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        operation = AsyncMock(side_effect=InsufficientStockError(1, 2, 0))
        with pytest.raises(InsufficientStockError):
            await retry_on_conflict(operation, FAST)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        operation = AsyncMock(side_effect=conflict())
        with pytest.raises(RetriesExhaustedError):
            await retry_on_conflict(operation, RetryConfig(max_retries=0))
        assert operation.await_count == 1


class TestBounded:
    """Tests for bounded."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self):
        async def quick() -> str:
            return "done"

        assert await bounded(quick(), 1.0, "quick") == "done"

    @pytest.mark.asyncio
    async def test_deadline_raises_operation_timeout(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            await bounded(asyncio.sleep(1.0), 0.01, "slow_call")
        assert exc_info.value.operation == "slow_call"
        assert exc_info.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_none_disables_deadline(self):
        async def value() -> int:
            await asyncio.sleep(0)
            return 5

        assert await bounded(value(), None, "unbounded") == 5


class TestFulfillmentConfig:
    """Tests for FulfillmentConfig validation."""

    def test_defaults(self):
        config = FulfillmentConfig()
        assert config.operation_timeout == 5.0
        assert config.default_payment_method is PaymentMethod.COD
        assert config.retry == RetryConfig()

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout):
        with pytest.raises(ValueError, match="operation_timeout"):
            FulfillmentConfig(operation_timeout=timeout)

    def test_page_limit_must_be_positive(self):
        with pytest.raises(ValueError, match="order_page_limit"):
            FulfillmentConfig(order_page_limit=0)

    def test_is_frozen(self):
        config = FulfillmentConfig()
        with pytest.raises(AttributeError):
            config.operation_timeout = 1.0
