# backend/tests/test_circuit_breaker.py
"""
Tests for the Redis-backed circuit breaker guarding the payment gateway.
"""

import pytest
from unittest.mock import MagicMock
from datetime import datetime, timedelta

import httpx

from storefront.integrations.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    CircuitBreakerOpenError
)
from storefront.integrations.razorpay import GatewayError


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = MagicMock()
    redis.get.return_value = None
    redis.incr.return_value = 1
    return redis


@pytest.fixture
def circuit_breaker(mock_redis):
    return CircuitBreaker(
        service_name="razorpay",
        redis_client=mock_redis,
        failure_threshold=3,
        timeout_seconds=60
    )


def state_store(**values):
    keys = {name: f"circuit_breaker:razorpay:{name}" for name in ("state", "failures", "last_failure", "half_open_calls")}
    return lambda key: {keys[name]: value for name, value in values.items()}.get(key)


def test_circuit_starts_closed(circuit_breaker):
    assert circuit_breaker._get_state() == CircuitState.CLOSED


def test_gateway_outage_opens_circuit_at_threshold(circuit_breaker, mock_redis):
    mock_redis.incr.return_value = 3  # Threshold is 3

    circuit_breaker._record_failure(GatewayError("Razorpay GET /orders/x returned 503", status_code=503))

    mock_redis.set.assert_any_call("circuit_breaker:razorpay:state", CircuitState.OPEN.value)
    mock_redis.expire.assert_called_once_with("circuit_breaker:razorpay:state", 120)


@pytest.mark.asyncio
async def test_open_circuit_rejects_calls(circuit_breaker, mock_redis):
    mock_redis.get.side_effect = state_store(
        state=CircuitState.OPEN.value,
        last_failure=datetime.utcnow().isoformat(),
    )
    func = MagicMock()

    async def create_order():
        func()
        return {"id": "order_1"}

    with pytest.raises(CircuitBreakerOpenError) as exc_info:
        await circuit_breaker.call(create_order)

    assert "razorpay" in str(exc_info.value)
    assert "OPEN" in str(exc_info.value)
    assert 1 <= exc_info.value.retry_after <= 60
    func.assert_not_called()


@pytest.mark.asyncio
async def test_open_circuit_moves_to_half_open_after_timeout(circuit_breaker, mock_redis):
    stale_failure = (datetime.utcnow() - timedelta(seconds=120)).isoformat()
    states = iter([CircuitState.OPEN.value, CircuitState.HALF_OPEN.value, CircuitState.HALF_OPEN.value])

    def fake_get(key):
        if key.endswith(":state"):
            return next(states)
        if key.endswith(":last_failure"):
            return stale_failure
        return None

    mock_redis.get.side_effect = fake_get

    async def fetch_payment():
        return {"id": "pay_1"}

    assert await circuit_breaker.call(fetch_payment) == {"id": "pay_1"}
    mock_redis.set.assert_any_call("circuit_breaker:razorpay:state", CircuitState.HALF_OPEN.value)
    mock_redis.set.assert_any_call("circuit_breaker:razorpay:state", CircuitState.CLOSED.value)


@pytest.mark.asyncio
async def test_success_resets_failure_tracking(circuit_breaker, mock_redis):
    async def successful_func():
        return "success"

    result = await circuit_breaker.call(successful_func)

    assert result == "success"
    mock_redis.delete.assert_called_once_with(
        "circuit_breaker:razorpay:failures",
        "circuit_breaker:razorpay:last_failure",
        "circuit_breaker:razorpay:half_open_calls",
    )


@pytest.mark.asyncio
async def test_half_open_call_budget_is_enforced(circuit_breaker, mock_redis):
    mock_redis.get.side_effect = state_store(state=CircuitState.HALF_OPEN.value, half_open_calls="3")

    async def test_func():
        return "recovered"

    with pytest.raises(CircuitBreakerOpenError):
        await circuit_breaker.call(test_func)


@pytest.mark.asyncio
async def test_failures_propagate_and_are_counted(circuit_breaker, mock_redis):
    async def flaky():
        raise httpx.ConnectTimeout("timed out")

    with pytest.raises(httpx.ConnectTimeout):
        await circuit_breaker.call(flaky)

    mock_redis.incr.assert_called_once_with("circuit_breaker:razorpay:failures")


@pytest.mark.parametrize("error,counts", [
    (httpx.ReadTimeout("slow"), True),
    (httpx.ConnectError("refused"), True),
    (GatewayError("rate limited", status_code=429), True),
    (GatewayError("bad gateway", status_code=502), True),
    (GatewayError("bad request", status_code=400), False),
    (ValueError("not a transport problem"), False),
])
def test_which_errors_count(error, counts):
    assert CircuitBreaker.is_circuit_breaker_error(error) is counts


def test_client_errors_dont_trigger_circuit(circuit_breaker, mock_redis):
    circuit_breaker._record_failure(GatewayError("The amount must be atleast INR 1.00", status_code=400))

    mock_redis.incr.assert_not_called()


def test_get_status_returns_info(circuit_breaker, mock_redis):
    mock_redis.get.side_effect = state_store(state=CircuitState.CLOSED.value, failures="2")

    status = circuit_breaker.get_status()

    assert status["service"] == "razorpay"
    assert status["state"] == CircuitState.CLOSED.value
    assert status["failure_count"] == 2
    assert status["failure_threshold"] == 3


def test_reset_clears_state(circuit_breaker, mock_redis):
    circuit_breaker.reset()

    deleted = mock_redis.delete.call_args.args
    assert len(deleted) == 4
    assert "circuit_breaker:razorpay:state" in deleted
