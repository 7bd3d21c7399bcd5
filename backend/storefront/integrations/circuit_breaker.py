# storefront/integrations/circuit_breaker.py
"""
Circuit Breaker Pattern Implementation.

Keeps checkout responsive when the payment gateway or mail API is down.
State lives in Redis so every worker process sees the same circuit.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing, requests rejected immediately
- HALF_OPEN: Testing recovery with limited requests
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and rejecting calls."""

    def __init__(self, service_name: str, retry_after: int = 60):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(
            f"{service_name} circuit breaker is OPEN. "
            f"Service experiencing issues. Try again in {retry_after}s"
        )


class CircuitBreaker:
    """
    Redis-backed circuit breaker.

    Usage:
        breaker = CircuitBreaker("razorpay", redis_client)
        result = await breaker.call(api_function, arg1, arg2)
    """

    def __init__(
        self,
        service_name: str,
        redis_client,
        failure_threshold: int = 5,
        timeout_seconds: int = 60,
        half_open_max_calls: int = 3,
    ):
        self.redis = redis_client
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.timeout = timeout_seconds
        self.half_open_max_calls = half_open_max_calls

        self.key_state = f"circuit_breaker:{service_name}:state"
        self.key_failures = f"circuit_breaker:{service_name}:failures"
        self.key_last_failure = f"circuit_breaker:{service_name}:last_failure"
        self.key_half_open_calls = f"circuit_breaker:{service_name}:half_open_calls"

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute ``func`` with circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        state = self._get_state()

        if state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                logger.warning(f"Circuit breaker OPEN for {self.service_name}, rejecting call")
                raise CircuitBreakerOpenError(self.service_name, self._get_retry_seconds())

        if self._get_state() == CircuitState.HALF_OPEN and not self._can_attempt_half_open_call():
            raise CircuitBreakerOpenError(self.service_name, self.timeout)

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def _get_state(self) -> CircuitState:
        state = self.redis.get(self.key_state)
        if state:
            return CircuitState(state)
        return CircuitState.CLOSED

    def _record_success(self):
        """Reset failure count, close the circuit if it was testing recovery."""
        state = self._get_state()
        self.redis.delete(self.key_failures, self.key_last_failure, self.key_half_open_calls)
        if state == CircuitState.HALF_OPEN:
            self.redis.set(self.key_state, CircuitState.CLOSED.value)
            logger.info(f"Circuit breaker CLOSED for {self.service_name} - service recovered")

    def _record_failure(self, error: Exception):
        """Increment failure count, open the circuit once the threshold is hit."""
        if not self.is_circuit_breaker_error(error):
            return

        failures = self.redis.incr(self.key_failures)
        self.redis.set(self.key_last_failure, datetime.utcnow().isoformat())
        logger.warning(f"Circuit breaker recorded failure {failures}/{self.failure_threshold} for {self.service_name}: {error}")

        if failures >= self.failure_threshold:
            self._transition_to_open()

    @staticmethod
    def is_circuit_breaker_error(error: Exception) -> bool:
        """
        Counts: timeouts, connection errors, 5xx and 429 responses.
        Ignores: 4xx client errors, validation errors.
        """
        if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
            return True
        status = getattr(error, "status_code", None)
        if status is None and isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
        if status is not None:
            return status >= 500 or status == 429
        return False

    def _transition_to_open(self):
        self.redis.set(self.key_state, CircuitState.OPEN.value)
        self.redis.expire(self.key_state, self.timeout * 2)
        logger.error(f"Circuit breaker OPENED for {self.service_name} - service appears down. Timeout: {self.timeout}s")

    def _transition_to_half_open(self):
        self.redis.set(self.key_state, CircuitState.HALF_OPEN.value)
        self.redis.set(self.key_half_open_calls, 0)
        logger.info(f"Circuit breaker HALF-OPEN for {self.service_name} - testing recovery")

    def _should_attempt_reset(self) -> bool:
        last_failure = self.redis.get(self.key_last_failure)
        if not last_failure:
            return True
        return datetime.utcnow() - datetime.fromisoformat(last_failure) > timedelta(seconds=self.timeout)

    def _can_attempt_half_open_call(self) -> bool:
        calls = self.redis.get(self.key_half_open_calls)
        if int(calls or 0) >= self.half_open_max_calls:
            self._transition_to_open()
            return False
        self.redis.incr(self.key_half_open_calls)
        return True

    def _get_retry_seconds(self) -> int:
        last_failure = self.redis.get(self.key_last_failure)
        if not last_failure:
            return self.timeout
        elapsed = (datetime.utcnow() - datetime.fromisoformat(last_failure)).total_seconds()
        return max(1, int(self.timeout - elapsed))

    def get_status(self) -> dict:
        """Get current circuit breaker status for monitoring."""
        failures = self.redis.get(self.key_failures)
        return {
            "service": self.service_name,
            "state": self._get_state().value,
            "failure_count": int(failures) if failures else 0,
            "failure_threshold": self.failure_threshold,
            "last_failure": self.redis.get(self.key_last_failure),
            "timeout_seconds": self.timeout,
        }

    def reset(self):
        """Manually reset circuit breaker (for ops)."""
        self.redis.delete(self.key_state, self.key_failures, self.key_last_failure, self.key_half_open_calls)
        logger.info(f"Circuit breaker manually reset for {self.service_name}")
