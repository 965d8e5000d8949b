"""
Resilience Wrapper

Retry with exponential backoff, and a circuit breaker around it. Every call
the service facade makes into the analytics components goes through
``ResilientExecutor.execute`` with an operation type that selects the retry
policy.
"""

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from .errors import (
    CircuitOpenError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERROR_PATTERNS: Tuple[str, ...] = (
    "unavailable",
    "deadline-exceeded",
    "resource-exhausted",
    "aborted",
    "internal",
    "network",
    "timeout",
)

# Caller errors: the store answered, the request was wrong
PERMANENT_ERRORS: Tuple[type, ...] = (PermissionDeniedError, NotFoundError, InvalidInputError)


class OperationType(str, Enum):
    """Kinds of analytics operations, each with its own retry budget."""

    PAGE_VIEW = "page_view"
    REAL_TIME = "real_time"
    DAILY_SUMMARY = "daily_summary"
    DASHBOARD = "dashboard"


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy. ``max_retries`` is the total number of attempts."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: Tuple[str, ...] = RETRYABLE_ERROR_PATTERNS


DEFAULT_RETRY_CONFIG = RetryConfig()

RETRY_CONFIGS: Dict[OperationType, RetryConfig] = {
    # Page views are the least critical
    OperationType.PAGE_VIEW: replace(DEFAULT_RETRY_CONFIG, max_retries=2, base_delay=0.5),
    OperationType.REAL_TIME: replace(DEFAULT_RETRY_CONFIG, max_retries=3, base_delay=1.0),
    OperationType.DAILY_SUMMARY: replace(DEFAULT_RETRY_CONFIG, max_retries=5, base_delay=2.0, max_delay=30.0),
    # Dashboard loads should stay fast
    OperationType.DASHBOARD: replace(DEFAULT_RETRY_CONFIG, max_retries=2, base_delay=0.8, max_delay=5.0),
}


def is_network_error(error: BaseException) -> bool:
    """Connection level failures, regardless of their message."""
    return isinstance(error, (ConnectionError, TimeoutError, TransientStoreError))


def is_retryable_error(error: BaseException, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> bool:
    """Whether another attempt could plausibly succeed."""
    if isinstance(error, (CircuitOpenError,) + PERMANENT_ERRORS):
        return False
    if is_network_error(error):
        return True

    message = str(error).lower()
    code = str(getattr(error, "code", "") or "").lower()
    return any(pattern in message or pattern in code for pattern in config.retryable_errors)


def is_dependency_failure(error: BaseException) -> bool:
    """Whether the error says the store is unhealthy rather than the request being wrong."""
    return not isinstance(error, PERMANENT_ERRORS)


def calculate_backoff_delay(
    attempt: int,
    config: RetryConfig,
    jitter: bool = True,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before the attempt following ``attempt`` (1-based).

    ``base_delay * multiplier^(attempt-1)`` capped at ``max_delay``, plus or
    minus 10% jitter.
    """
    exponential = config.base_delay * (config.backoff_multiplier ** (attempt - 1))
    capped = min(exponential, config.max_delay)
    if not jitter:
        return capped

    jitter_amount = capped * 0.1
    return max(0.0, capped + (rng() - 0.5) * 2 * jitter_amount)


def retry_operation(
    operation: Callable[[], T],
    config: RetryConfig,
    op_name: str = "analytics operation",
    context: Optional[Dict[str, Any]] = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``operation`` until it succeeds, fails permanently, or runs out of attempts.

    Raises:
        The last error raised by ``operation``
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
        except Exception as e:
            if not is_retryable_error(e, config):
                logger.warning(f"{op_name} failed with non-retryable error: {e}", extra={"context": context})
                raise
            if attempt >= config.max_retries:
                logger.error(f"{op_name} failed after {attempt} attempts: {e}", extra={"context": context})
                raise

            delay = calculate_backoff_delay(attempt, config, rng=rng)
            logger.warning(
                f"{op_name} failed, retrying in {delay:.2f}s (attempt {attempt}/{config.max_retries}): {e}"
            )
            sleep(delay)
            continue

        if attempt > 1:
            logger.info(f"{op_name} succeeded on attempt {attempt}")
        return result


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Fault-isolation state machine.

    - CLOSED: calls pass through; consecutive failures are counted and reaching
      ``failure_threshold`` opens the circuit.
    - OPEN: calls are rejected with CircuitOpenError until ``recovery_timeout``
      seconds have passed since the last failure.
    - HALF_OPEN: a single trial call is let through; success closes the circuit,
      failure reopens it.

    Permanent caller errors (not found, permission denied, invalid input) pass
    through without touching the failure count, so clients sending bad
    requests cannot open the circuit for everyone else.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize CircuitBreaker.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            recovery_timeout: Seconds to stay open before allowing a trial call
            clock: Monotonic time source in seconds
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def execute(self, operation: Callable[[], T], context: Optional[Dict[str, Any]] = None) -> T:
        """Run ``operation`` under the breaker.

        Raises:
            CircuitOpenError: If the circuit is open
            Whatever ``operation`` raises
        """
        self._before_call()
        try:
            result = operation()
        except Exception as e:
            if is_dependency_failure(e):
                self._record_failure(e, context)
            else:
                self._release_trial()
            raise
        self._record_success()
        return result

    def _before_call(self) -> None:
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self._last_failure_time > self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    self._trial_in_flight = True
                    logger.info("Analytics circuit breaker half-open, allowing a trial call")
                    return
                raise CircuitOpenError("Analytics circuit breaker is open, calls are suspended")

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError("Analytics circuit breaker trial call already in flight")
                self._trial_in_flight = True

    def _record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("Analytics circuit breaker reset, service recovered")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._trial_in_flight = False

    def _release_trial(self) -> None:
        # Inconclusive trial, the next call becomes the trial instead
        with self._lock:
            self._trial_in_flight = False

    def _record_failure(self, error: Exception, context: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure_time = self._clock()
            self._trial_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(f"Analytics circuit breaker trial call failed, reopening: {error}")
            elif self._failures >= self.failure_threshold and self._state != CircuitState.OPEN:
                self._state = CircuitState.OPEN
                logger.warning(f"Analytics circuit breaker opened after {self._failures} failures")
            else:
                logger.debug(f"Analytics failure {self._failures}/{self.failure_threshold}: {error}", extra={"context": context})

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self._record_success()

    def get_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "failures": self._failures,
                "last_failure_time": self._last_failure_time,
            }


@dataclass(frozen=True)
class ResilientOperation:
    """One entry of a batch handed to ``ResilientExecutor.execute_batch``."""

    operation: Callable[[], Any]
    op_type: OperationType
    context: Optional[Dict[str, Any]] = None


@dataclass
class BatchResult(Generic[T]):
    """Outcome of one batch entry."""

    success: bool
    result: Optional[T] = None
    error: Optional[Exception] = None


class ResilientExecutor:
    """Retry under a circuit breaker, with the policy chosen per operation type."""

    def __init__(
        self,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_configs: Optional[Dict[OperationType, RetryConfig]] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """
        Initialize ResilientExecutor.

        Args:
            circuit_breaker: Breaker shared by every call; a default one is created if omitted
            retry_configs: Per-operation retry policies overriding RETRY_CONFIGS
            sleep: Used to wait between attempts
            rng: Random source for jitter
        """
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.retry_configs = dict(RETRY_CONFIGS)
        if retry_configs:
            self.retry_configs.update(retry_configs)
        self._sleep = sleep
        self._rng = rng

    def execute(
        self,
        operation: Callable[[], T],
        op_type: OperationType,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Run ``operation`` with the retry policy of ``op_type`` inside the breaker."""
        op_type = OperationType(op_type)
        config = self.retry_configs[op_type]
        return self.circuit_breaker.execute(
            lambda: retry_operation(
                operation,
                config,
                op_name=f"Analytics {op_type.value} operation",
                context=context,
                sleep=self._sleep,
                rng=self._rng,
            ),
            context,
        )

    def execute_batch(
        self,
        operations: Sequence[ResilientOperation],
        concurrency: int = 3,
        fail_fast: bool = False,
    ) -> List[BatchResult]:
        """
        Run several operations, ``concurrency`` at a time.

        Operations are processed in consecutive chunks; a chunk runs in
        parallel and the next one starts only after it has finished.

        Args:
            operations: Operations to run, each with its own op type
            concurrency: Chunk size
            fail_fast: Re-raise the first error instead of recording it; later
                chunks are not started

        Returns:
            One BatchResult per operation, in input order
        """
        if concurrency < 1:
            raise InvalidInputError("concurrency must be at least 1")

        results: List[BatchResult] = []
        for start in range(0, len(operations), concurrency):
            chunk = operations[start:start + concurrency]
            with ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix="analytics-batch") as pool:
                futures = [pool.submit(self.execute, op.operation, op.op_type, op.context) for op in chunk]
                for future in futures:
                    try:
                        results.append(BatchResult(success=True, result=future.result()))
                    except Exception as e:
                        if fail_fast:
                            raise
                        logger.warning(f"Batch analytics operation failed: {e}")
                        results.append(BatchResult(success=False, error=e))
        logger.debug(f"Batch of {len(operations)} analytics operations done, "
                     f"{sum(1 for r in results if r.success)} succeeded")
        return results
