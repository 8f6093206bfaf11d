"""
Retry/Timeout Controller
Uniform resilience policy for every call to an external generation provider
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional, TypeVar

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
    wait_none,
)

from blogsmith.utils.error_handler import (
    AttemptTimeoutError,
    ErrorSeverity,
    MalformedResponseError,
    PipelineCancelled,
    TransientNetworkError,
    TransientProviderError,
    error_handler,
    record_error,
)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    TransientNetworkError,
    MalformedResponseError,
    requests.exceptions.RequestException,
    ConnectionError,
    TimeoutError,
)


class CancellationToken:
    """Top-down cancellation signal shared by a run and everything it starts"""

    def __init__(self):
        self.event = threading.Event()

    def cancel(self):
        self.event.set()

    @property
    def cancelled(self) -> bool:
        return self.event.is_set()

    def raise_if_cancelled(self, where: str = "pipeline"):
        if self.event.is_set():
            raise PipelineCancelled(f"Cancelled during {where}")

    def sleep(self, seconds: float):
        """Sleep that wakes up early on cancellation"""
        self.event.wait(seconds)


class CircuitBreaker:
    """Fails fast while a provider keeps failing (closed → open → half-open)"""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 300.0):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self.state = self.CLOSED
        self._lock = threading.Lock()

    def is_open(self) -> bool:
        with self._lock:
            if self.state == self.OPEN:
                if time.monotonic() - self.opened_at >= self.reset_timeout:
                    self.state = self.HALF_OPEN
                    error_handler.logger.info("Circuit breaker half-open, allowing a test request")
                    return False
                return True
            return False

    def record_success(self):
        with self._lock:
            self.consecutive_failures = 0
            if self.state == self.HALF_OPEN:
                error_handler.logger.info("Circuit breaker closed, provider recovered")
            self.state = self.CLOSED
            self.opened_at = None

    def record_failure(self):
        with self._lock:
            self.consecutive_failures += 1
            if self.state == self.HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
                self.state = self.OPEN
                self.opened_at = time.monotonic()
                error_handler.logger.warning(
                    f"Circuit breaker open after {self.consecutive_failures} consecutive failure(s)"
                )

    def reset(self):
        with self._lock:
            self.consecutive_failures = 0
            self.opened_at = None
            self.state = self.CLOSED


class RetryController:
    """Bounded retries with per-attempt timeouts, backoff and cancellation"""

    def __init__(
        self,
        max_attempts: int = 3,
        per_attempt_timeout: float = 120.0,
        backoff_delay: float = 10.0,
        backoff_multiplier: float = 1.5,
        breaker_failure_threshold: int = 5,
        breaker_reset_seconds: float = 300.0,
        poll_interval: float = 0.05,
    ):
        self.max_attempts = max_attempts
        self.per_attempt_timeout = per_attempt_timeout
        self.backoff_delay = backoff_delay
        self.backoff_multiplier = backoff_multiplier
        self.breaker_failure_threshold = breaker_failure_threshold
        self.breaker_reset_seconds = breaker_reset_seconds
        self.poll_interval = poll_interval
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "RetryController":
        return cls(
            max_attempts=settings.provider_max_attempts,
            per_attempt_timeout=settings.provider_timeout,
            backoff_delay=settings.backoff_delay,
            backoff_multiplier=settings.backoff_multiplier,
            breaker_failure_threshold=settings.breaker_failure_threshold,
            breaker_reset_seconds=settings.breaker_reset_seconds,
        )

    def breaker(self, operation: str) -> CircuitBreaker:
        with self._breakers_lock:
            if operation not in self._breakers:
                self._breakers[operation] = CircuitBreaker(
                    self.breaker_failure_threshold, self.breaker_reset_seconds
                )
            return self._breakers[operation]

    def call_with_retry(
        self,
        fn: Callable[[], T],
        max_attempts: Optional[int] = None,
        per_attempt_timeout: Optional[float] = None,
        backoff_delay: Optional[float] = None,
        operation: str = "provider_call",
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Call fn until it succeeds or attempts run out.
        Raises TransientProviderError on exhaustion, PipelineCancelled on
        cancellation; non-retryable errors propagate unchanged.
        """
        max_attempts = max_attempts or self.max_attempts
        timeout = per_attempt_timeout if per_attempt_timeout is not None else self.per_attempt_timeout
        delay = backoff_delay if backoff_delay is not None else self.backoff_delay
        token = cancel_token or CancellationToken()
        breaker = self.breaker(operation)

        token.raise_if_cancelled(operation)
        if breaker.is_open():
            raise TransientProviderError(operation, 0, RuntimeError("circuit breaker open"))

        retrying = Retrying(
            stop=stop_after_attempt(max_attempts) | stop_when_event_set(token.event),
            wait=wait_exponential(multiplier=delay, exp_base=self.backoff_multiplier, min=delay) if delay > 0 else wait_none(),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            sleep=token.sleep,
            before_sleep=lambda state: self._log_attempt_failure(operation, state, max_attempts),
            reraise=False,
        )

        try:
            for attempt in retrying:
                with attempt:
                    token.raise_if_cancelled(operation)
                    result = self._run_attempt(fn, timeout, token, operation)
            breaker.record_success()
            return result
        except RetryError as e:
            token.raise_if_cancelled(operation)
            breaker.record_failure()
            last_error = e.last_attempt.exception()
            attempts = e.last_attempt.attempt_number
            record_error(
                last_error,
                component="providers",
                operation=operation,
                severity=ErrorSeverity.HIGH,
                user_message=f"{operation} exhausted its retries",
                attempt=attempts,
                max_attempts=max_attempts,
            )
            raise TransientProviderError(operation, attempts, last_error) from last_error

    def _run_attempt(self, fn: Callable[[], T], timeout: float, token: CancellationToken, operation: str) -> T:
        """Run one attempt on a worker thread, abandoning it on timeout or cancellation"""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"attempt-{operation}")
        future = executor.submit(fn)
        executor.shutdown(wait=False)

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise AttemptTimeoutError(f"{operation} exceeded {timeout:.1f}s")
            done, _ = wait([future], timeout=min(remaining, self.poll_interval))
            if done:
                return future.result()
            if token.cancelled:
                future.cancel()
                raise PipelineCancelled(f"Cancelled during {operation}")

    def _log_attempt_failure(self, operation: str, retry_state, max_attempts: int):
        error = retry_state.outcome.exception()
        wait_for = retry_state.next_action.sleep if retry_state.next_action else 0
        error_handler.logger.warning(
            f"Attempt {retry_state.attempt_number}/{max_attempts} failed for {operation}: {error} "
            f"(retrying in {wait_for:.1f}s)"
        )
