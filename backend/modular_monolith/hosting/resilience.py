from __future__ import annotations

import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

import httpx

from ..errors import BrokenCircuitError
from ..observability.logging import get_logger

log = get_logger("resilience")


@dataclass(frozen=True)
class RetryOptions:
    max_retry_attempts: int = 3
    base_delay_s: float = 2.0
    max_delay_s: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25
    retry_status_codes: frozenset[int] = frozenset({408, 429})

    def should_retry_status(self, status_code: int) -> bool:
        return status_code in self.retry_status_codes or status_code >= 500


@dataclass(frozen=True)
class CircuitBreakerOptions:
    failure_ratio: float = 0.1
    minimum_throughput: int = 100
    sampling_duration_s: float = 30.0
    break_duration_s: float = 5.0


@dataclass(frozen=True)
class StandardResilienceOptions:
    """
    Standard outbound handler: total timeout -> retry -> circuit breaker ->
    per-attempt timeout. Defaults match the platform's standard handler.
    """

    total_request_timeout_s: float = 30.0
    attempt_timeout_s: float = 10.0
    retry: RetryOptions = field(default_factory=RetryOptions)
    circuit_breaker: CircuitBreakerOptions = field(default_factory=CircuitBreakerOptions)


def exponential_backoff_with_jitter(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    multiplier: float = 2.0,
    jitter: float = 0.1,
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        multiplier: Exponential multiplier
        jitter: Jitter factor (0.0 to 1.0)

    Returns:
        Delay in seconds
    """
    delay = base_delay * (multiplier ** (attempt - 1))
    delay = min(delay, max_delay)

    # Add jitter (±jitter%)
    jitter_amount = delay * jitter * (2 * random.random() - 1)
    delay = delay + jitter_amount

    return max(0.0, delay)


class CircuitBreaker:
    """
    Failure-ratio breaker over a sliding sampling window.

    Closed -> Open when, within the window, at least `minimum_throughput` calls
    were recorded and the failure ratio reached `failure_ratio`.
    Open -> Half-open after `break_duration_s`; one trial call decides whether
    it closes again or re-opens.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str,
        options: CircuitBreakerOptions,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._options = options
        self._clock = clock
        self._lock = threading.Lock()
        self._samples: deque[tuple[float, bool]] = deque()
        self._state = self.CLOSED
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            self._refresh(self._clock())
            return self._state

    def _refresh(self, now: float) -> None:
        if self._state == self.OPEN and now - self._opened_at >= self._options.break_duration_s:
            self._state = self.HALF_OPEN
            self._trial_in_flight = False
        horizon = now - self._options.sampling_duration_s
        while self._samples and self._samples[0][0] < horizon:
            self._samples.popleft()

    def before_call(self) -> None:
        with self._lock:
            now = self._clock()
            self._refresh(now)
            if self._state == self.OPEN:
                raise BrokenCircuitError(self.name, self._opened_at + self._options.break_duration_s - now)
            if self._state == self.HALF_OPEN:
                if self._trial_in_flight:
                    raise BrokenCircuitError(self.name, 0.0)
                self._trial_in_flight = True

    def record(self, success: bool) -> None:
        with self._lock:
            now = self._clock()
            if self._state == self.HALF_OPEN:
                self._trial_in_flight = False
                self._samples.clear()
                if success:
                    self._state = self.CLOSED
                    log.info("circuit_closed", client=self.name)
                else:
                    self._open(now)
                return

            self._samples.append((now, success))
            self._refresh(now)
            total = len(self._samples)
            if total < self._options.minimum_throughput:
                return
            failures = sum(1 for _, ok in self._samples if not ok)
            if failures / total >= self._options.failure_ratio:
                self._open(now)

    def _open(self, now: float) -> None:
        self._state = self.OPEN
        self._opened_at = now
        self._samples.clear()
        log.warning("circuit_opened", client=self.name, break_duration_s=self._options.break_duration_s)


def _with_attempt_timeout(request: httpx.Request, timeout_s: float, remaining_s: float) -> None:
    budget = max(0.0, min(timeout_s, remaining_s))
    current = request.extensions.get("timeout") or {}
    request.extensions["timeout"] = {
        k: budget if v is None else min(float(v), budget)
        for k, v in {
            "connect": current.get("connect"),
            "read": current.get("read"),
            "write": current.get("write"),
            "pool": current.get("pool"),
        }.items()
    }


class ResilienceTransport(httpx.BaseTransport):
    """
    Wraps an inner transport with the standard resilience pipeline.

    Retries transport errors, timeouts, 408, 429 and 5xx responses with
    exponential backoff and jitter, stops when the total request budget is
    spent, and reports each attempt to the client's circuit breaker.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        *,
        name: str,
        options: StandardResilienceOptions,
        breaker: CircuitBreaker,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._inner = inner
        self._name = name
        self._options = options
        self._breaker = breaker
        self._sleep = sleep
        self._clock = clock

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        retry = self._options.retry
        deadline = self._clock() + self._options.total_request_timeout_s
        attempt = 0
        while True:
            attempt += 1
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise httpx.TimeoutException(
                    f"total request timeout of {self._options.total_request_timeout_s}s exceeded",
                    request=request,
                )
            self._breaker.before_call()
            _with_attempt_timeout(request, self._options.attempt_timeout_s, remaining)

            try:
                response = self._inner.handle_request(request)
            except httpx.TransportError as e:
                self._breaker.record(False)
                if attempt > retry.max_retry_attempts:
                    raise
                reason, response = type(e).__name__, None
            except Exception:
                # Not retried, but the breaker still has to see the failure.
                self._breaker.record(False)
                raise
            else:
                failed = retry.should_retry_status(response.status_code)
                self._breaker.record(not failed)
                if not failed or attempt > retry.max_retry_attempts:
                    return response
                reason = f"status_{response.status_code}"

            delay = exponential_backoff_with_jitter(
                attempt=attempt,
                base_delay=retry.base_delay_s,
                max_delay=retry.max_delay_s,
                multiplier=retry.multiplier,
                jitter=retry.jitter,
            )
            if self._clock() + delay >= deadline:
                if response is not None:
                    return response
                raise httpx.TimeoutException(
                    f"total request timeout of {self._options.total_request_timeout_s}s exceeded",
                    request=request,
                )

            log.warning(
                "http_retry",
                client=self._name,
                attempt=attempt,
                max_retries=retry.max_retry_attempts,
                reason=reason,
                delay=round(delay, 3),
                host=request.url.host,
                path=request.url.path,
            )
            if response is not None:
                response.close()
            self._sleep(delay)

    def close(self) -> None:
        self._inner.close()
