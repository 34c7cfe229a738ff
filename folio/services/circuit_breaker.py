# folio/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the external price provider.

After enough failures inside the failure window the breaker
opens and every guarded call fails fast with CircuitBreakerOpen, which the
valuation services treat like any other provider outage (zero-price or
current-price fallback). After the recovery timeout a limited number of
probe calls are let through; one success closes the breaker again, one
failure re-opens it.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Calls rejected immediately
    HALF_OPEN - Probe calls allowed, up to half_open_max_calls

Usage:
    breaker = CircuitBreaker(name="coinmarketcap")

    with breaker:
        response = client.get(url)
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when a call is rejected because the breaker is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a probe call will be allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters exposed to the health endpoint."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Failures inside the window that open the breaker
        recovery_timeout: Seconds the breaker stays open before probing
        half_open_max_calls: Probe calls allowed while half-open
        failure_window: Sliding window (seconds) for counting failures, 0 = unbounded
        excluded_exceptions: Exception types that do not count as failures
        clock: Monotonic time source, injectable for tests
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[BaseException], ...] = ()
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: deque = field(default_factory=deque, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _probes_in_flight: int = field(default=0, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.info(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # =========================================================================
    # STATE INSPECTION
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitBreakerStats:
        """Snapshot copy of the counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    def time_until_recovery(self) -> float:
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0.0
            return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._stats.total_calls += 1
            self._maybe_half_open()

            if self._state == CircuitState.OPEN or (
                self._state == CircuitState.HALF_OPEN
                and self._probes_in_flight >= self.half_open_max_calls
            ):
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self.time_until_recovery())

            if self._state == CircuitState.HALF_OPEN:
                self._probes_in_flight += 1

        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._on_success()
            else:
                self._on_failure()
        return False

    def reset(self) -> None:
        """Force the breaker closed and clear failure history."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Force the breaker open, e.g. while the provider is known to be down."""
        with self._lock:
            self._opened_at = self.clock()
            self._transition_to(CircuitState.OPEN)
            logger.warning(f"CircuitBreaker '{self.name}' manually opened")

    # =========================================================================
    # INTERNALS (caller holds the lock)
    # =========================================================================

    def _maybe_half_open(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self.clock() - self._opened_at >= self.recovery_timeout
        ):
            self._transition_to(CircuitState.HALF_OPEN)

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = self.clock()
        self._stats.failed_calls += 1

        if self._state == CircuitState.HALF_OPEN:
            self._opened_at = now
            self._transition_to(CircuitState.OPEN)
            return

        self._failures.append(now)
        if self.failure_window > 0:
            while self._failures and self._failures[0] <= now - self.failure_window:
                self._failures.popleft()

        if self._state == CircuitState.CLOSED and len(self._failures) >= self.failure_threshold:
            self._opened_at = now
            self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._probes_in_flight = 0
        if new_state == CircuitState.CLOSED:
            self._failures.clear()

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )
