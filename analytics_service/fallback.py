"""
Caller-facing degradation layer.

``FallbackFetcher`` keeps the last good value of a query and serves it while
fresh, or alongside the error when a refresh fails, so dashboards show
degraded data rather than nothing. ``AnalyticsPoller`` drives fetchers and the
periodic maintenance tasks on background timers.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .resilience import CircuitState, is_retryable_error
from .timeutils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTO_RETRY_BASE_SECONDS = 1.0
AUTO_RETRY_MAX_SECONDS = 10.0


def auto_retry_delay(retry_count: int) -> float:
    """Delay before the automatic retry that follows ``retry_count`` failures."""
    return min(AUTO_RETRY_BASE_SECONDS * (2 ** max(retry_count - 1, 0)), AUTO_RETRY_MAX_SECONDS)


@dataclass
class FetchState(Generic[T]):
    """Snapshot of a fetcher's data and health."""

    data: Optional[T] = None
    error: Optional[Exception] = None
    loading: bool = False
    last_updated: Optional[datetime] = None
    retry_count: int = 0
    is_stale: bool = False
    max_retries: int = 3
    is_cached: bool = False

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def has_data(self) -> bool:
        return self.data is not None

    def to_dict(self) -> Dict[str, Any]:
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]
        return {
            "data": data,
            "error": str(self.error) if self.error else None,
            "loading": self.loading,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "retryCount": self.retry_count,
            "isStale": self.is_stale,
            "canRetry": self.can_retry,
            "hasData": self.has_data,
            "isCached": self.is_cached,
        }


class FallbackFetcher(Generic[T]):
    """Stale-while-revalidate wrapper around a query function."""

    def __init__(
        self,
        fetch_function: Callable[[], T],
        stale_time: float = 300.0,
        max_retries: int = 3,
        fallback_data: Optional[T] = None,
        enable_cache: bool = True,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize FallbackFetcher.

        Args:
            fetch_function: Query to run
            stale_time: Seconds a cached value is served without refetching
            max_retries: Failed fetches after which ``can_retry`` turns false
            fallback_data: Value reported before the first successful fetch
            enable_cache: Serve fresh cached values instead of refetching
            clock: Monotonic seconds used for cache age
            now: Wall clock used for ``last_updated``
        """
        self.fetch_function = fetch_function
        self.stale_time = stale_time
        self.max_retries = max_retries
        self.fallback_data = fallback_data
        self.enable_cache = enable_cache
        self._clock = clock
        self._now = now
        self._lock = threading.Lock()
        self._generation = 0
        self._cache: Optional[T] = None
        self._cache_time = 0.0
        self._has_cache = False
        self._state: FetchState[T] = FetchState(data=fallback_data, loading=True, max_retries=max_retries)

    @property
    def state(self) -> FetchState[T]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> FetchState[T]:
        return replace(self._state, is_cached=self.enable_cache and self._has_cache)

    def fetch(self, is_retry: bool = False) -> FetchState[T]:
        """Serve the cache if fresh, otherwise run the query.

        A fetch started while another is in flight supersedes it; the older
        result is discarded when it arrives.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation

            if self.enable_cache and self._has_cache:
                age = self._clock() - self._cache_time
                if age < self.stale_time:
                    self._state = replace(
                        self._state,
                        data=self._cache,
                        loading=False,
                        error=None,
                        is_stale=age > self.stale_time / 2,
                    )
                    return self._snapshot()

            if not is_retry:
                self._state = replace(self._state, loading=True, error=None)

        try:
            data = self.fetch_function()
        except Exception as e:
            with self._lock:
                if generation != self._generation:
                    logger.debug("Discarding failed fetch superseded by a newer one")
                    return self._snapshot()
                logger.warning(f"Analytics fetch failed (retry={is_retry}, retries so far={self._state.retry_count}): {e}")
                self._state = replace(
                    self._state,
                    loading=False,
                    error=e,
                    retry_count=self._state.retry_count + 1,
                    data=self._state.data if self._state.data is not None else self.fallback_data,
                    is_stale=True,
                )
                return self._snapshot()

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding fetch result superseded by a newer one")
                return self._snapshot()
            if self.enable_cache:
                self._cache = data
                self._cache_time = self._clock()
                self._has_cache = True
            self._state = replace(
                self._state,
                data=data,
                loading=False,
                error=None,
                last_updated=self._now(),
                retry_count=0,
                is_stale=False,
            )
            return self._snapshot()

    def retry(self) -> FetchState[T]:
        """Reset the retry budget and fetch again."""
        with self._lock:
            self._state = replace(self._state, retry_count=0)
        return self.fetch()

    def refresh(self) -> FetchState[T]:
        """Drop the cache and fetch fresh data."""
        with self._lock:
            self._cache = None
            self._has_cache = False
        return self.fetch()

    def cancel(self) -> None:
        """Discard the result of any fetch currently in flight."""
        with self._lock:
            self._generation += 1

    def should_auto_retry(self, state: FetchState[T]) -> bool:
        """Whether a failed fetch is worth retrying without user action."""
        return (
            state.error is not None
            and state.retry_count <= self.max_retries
            and is_retryable_error(state.error)
        )


class IntervalTimer:
    """Calls ``function`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, function: Callable[[], None], name: str):
        self.interval = interval
        self.function = function
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.function()
            except Exception:
                logger.exception(f"Periodic task {self._thread.name} failed")

    def cancel(self) -> None:
        self._stopped.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()


class AnalyticsPoller:
    """
    Keeps an admin dashboard's data current while it is open.

    - Dashboard data is refetched every ``dashboard_refresh_seconds`` unless
      the circuit breaker is open. A retryable failure schedules an automatic
      retry with exponential delay while the fetcher still allows retries.
    - Active visitors are pushed through the service's live subscription.
    - Expired presence records are swept every ``cleanup_interval_seconds``.
    - A health check runs every ``health_check_seconds``.
    """

    def __init__(
        self,
        service,
        dashboard_fetcher: FallbackFetcher,
        dashboard_refresh_seconds: float = 60.0,
        cleanup_interval_seconds: float = 300.0,
        health_check_seconds: float = 120.0,
        on_dashboard: Optional[Callable[[FetchState], None]] = None,
        on_real_time: Optional[Callable[[List[Any]], None]] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self.dashboard_fetcher = dashboard_fetcher
        self.dashboard_refresh_seconds = dashboard_refresh_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.health_check_seconds = health_check_seconds
        self.on_dashboard = on_dashboard
        self.on_real_time = on_real_time
        self._now = now

        self._lock = threading.Lock()
        self._timers: List[IntervalTimer] = []
        self._retry_timer: Optional[threading.Timer] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._running = False

        self.is_healthy = True
        self.last_health_check: Optional[datetime] = None
        self.real_time_visitors: List[Any] = []

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Fetch once, subscribe to presence changes and start the periodic timers."""
        with self._lock:
            if self._running:
                return
            self._running = True

        self.refresh_dashboard(respect_breaker=False)
        self.check_health()
        self._unsubscribe = self.service.subscribe_real_time(self._handle_real_time)

        timers = [
            IntervalTimer(self.dashboard_refresh_seconds, self.refresh_dashboard, "analytics-dashboard-refresh"),
            IntervalTimer(self.cleanup_interval_seconds, self.sweep, "analytics-cleanup"),
            IntervalTimer(self.health_check_seconds, self.check_health, "analytics-health-check"),
        ]
        with self._lock:
            self._timers = timers
        for timer in timers:
            timer.start()
        logger.info("Analytics poller started")

    def stop(self) -> None:
        """Cancel every timer, the pending auto-retry and the presence subscription."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            timers, self._timers = self._timers, []
            retry_timer, self._retry_timer = self._retry_timer, None
            unsubscribe, self._unsubscribe = self._unsubscribe, None

        for timer in timers:
            timer.cancel()
        if retry_timer is not None:
            retry_timer.cancel()
        if unsubscribe is not None:
            unsubscribe()
        self.dashboard_fetcher.cancel()
        for timer in timers:
            timer.join(timeout=2.0)
        logger.info("Analytics poller stopped")

    def refresh_dashboard(self, respect_breaker: bool = True) -> Optional[FetchState]:
        """Refetch dashboard data; skipped while the circuit breaker is open."""
        if respect_breaker and self.service.circuit_breaker.state == CircuitState.OPEN:
            logger.debug("Skipping dashboard refresh while the circuit breaker is open")
            return None
        return self._publish(self.dashboard_fetcher.fetch())

    def _auto_retry(self) -> None:
        with self._lock:
            self._retry_timer = None
            if not self._running:
                return
        self._publish(self.dashboard_fetcher.fetch(is_retry=True))

    def _publish(self, state: FetchState) -> FetchState:
        if self.on_dashboard is not None:
            self.on_dashboard(state)
        if self.dashboard_fetcher.should_auto_retry(state):
            self._schedule_retry(auto_retry_delay(state.retry_count))
        return state

    def _schedule_retry(self, delay: float) -> None:
        with self._lock:
            if not self._running or self._retry_timer is not None:
                return
            timer = threading.Timer(delay, self._auto_retry)
            timer.daemon = True
            self._retry_timer = timer
        logger.info(f"Retrying dashboard fetch in {delay:.1f}s")
        timer.start()

    def _handle_real_time(self, visitors: List[Any]) -> None:
        self.real_time_visitors = visitors
        if self.on_real_time is not None:
            self.on_real_time(visitors)

    def sweep(self) -> int:
        """Delete expired presence records; failures are logged."""
        try:
            return self.service.sweep_expired()
        except Exception as e:
            logger.warning(f"Real-time cleanup sweep failed: {e}")
            return 0

    def check_health(self) -> bool:
        """Check the store through a cheap presence query."""
        try:
            self.service.list_active_visitors()
            self.is_healthy = True
        except Exception as e:
            logger.warning(f"Analytics health check failed: {e}")
            self.is_healthy = False
        self.last_health_check = self._now()
        return self.is_healthy

    def get_health(self) -> Dict[str, Any]:
        return {
            "healthy": self.is_healthy,
            "lastCheck": self.last_health_check.isoformat() if self.last_health_check else None,
            "circuitBreaker": self.service.circuit_breaker.get_state(),
        }
