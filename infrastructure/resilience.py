"""
Resilience Wrapper - Retry With Backoff & Health Tracking
==========================================================

Wraps calls to unreliable external capabilities (document source,
text-generation providers):

- Retries transient failures with exponential backoff (base * 2^attempt),
  bounded to ``max_retries`` extra attempts
- Records one performance sample per call, tagged with the attempt count
- Tracks consecutive final failures as a HealthState:
  0 -> healthy, 1-2 -> degraded, >=3 -> error
- Emits exactly one critical alert each time the failure streak reaches
  the critical threshold

One wrapper instance is kept per external service.
"""

import asyncio
import functools
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.constants import BASE_DELAY_SECONDS, CRITICAL_FAILURE_THRESHOLD, MAX_RETRIES
from core.enums import AlertLevel, HealthStatus
from core.exceptions import ValidationError, is_retryable
from core.models import HealthState, utc_now

T = TypeVar("T")


class ResilienceWrapper:
    """
    Retry and health-tracking decorator for one external service.

    Health counters are shared by every caller of the instance. Updates are
    plain assignments; concurrent outcomes may interleave and the last write
    wins.
    """

    def __init__(
        self,
        service: str,
        analytics: Optional[Any] = None,
        metrics_collector: Optional[Any] = None,
        base_delay: float = BASE_DELAY_SECONDS,
        max_retries: int = MAX_RETRIES,
        critical_threshold: int = CRITICAL_FAILURE_THRESHOLD,
        retry_predicate: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize wrapper.

        Args:
            service: External service name used in samples, alerts and logs
            analytics: Analytics aggregator receiving samples and alerts
            metrics_collector: Optional Prometheus metrics collector
            base_delay: Backoff base in seconds
            max_retries: Default number of extra attempts after the first
            critical_threshold: Failure streak that raises a critical alert
            retry_predicate: Decides whether an exception is worth retrying
            sleep: Async sleep used between attempts
        """
        if max_retries < 0:
            raise ValidationError("max_retries cannot be negative", field="max_retries", value=max_retries)

        self.service = service
        self.analytics = analytics
        self.metrics_collector = metrics_collector
        self.base_delay = base_delay
        self.max_retries = max_retries
        self.critical_threshold = critical_threshold
        self.retry_predicate = retry_predicate
        self._sleep = sleep

        self._health = HealthState()
        self.critical_alerts_emitted = 0

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        max_retries: Optional[int] = None,
    ) -> T:
        """
        Run an async operation with bounded retries.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            name: Operation name for samples and logs
            max_retries: Extra attempts after the first (None = wrapper default)

        Returns:
            The operation's result

        Raises:
            The last exception once attempts are exhausted, or immediately
            for non-retryable errors
        """
        retries = self.max_retries if max_retries is None else max_retries
        if retries < 0:
            raise ValidationError("max_retries cannot be negative", field="max_retries", value=retries)

        started = time.perf_counter()
        attempts = 0

        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            retry=retry_if_exception(self.retry_predicate),
            before_sleep=functools.partial(self._log_retry, name),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await operation()
        except Exception as e:
            self._record_failure(name, attempts, retries + 1, started, e)
            raise

        self._record_success(name, attempts, retries + 1, started)
        return result

    def wrap(self, name: str, max_retries: Optional[int] = None):
        """
        Decorator form of ``execute`` for async functions.

        Usage:
            @wrapper.wrap("list_documents")
            async def list_documents(): ...
        """

        def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            @functools.wraps(func)
            async def wrapped(*args: Any, **kwargs: Any) -> T:
                return await self.execute(lambda: func(*args, **kwargs), name, max_retries)

            return wrapped

        return decorator

    def _log_retry(self, name: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"{self.service}.{name} attempt {retry_state.attempt_number} failed: {exc}; "
            f"retrying in {delay:.2f}s"
        )

    # =========================================================================
    # HEALTH TRACKING
    # =========================================================================

    def _record_success(self, name: str, attempts: int, total: int, started: float) -> None:
        self._health = HealthState()

        duration_ms = (time.perf_counter() - started) * 1000
        if self.analytics:
            self.analytics.track_performance(
                self.service,
                name,
                duration_ms,
                success=True,
                metadata={"attempt": attempts, "total_attempts": total},
            )
        if self.metrics_collector:
            self.metrics_collector.record_external_call(self.service, name, True, attempts, 0)

    def _record_failure(
        self, name: str, attempts: int, total: int, started: float, error: Exception
    ) -> None:
        failures = self._health.consecutive_failures + 1
        self._health = HealthState(
            status=HealthStatus.from_failures(failures),
            consecutive_failures=failures,
            last_failure_at=utc_now(),
        )
        logger.error(
            f"{self.service}.{name} failed after {attempts} attempt(s): {error} "
            f"(health: {self._health.status.value}, streak: {failures})"
        )

        duration_ms = (time.perf_counter() - started) * 1000
        if self.analytics:
            self.analytics.track_performance(
                self.service,
                name,
                duration_ms,
                success=False,
                metadata={"attempt": attempts, "total_attempts": total, "error": str(error)},
            )
        if self.metrics_collector:
            self.metrics_collector.record_external_call(
                self.service, name, False, attempts, failures
            )

        if failures == self.critical_threshold:
            self.critical_alerts_emitted += 1
            if self.analytics:
                self.analytics.add_alert(
                    AlertLevel.CRITICAL,
                    f"{self.service} failed {failures} times in a row",
                    service=self.service,
                    details={"operation": name, "last_error": str(error)},
                )
            else:
                logger.critical(f"{self.service} failed {failures} times in a row")

    def get_health(self) -> HealthState:
        return self._health.model_copy()

    def reset_health(self) -> None:
        self._health = HealthState()
        logger.info(f"{self.service} health reset")

    @property
    def is_healthy(self) -> bool:
        return self._health.status == HealthStatus.HEALTHY
