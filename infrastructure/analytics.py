"""
Analytics Aggregator - Telemetry Windows & On-Demand Insights
==============================================================

Keeps bounded in-process stores of:
- Performance samples (per call, 7-day retention, last 100 per operation)
- Behavior sessions (ordered user actions, 7-day retention)
- System alerts (ring of the last 100)

and derives system insights on demand: performance over the last 24 hours,
reader behavior over the last 7 days, content and AI usage metrics, and
threshold-based recommendations. Insights are memoized for 15 minutes.

Housekeeping (retention purge, periodic insight refresh) runs as a detached
asyncio task on a fixed interval and never blocks in-flight pipelines.
"""

import asyncio
import csv
import io
import json
from collections import Counter, defaultdict, deque
from contextlib import suppress
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from config.constants import ANALYTICS_WINDOWS, CACHE_LIMITS
from core.enums import ActivityType, AlertLevel
from core.models import (
    BehaviorAction,
    BehaviorSession,
    PerformanceSample,
    SystemAlert,
    SystemInsights,
    utc_now,
)

MAX_PERFORMANCE_SAMPLES = 10_000

_LOG_BY_LEVEL = {
    AlertLevel.INFO: "info",
    AlertLevel.WARNING: "warning",
    AlertLevel.ERROR: "error",
    AlertLevel.CRITICAL: "critical",
}

_AI_SERVICE_MARKERS = ("ai", "model", "content", "llm")
_READ_ACTIONS = {ActivityType.ARTICLE_READ.value, ActivityType.CONTENT_VIEW.value}


class AnalyticsAggregator:
    """
    Cross-cutting telemetry aggregator.

    Construct one per process and pass it by handle to every component that
    reports performance, behavior or alerts.
    """

    def __init__(
        self,
        cache_manager: Optional[Any] = None,
        retention_days: int = ANALYTICS_WINDOWS.RETENTION_DAYS,
        max_alerts: int = ANALYTICS_WINDOWS.MAX_ALERTS,
        cleanup_interval: float = 1800,
        insights_interval: float = 3600,
        insights_ttl: float = CACHE_LIMITS.SYSTEM_INSIGHTS_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            cache_manager: Optional cache whose hit rate is reported
            retention_days: Retention for samples and sessions
            max_alerts: Alert ring capacity
            cleanup_interval: Seconds between retention purges
            insights_interval: Seconds between automatic insight refreshes
            insights_ttl: Seconds a computed insight snapshot stays fresh
            clock: Time source returning aware datetimes
        """
        self.cache_manager = cache_manager
        self.retention = timedelta(days=retention_days)
        self.cleanup_interval = cleanup_interval
        self.insights_interval = insights_interval
        self.insights_ttl = insights_ttl
        self._clock = clock

        self._samples: Deque[PerformanceSample] = deque(maxlen=MAX_PERFORMANCE_SAMPLES)
        self._recent_by_operation: Dict[str, Deque[PerformanceSample]] = defaultdict(
            lambda: deque(maxlen=ANALYTICS_WINDOWS.SAMPLES_PER_KEY)
        )
        self._sessions: Dict[str, BehaviorSession] = {}
        self._alerts: Deque[SystemAlert] = deque(maxlen=max_alerts)

        self._insights: Optional[Tuple[datetime, SystemInsights]] = None
        self._started_at = clock()
        self._last_insights_run: Optional[datetime] = None
        self._housekeeping_task: Optional[asyncio.Task] = None

        logger.info(
            f"Analytics aggregator initialized (retention: {retention_days}d, alerts: {max_alerts})"
        )

    # =========================================================================
    # TRACKING
    # =========================================================================

    def track_performance(
        self,
        service: str,
        operation: str,
        duration_ms: float,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PerformanceSample:
        """
        Record one timed operation.

        Slow (> 5s) or failed operations also raise a warning alert.
        """
        sample = PerformanceSample(
            timestamp=self._clock(),
            service=service,
            operation=operation,
            duration_ms=max(duration_ms, 0.0),
            success=success,
            metadata=metadata or {},
        )
        self._samples.append(sample)
        self._recent_by_operation[f"{service}:{operation}"].append(sample)

        if duration_ms > ANALYTICS_WINDOWS.SLOW_OPERATION_MS or not success:
            reason = "failed" if not success else f"took {duration_ms:.0f}ms"
            self.add_alert(
                AlertLevel.WARNING,
                f"{service}.{operation} {reason}",
                service=service,
                details={"operation": operation, "duration_ms": duration_ms, "success": success},
            )

        return sample

    def track_user_behavior(
        self,
        user_id: str,
        session_id: str,
        action_type: str,
        target: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> BehaviorSession:
        """Append an action to its session, creating the session on first use."""
        session = self._sessions.get(session_id)
        if session is None:
            session = BehaviorSession(session_id=session_id, user_id=user_id)
            self._sessions[session_id] = session

        session.append(
            BehaviorAction(
                timestamp=self._clock(),
                type=action_type,
                target=target,
                details=details or {},
            )
        )
        return session

    def add_alert(
        self,
        level: AlertLevel,
        message: str,
        service: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> SystemAlert:
        alert = SystemAlert(
            level=level,
            message=message,
            timestamp=self._clock(),
            service=service,
            details=details or {},
        )
        self._alerts.append(alert)
        getattr(logger, _LOG_BY_LEVEL[level])(f"[{service}] {message}")
        return alert

    def get_recent_alerts(self, hours: int = 24) -> List[SystemAlert]:
        """Alerts from the last ``hours``, newest first."""
        cutoff = self._clock() - timedelta(hours=hours)
        return sorted(
            (a for a in self._alerts if a.timestamp >= cutoff),
            key=lambda a: a.timestamp,
            reverse=True,
        )

    def get_recent_samples(self, service: str, operation: str) -> List[PerformanceSample]:
        return list(self._recent_by_operation.get(f"{service}:{operation}", ()))

    # =========================================================================
    # INSIGHTS
    # =========================================================================

    def generate_system_insights(self, force_refresh: bool = False) -> SystemInsights:
        """
        Aggregate telemetry into a system insight snapshot.

        Snapshots are reused for ``insights_ttl`` seconds unless
        ``force_refresh`` is set. With no telemetry every metric is zero
        or empty.
        """
        now = self._clock()
        if not force_refresh and self._insights is not None:
            computed_at, snapshot = self._insights
            if (now - computed_at).total_seconds() < self.insights_ttl:
                return snapshot

        performance = self._performance_metrics(now)
        behavior = self._behavior_metrics(now)
        content = self._content_metrics(now)
        ai = self._ai_metrics(now)

        insights = SystemInsights(
            performance=performance,
            user_behavior=behavior,
            content_metrics=content,
            ai_metrics=ai,
            recommendations=self._recommendations(performance, behavior, ai),
            alerts=self.get_recent_alerts(),
            generated_at=now,
        )
        self._insights = (now, insights)
        self._last_insights_run = now
        return insights

    def _performance_metrics(self, now: datetime) -> Dict[str, Any]:
        window = [
            s
            for s in self._samples
            if s.timestamp >= now - timedelta(hours=ANALYTICS_WINDOWS.PERFORMANCE_WINDOW_HOURS)
        ]
        successes = [s.duration_ms for s in window if s.success]
        failures = sum(1 for s in window if not s.success)

        return {
            "average_response_time": float(np.mean(successes)) if successes else 0.0,
            "error_rate": (failures / len(window) * 100) if window else 0.0,
            "throughput": len(window) / ANALYTICS_WINDOWS.PERFORMANCE_WINDOW_HOURS,
            "cache_hit_rate": float(self.cache_manager.hit_rate) if self.cache_manager else 0.0,
            "sample_count": len(window),
        }

    def _sessions_in_window(self, now: datetime) -> List[BehaviorSession]:
        cutoff = now - timedelta(days=ANALYTICS_WINDOWS.BEHAVIOR_WINDOW_DAYS)
        return [s for s in self._sessions.values() if s.started_at and s.started_at >= cutoff]

    def _behavior_metrics(self, now: datetime) -> Dict[str, Any]:
        sessions = self._sessions_in_window(now)
        actions = [a for s in sessions for a in s.actions]

        durations = [s.session_duration_ms for s in sessions]
        popular = Counter(a.target for a in actions if a.type in _READ_ACTIONS and a.target)
        hours = Counter(a.timestamp.hour for a in actions)
        types = Counter(a.type for a in actions)

        return {
            "average_session_time": float(np.mean(durations)) / 60000 if durations else 0.0,
            "most_popular_content": [
                {"target": target, "views": views} for target, views in popular.most_common(10)
            ],
            "peak_usage_hours": [f"{h}:00-{h + 1}:00" for h, _ in hours.most_common(3)],
            "engagement": {
                "saves": types[ActivityType.ARTICLE_SAVE.value],
                "questions": types[ActivityType.AI_QUESTION.value],
                "shares": types[ActivityType.SHARE.value],
                "likes": types[ActivityType.LIKE.value],
            },
            "session_count": len(sessions),
        }

    def _content_metrics(self, now: datetime) -> Dict[str, Any]:
        sessions = self._sessions_in_window(now)
        reads = [a for s in sessions for a in s.actions if a.type in _READ_ACTIONS]

        categories = Counter(a.details["category"] for a in reads if a.details.get("category"))
        read_times = [float(a.details["read_time"]) for a in reads if "read_time" in a.details]
        completions = [bool(a.details["completed"]) for a in reads if "completed" in a.details]

        engagement_by_target: Counter = Counter()
        for session in sessions:
            for action in session.actions:
                if action.target:
                    engagement_by_target[action.target] += ActivityType.weight_of(action.type)

        return {
            "top_performing": [t for t, _ in engagement_by_target.most_common(5)],
            "category_distribution": dict(categories),
            "average_reading_time": float(np.mean(read_times)) if read_times else 0.0,
            "completion_rate": float(np.mean(completions)) * 100 if completions else 0.0,
        }

    def _ai_metrics(self, now: datetime) -> Dict[str, Any]:
        window = [
            s
            for s in self._samples
            if s.timestamp >= now - timedelta(hours=ANALYTICS_WINDOWS.PERFORMANCE_WINDOW_HOURS)
            and any(marker in s.service.lower() for marker in _AI_SERVICE_MARKERS)
        ]
        usage = Counter(s.metadata["model_name"] for s in window if s.metadata.get("model_name"))
        generation = [s.duration_ms for s in window if "generat" in s.operation.lower()]

        sessions = self._sessions_in_window(now)
        actions = [a for s in sessions for a in s.actions]
        ratings = [
            float(a.details["rating"])
            for a in actions
            if a.type == ActivityType.CONTENT_FEEDBACK.value and "rating" in a.details
        ]
        queries = Counter(
            a.target for a in actions if a.type == ActivityType.AI_QUESTION.value and a.target
        )

        return {
            "model_usage": dict(usage),
            "average_generation_time": float(np.mean(generation)) if generation else 0.0,
            "user_satisfaction": float(np.mean(ratings)) if ratings else None,
            "top_queries": [q for q, _ in queries.most_common(5)],
        }

    @staticmethod
    def _recommendations(
        performance: Dict[str, Any], behavior: Dict[str, Any], ai: Dict[str, Any]
    ) -> List[str]:
        recs: List[str] = []
        w = ANALYTICS_WINDOWS

        if performance["average_response_time"] > w.SLOW_RESPONSE_MS:
            recs.append("Response times are high; consider caching more aggressively")
        if performance["error_rate"] > w.HIGH_ERROR_RATE_PCT:
            recs.append("Error rate is high; review the failing services")
        if performance["sample_count"] and performance["cache_hit_rate"] < w.LOW_CACHE_HIT_RATE_PCT:
            recs.append("Cache hit rate is low; revisit cache keys and TTLs")
        if behavior["session_count"] and behavior["average_session_time"] < w.SHORT_SESSION_MINUTES:
            recs.append("Sessions are short; surface more engaging content")
        if behavior["session_count"] and not any(behavior["engagement"].values()):
            recs.append("No engagement actions recorded; add prompts to save or share")
        if ai["average_generation_time"] > w.SLOW_GENERATION_MS:
            recs.append("Generation is slow; prefer faster models for urgent tasks")
        if ai["user_satisfaction"] is not None and ai["user_satisfaction"] < w.LOW_SATISFACTION:
            recs.append("Satisfaction with generated content is low; refine prompts")

        return recs

    # =========================================================================
    # STATS, EXPORT & REPORTING
    # =========================================================================

    def get_analytics_stats(self) -> Dict[str, Any]:
        return {
            "performance_samples": len(self._samples),
            "tracked_operations": len(self._recent_by_operation),
            "sessions": len(self._sessions),
            "alerts": len(self._alerts),
            "cache_entries": self.cache_manager.size if self.cache_manager else 0,
            "uptime_seconds": (self._clock() - self._started_at).total_seconds(),
            "last_insights_run": (
                self._last_insights_run.isoformat() if self._last_insights_run else None
            ),
        }

    def export_analytics_data(self, fmt: str = "json") -> str:
        """
        Export recent telemetry.

        Args:
            fmt: "json" (samples, sessions, alerts and stats) or "csv"
                (performance samples only)
        """
        samples = list(self._samples)[-1000:]

        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.DictWriter(
                buffer,
                fieldnames=["timestamp", "service", "operation", "duration_ms", "success"],
            )
            writer.writeheader()
            for sample in samples:
                writer.writerow(
                    {
                        "timestamp": sample.timestamp.isoformat(),
                        "service": sample.service,
                        "operation": sample.operation,
                        "duration_ms": sample.duration_ms,
                        "success": sample.success,
                    }
                )
            return buffer.getvalue()

        if fmt != "json":
            raise ValueError(f"Unsupported export format: {fmt}")

        payload = {
            "performance": [s.model_dump(mode="json") for s in samples],
            "sessions": [s.model_dump(mode="json") for s in list(self._sessions.values())[-100:]],
            "alerts": [a.model_dump(mode="json") for a in list(self._alerts)[-50:]],
            "stats": self.get_analytics_stats(),
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def generate_insights_report(self) -> str:
        """Plain-text summary of the current insight snapshot."""
        insights = self.generate_system_insights()
        perf, behavior, ai = insights.performance, insights.user_behavior, insights.ai_metrics

        lines = [
            f"System insights ({insights.generated_at:%Y-%m-%d %H:%M} UTC)",
            f"Average response time: {perf['average_response_time']:.0f}ms",
            f"Error rate: {perf['error_rate']:.1f}%",
            f"Cache hit rate: {perf['cache_hit_rate']:.1f}%",
            f"Average session: {behavior['average_session_time']:.1f} min",
            f"Peak hours: {', '.join(behavior['peak_usage_hours']) or 'n/a'}",
            f"Models used: {', '.join(ai['model_usage']) or 'none'}",
            f"Active alerts: {len(insights.alerts)}",
        ]
        if insights.recommendations:
            lines.append("Recommendations:")
            lines.extend(f"- {rec}" for rec in insights.recommendations)
        return "\n".join(lines)

    # =========================================================================
    # HOUSEKEEPING
    # =========================================================================

    def cleanup_old_data(self) -> Dict[str, int]:
        """
        Drop samples and sessions older than the retention window.

        Returns:
            Counts of removed samples and sessions
        """
        cutoff = self._clock() - self.retention

        before = len(self._samples)
        kept = [s for s in self._samples if s.timestamp >= cutoff]
        self._samples.clear()
        self._samples.extend(kept)

        for key in list(self._recent_by_operation):
            recent = [s for s in self._recent_by_operation[key] if s.timestamp >= cutoff]
            if recent:
                self._recent_by_operation[key] = deque(
                    recent, maxlen=ANALYTICS_WINDOWS.SAMPLES_PER_KEY
                )
            else:
                del self._recent_by_operation[key]

        stale = [
            sid
            for sid, s in self._sessions.items()
            if not s.actions or s.actions[-1].timestamp < cutoff
        ]
        for sid in stale:
            del self._sessions[sid]

        removed = {"samples": before - len(self._samples), "sessions": len(stale)}
        if any(removed.values()):
            logger.info(f"Analytics cleanup removed {removed}")
        return removed

    async def run_housekeeping_cycle(self) -> None:
        """One housekeeping pass: purge, then refresh insights when due."""
        self.cleanup_old_data()
        if self.cache_manager:
            await self.cache_manager.cleanup_expired()

        now = self._clock()
        due = (
            self._last_insights_run is None
            or (now - self._last_insights_run).total_seconds() >= self.insights_interval
        )
        if due:
            self.generate_system_insights(force_refresh=True)
            logger.info(f"Automatic insights refreshed\n{self.generate_insights_report()}")

    async def _housekeeping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await self.run_housekeeping_cycle()
            except Exception as e:
                logger.error(f"Analytics housekeeping failed: {e}")

    def start(self) -> None:
        """Start the detached housekeeping task (requires a running loop)."""
        if self._housekeeping_task is not None and not self._housekeeping_task.done():
            return
        self._housekeeping_task = asyncio.get_running_loop().create_task(
            self._housekeeping_loop(), name="analytics-housekeeping"
        )
        logger.info(f"Analytics housekeeping started (every {self.cleanup_interval}s)")

    async def stop(self) -> None:
        if self._housekeeping_task is None:
            return
        self._housekeeping_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._housekeeping_task
        self._housekeeping_task = None
        logger.info("Analytics housekeeping stopped")
