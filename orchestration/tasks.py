"""
Celery Tasks: Scheduled Pipeline Jobs
======================================

Defines the periodic and on-demand jobs:
- daily_content: a small personalized batch when the reader was active
- content_burst: a fixed-size personalized batch
- cleanup: age-based pruning of insight records and activity logs
- weekly_insights: profile, recommendations and telemetry summary,
  persisted as an insight record

Each Celery task runs its job in a fresh event loop against a freshly
initialized container. ``run_job(name)`` dispatches a job by name outside
Celery.

Design Pattern: Task Queue with Job Registry
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from celery import Task
from loguru import logger
from pydantic import BaseModel, Field

from container import Container, ContainerManager
from core.enums import InsightType
from orchestration.celery_app import app

INSIGHT_RETENTION_DAYS = 30
ACTIVITY_RETENTION_DAYS = 90
WEEKLY_RECOMMENDATIONS = 5

Job = Callable[[Container], Awaitable[Dict[str, Any]]]


# ============================================================================
# Task Input Validation Schemas
# ============================================================================


class GenerateArticlesInput(BaseModel):
    """Validation schema for generate_articles_task parameters."""

    count: int = Field(ge=0, le=300, description="Number of articles to generate")


# ============================================================================
# Jobs
# ============================================================================


async def daily_content_job(container: Container) -> Dict[str, Any]:
    count = container.config().generation.daily_article_count
    articles = await container.content_generator().generate_daily_content(count)
    return {"generated": len(articles), "article_ids": [a.id for a in articles]}


async def content_burst_job(container: Container, count: Optional[int] = None) -> Dict[str, Any]:
    if count is None:
        count = container.config().generation.burst_article_count
    articles = await container.content_generator().generate_personalized_content(count)
    return {"generated": len(articles), "article_ids": [a.id for a in articles]}


async def cleanup_job(container: Container, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Delete generated-content and document insights older than 30 days and
    activity logs older than 90 days.
    """
    now = now or datetime.now(timezone.utc)
    deleted_insights = await container.insight_repository().delete_older_than(
        [InsightType.GENERATED_CONTENT, InsightType.DOCUMENT_ANALYSIS],
        now - timedelta(days=INSIGHT_RETENTION_DAYS),
    )
    deleted_activity = await container.activity_repository().delete_older_than(
        now - timedelta(days=ACTIVITY_RETENTION_DAYS)
    )
    expired = await container.cache().cleanup_expired()

    logger.info(
        f"Cleanup: removed {deleted_insights} insights, {deleted_activity} activity logs, "
        f"{expired} expired cache entries"
    )
    return {"insights": deleted_insights, "activity": deleted_activity, "cache_entries": expired}


async def weekly_insights_job(container: Container) -> Dict[str, Any]:
    """Summarize the reader profile and current recommendations into a report."""
    profile = await container.preference_analyzer().analyze_user_profile(force_refresh=True)
    recommendations = await container.recommendation_engine().generate_personalized_recommendations(
        limit=WEEKLY_RECOMMENDATIONS
    )
    analytics_report = container.analytics().generate_insights_report()

    picks = "\n".join(f"- {a.title} ({a.category})" for a in recommendations.articles) or "- none yet"
    interests = ", ".join(
        f"{c.category} ({round(c.score * 100)}%)" for c in profile.top_categories
    ) or "no strong preferences yet"
    report = f"""Weekly Reading Report

Interests: {interests}
Reading level: {profile.reading_level.value}
Preferred style: {profile.content_style.value}

Recommended next reads:
{picks}

Suggested topics: {", ".join(recommendations.suggested_topics) or "none"}

{analytics_report}"""

    record = await container.insight_repository().create(
        InsightType.WEEKLY_REPORT,
        title=f"Weekly report {datetime.now(timezone.utc):%Y-%m-%d}",
        content=report,
        metadata={
            "top_categories": profile.category_names,
            "recommendation_ids": [a.id for a in recommendations.articles],
            "confidence": recommendations.confidence,
        },
    )
    return {"insight_id": record["id"], "recommendations": len(recommendations.articles)}


JOBS: Dict[str, Job] = {
    "daily_content": daily_content_job,
    "weekly_insights": weekly_insights_job,
    "cleanup": cleanup_job,
    "content_burst": content_burst_job,
}


async def execute_job(job: Job, manager: Optional[ContainerManager] = None) -> Dict[str, Any]:
    """Run a job against an initialized container, always cleaning up."""
    manager = manager or ContainerManager(start_background=False)
    async with manager as container:
        return await job(container)


def run_job(name: str) -> bool:
    """
    Run a registered job by name in a fresh event loop.

    Returns:
        True on success, False for an unknown job or a failed run
    """
    job = JOBS.get(name)
    if job is None:
        logger.error(f"Unknown job: {name}")
        return False

    logger.info(f"Manually running job: {name}")
    try:
        result = asyncio.run(execute_job(job))
    except Exception as e:
        logger.error(f"Manual job failed ({name}): {e}")
        return False

    logger.success(f"Manual job completed: {name} {result}")
    return True


# ============================================================================
# Celery Tasks
# ============================================================================


class PipelineTask(Task):
    """Base task with lifecycle logging."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task failed | task_id={task_id} | task={self.name} | error={exc}")

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task succeeded | task_id={task_id} | task={self.name} | result={retval}")


def _run(job: Job) -> Dict[str, Any]:
    started = datetime.now(timezone.utc)
    result = asyncio.run(execute_job(job))
    result["execution_time"] = (datetime.now(timezone.utc) - started).total_seconds()
    return result


@app.task(base=PipelineTask, bind=True, name="orchestration.tasks.daily_content_task")
def daily_content_task(self) -> Dict[str, Any]:
    logger.info(f"Starting daily content generation | task_id={self.request.id}")
    return _run(daily_content_job)


@app.task(base=PipelineTask, bind=True, name="orchestration.tasks.content_burst_task")
def content_burst_task(self) -> Dict[str, Any]:
    logger.info(f"Starting content burst | task_id={self.request.id}")
    return _run(content_burst_job)


@app.task(
    base=PipelineTask,
    bind=True,
    name="orchestration.tasks.generate_articles_task",
    autoretry_for=(ConnectionError, TimeoutError),
    retry_kwargs={"max_retries": 3},
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def generate_articles_task(self, count: int) -> Dict[str, Any]:
    """On-demand personalized batch of ``count`` articles."""
    validated = GenerateArticlesInput(count=count)
    logger.info(f"Starting on-demand generation of {validated.count} articles | task_id={self.request.id}")

    async def job(container: Container) -> Dict[str, Any]:
        return await content_burst_job(container, validated.count)

    return _run(job)


@app.task(base=PipelineTask, bind=True, name="orchestration.tasks.cleanup_old_data_task")
def cleanup_old_data_task(self) -> Dict[str, Any]:
    logger.info(f"Starting cleanup | task_id={self.request.id}")
    return _run(cleanup_job)


@app.task(base=PipelineTask, bind=True, name="orchestration.tasks.weekly_insights_task")
def weekly_insights_task(self) -> Dict[str, Any]:
    logger.info(f"Starting weekly insights | task_id={self.request.id}")
    return _run(weekly_insights_job)
