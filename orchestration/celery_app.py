"""
Celery Application Configuration
=================================

Configures the Celery task queue that runs the scheduled pipeline jobs:
- Redis as message broker and result backend
- Beat schedule for daily content, content bursts, cleanup and the
  weekly insights report
- Worker lifecycle hooks for logging setup

Each task builds and tears down its own container inside its own event
loop, so no async resources are shared across loops.

Design Pattern: Distributed Task Queue with Periodic Scheduler
"""

import os

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init, worker_process_shutdown
from kombu import Queue
from loguru import logger

from config.settings import get_settings
from infrastructure.monitoring import configure_logging

settings = get_settings()

app = Celery(
    "knowledge_curator",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=["orchestration.tasks"],
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone=settings.celery.timezone,
    enable_utc=True,
    # Task execution
    task_track_started=True,
    task_time_limit=settings.celery.task_time_limit,
    task_soft_time_limit=settings.celery.task_soft_time_limit,
    # Worker configuration
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
    # Result backend
    result_expires=86400,
    # Acknowledge after completion, re-queue if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_queues=(
        Queue("generation", routing_key="generation", priority=7),
        Queue("default", routing_key="default", priority=5),
        Queue("maintenance", routing_key="maintenance", priority=3),
    ),
    task_default_queue="default",
    task_default_routing_key="default",
    task_routes={
        "orchestration.tasks.daily_content_task": {"queue": "generation"},
        "orchestration.tasks.content_burst_task": {"queue": "generation"},
        "orchestration.tasks.generate_articles_task": {"queue": "generation"},
        "orchestration.tasks.cleanup_old_data_task": {"queue": "maintenance"},
        "orchestration.tasks.weekly_insights_task": {"queue": "maintenance"},
    },
    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)

app.conf.beat_schedule = {
    "daily-content": {
        "task": "orchestration.tasks.daily_content_task",
        "schedule": crontab(hour=settings.celery.daily_content_hour, minute=0),
    },
    "weekly-insights": {
        "task": "orchestration.tasks.weekly_insights_task",
        "schedule": crontab(hour=21, minute=0, day_of_week="sun"),
    },
    "cleanup-old-data": {
        "task": "orchestration.tasks.cleanup_old_data_task",
        "schedule": crontab(hour=2, minute=0),
    },
    "content-burst": {
        "task": "orchestration.tasks.content_burst_task",
        "schedule": crontab(hour=10, minute=0, day_of_week="mon,wed,fri"),
    },
}


@worker_process_init.connect
def on_worker_init(**kwargs):
    """Configure logging when a Celery worker process starts."""
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)
    logger.info(f"Celery worker process initialized (PID: {os.getpid()})")


@worker_process_shutdown.connect
def on_worker_shutdown(**kwargs):
    logger.info(f"Celery worker process shutting down (PID: {os.getpid()})")


if __name__ == "__main__":
    app.start()
