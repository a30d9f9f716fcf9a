"""
Celery tasks for the daily content cycle.

Daily generation runs at midnight UTC and queues the users' daily-content
notifications. Pending notifications are dispatched every five minutes,
expired podcasts are swept at 01:00 and failed jobs are retried hourly.
"""

import os
from typing import Any, Dict

from celery import Celery, Task
from celery.schedules import crontab

from .orchestrator import build_orchestrator
from .services import NotificationService, PodcastService
from .storage import get_storage_manager
from .utils.logger import setup_logger

logger = setup_logger(__name__)

# Initialize Celery
celery_app = Celery(
    'lurkingpods',
    broker=os.getenv('REDIS_URL', 'redis://localhost:6379/0'),
    backend=os.getenv('REDIS_URL', 'redis://localhost:6379/0')
)

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour hard limit
    task_soft_time_limit=3000,  # 50 minutes soft limit
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=86400,  # Results expire after 24 hours
)


class ScheduledTask(Task):
    """Base task that logs failures of periodic work."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} ({task_id}) failed: {str(exc)}")
        super().on_failure(exc, task_id, args, kwargs, einfo)


@celery_app.task(base=ScheduledTask)
def generate_daily_content() -> Dict[str, Any]:
    """
    Generate one podcast per active category and language, then queue
    the daily-content notifications.

    Returns:
        Completed and failed job ids and the number of notifications queued
    """
    logger.info("Starting daily content generation")
    result = build_orchestrator().run_daily_generation()
    scheduled = NotificationService().schedule_daily()
    return {**result, "notifications_scheduled": scheduled}


@celery_app.task(base=ScheduledTask)
def dispatch_notifications() -> Dict[str, int]:
    """Queue trial reminders and deliver every due notification."""
    notifications = NotificationService()
    reminders = notifications.schedule_trial_reminders()
    result = notifications.dispatch_pending()
    return {**result, "trial_reminders": reminders}


@celery_app.task(base=ScheduledTask)
def cleanup_expired_podcasts() -> int:
    """Delete podcasts past their expiry along with their audio files."""
    deleted = PodcastService(storage=get_storage_manager()).delete_expired()
    logger.info(f"Cleaned up {deleted} expired podcasts")
    return deleted


@celery_app.task(base=ScheduledTask)
def retry_failed_jobs() -> Dict[str, str]:
    """Retry every failed job that still has attempts left."""
    outcomes = build_orchestrator().retry_failed_jobs()
    logger.info(f"Retried {len(outcomes)} failed jobs")
    return outcomes


# Configure periodic tasks
celery_app.conf.beat_schedule = {
    'generate-daily-content': {
        'task': 'lurkingpods.tasks.generate_daily_content',
        'schedule': crontab(hour=0, minute=0),
    },
    'dispatch-notifications': {
        'task': 'lurkingpods.tasks.dispatch_notifications',
        'schedule': crontab(minute='*/5'),
    },
    'cleanup-expired-podcasts': {
        'task': 'lurkingpods.tasks.cleanup_expired_podcasts',
        'schedule': crontab(hour=1, minute=0),
    },
    'retry-failed-jobs': {
        'task': 'lurkingpods.tasks.retry_failed_jobs',
        'schedule': crontab(minute=30),
    },
}
