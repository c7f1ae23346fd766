"""
Celery application configuration for TestFlow AI
Runs page scans and session cleanup in background workers with Redis as broker
"""

import logging

from celery import Celery
from celery.signals import (
    task_failure,
    task_postrun,
    task_prerun,
    worker_ready,
    worker_shutdown,
)
from kombu import Queue

from config import get_celery_broker_url, get_celery_result_backend, settings

logger = logging.getLogger(__name__)

# Create Celery application
celery_app = Celery(
    "testflow_ai",
    broker=get_celery_broker_url(),
    backend=get_celery_result_backend(),
    include=["tasks"],
)

celery_app.conf.update(
    # Task Settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task Execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    # Task Time Limits
    task_time_limit=300,
    task_soft_time_limit=240,
    # Result Backend Settings
    result_expires=settings.CELERY_RESULT_EXPIRES,
    result_extended=True,
    # Worker Settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=10,  # Chromium leaks memory across many launches
    # Queue Configuration
    task_default_queue="default",
    task_queues=(
        Queue("default", routing_key="task.default"),
        Queue("maintenance", routing_key="task.maintenance"),
    ),
    worker_send_task_events=True,
    task_send_sent_event=True,
    broker_connection_retry_on_startup=True,
    result_compression="gzip",
    beat_schedule={
        "cleanup-old-sessions": {
            "task": "tasks.cleanup_old_sessions",
            "schedule": 24 * 3600.0,  # Daily
        },
    },
)

# Task Routing
celery_app.conf.task_routes = {
    "tasks.scan_website": {"queue": "default"},
    "tasks.cleanup_old_sessions": {"queue": "maintenance"},
}


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    logger.info("🚀 Celery worker is ready and waiting for tasks")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("🛑 Celery worker is shutting down")


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, **kwargs):
    logger.info(f"⏳ Starting task: {task.name} [ID: {task_id}]")


@task_postrun.connect
def task_postrun_handler(
    sender=None, task_id=None, task=None, retval=None, state=None, **kwargs
):
    logger.info(f"✅ Completed task: {task.name} [ID: {task_id}] [State: {state}]")


@task_failure.connect
def task_failure_handler(
    sender=None, task_id=None, exception=None, traceback=None, **kwargs
):
    logger.error(
        f"❌ Task failed: {sender.name} [ID: {task_id}] [Error: {str(exception)}]"
    )


if __name__ == "__main__":
    # Start worker with: celery -A celery_app worker -Q default,maintenance --loglevel=info
    celery_app.start()
