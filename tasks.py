"""
Celery background tasks for TestFlow AI
Runs the scan pipeline (snapshot, generation, merge, save) in background workers
"""

import asyncio
import logging
from typing import Optional

from celery import Task

from celery_app import celery_app
from session_store import get_session_store
from utils.scan_pipeline import run_scan

logger = logging.getLogger(__name__)


class CallbackTask(Task):
    """
    Custom Celery task class with logging callbacks.
    """

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"✅ Task {task_id} completed successfully")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"❌ Task {task_id} failed: {str(exc)}")


@celery_app.task(
    bind=True,
    base=CallbackTask,
    name="tasks.scan_website",
    autoretry_for=(),
)
def scan_website(
    self,
    url: str,
    user_description: str = "",
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> dict:
    """
    Snapshot a page, generate tests and store the session.

    Returns:
        The same payload POST /scan returns

    Raises:
        Exception: When the page cannot be loaded
    """
    logger.info(f"🚀 Starting scan task {self.request.id} for {url}")
    self.update_state(
        state="PROGRESS",
        meta={"status": "Capturing page and generating tests...", "url": url},
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        response = loop.run_until_complete(
            run_scan(url, user_description, user_agent=user_agent, ip_address=ip_address)
        )
    except Exception as e:
        logger.error(f"❌ Scan task failed for {url}: {str(e)}")
        raise Exception(f"Scan failed: {str(e)}")
    finally:
        loop.close()

    return response.to_payload()


@celery_app.task(name="tasks.cleanup_old_sessions")
def cleanup_old_sessions(days_old: Optional[int] = None) -> dict:
    """
    Periodic task removing stored test sessions past the retention window.
    Scheduled daily in celery_app.py beat schedule.
    """
    removed = get_session_store().cleanup_old_sessions(days_old)
    logger.info(f"🧹 Cleanup task removed {removed} sessions")
    return {"removed": removed}
