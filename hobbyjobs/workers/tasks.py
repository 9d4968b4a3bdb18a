"""
Celery Tasks for Scheduled Batch Jobs

Each task builds a fresh job (own session, own HTTP clients, own token cache)
inside its own event loop and runs it under a Redis lock, so a slow run is
never overlapped by the next trigger of the same job.
"""
from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager, contextmanager
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete as sa_delete

from hobbyjobs.batch.engine import RunSummary, TRIGGER_CRON
from hobbyjobs.batch.payment_reconciliation import (
    JOB_NAME as RECONCILIATION_JOB_NAME,
    build_payment_reconciliation_job,
)
from hobbyjobs.batch.rgpd_cleanup import JOB_NAME as RGPD_JOB_NAME, build_rgpd_cleanup_job
from hobbyjobs.core.clock import utcnow
from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import BatchRunInProgressError
from hobbyjobs.core.logging import get_logger, log_async_operation, set_correlation_id
from hobbyjobs.core.redis_client import get_redis
from hobbyjobs.db.database import get_task_session
from hobbyjobs.db.models.webhook_event_log import WebhookEventLog
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.domain.services.helloasso import HelloAssoCheckoutClient, HelloAssoTokenManager
from hobbyjobs.domain.services.internal_service_client import build_cleanup_clients
from hobbyjobs.workers.celery_app import celery_app

logger = get_logger(__name__)

_RUN_LOCK_PREFIX = "batch_run_lock"


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # סגירת Redis singleton לפני סגירת ה-loop: ה-client קשור ל-loop הזה
            from hobbyjobs.core.redis_client import close_redis
            loop.run_until_complete(close_redis())
        except Exception as e:
            logger.warning(
                "כשלון בסגירת Redis בסיום task",
                extra_data={"error": str(e)},
            )
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@asynccontextmanager
async def job_run_lock(job_name: str, ttl_seconds: Optional[int] = None):
    """
    נעילת הרצה ב-Redis (SET NX EX): מונעת הרצה חופפת של אותו job.

    Raises:
        BatchRunInProgressError: הרצה קודמת עדיין מחזיקה את הנעילה.
    """
    redis = await get_redis()
    key = f"{_RUN_LOCK_PREFIX}:{job_name}"
    token = uuid.uuid4().hex
    acquired = await redis.set(
        key, token, nx=True, ex=ttl_seconds or settings.BATCH_RUN_LOCK_SECONDS
    )
    if not acquired:
        raise BatchRunInProgressError(job_name)
    try:
        yield
    finally:
        # משחררים רק נעילה שלנו: אם פג התוקף והרצה אחרת לקחה אותה, לא נוגעים
        if await redis.get(key) == token:
            await redis.delete(key)


def summary_to_dict(summary: RunSummary) -> dict:
    return {
        "job_name": summary.job_name,
        "run_timestamp": summary.run_timestamp,
        "trigger": summary.trigger,
        "status": summary.status.value,
        "read_count": summary.read_count,
        "filter_count": summary.filter_count,
        "skip_count": summary.skip_count,
        "write_count": summary.write_count,
        "error": summary.error_text,
    }


@log_async_operation("payment reconciliation")
async def reconcile_payments(run_timestamp: Optional[str], trigger: str) -> dict:
    async with job_run_lock(RECONCILIATION_JOB_NAME):
        async with get_task_session() as db:
            checkout_client = HelloAssoCheckoutClient(HelloAssoTokenManager())
            job = build_payment_reconciliation_job(db, checkout_client, PaymentEventPublisher())
            summary = await job.run(run_timestamp=run_timestamp, trigger=trigger)
    return summary_to_dict(summary)


@log_async_operation("rgpd data cleanup")
async def cleanup_rgpd_data(run_timestamp: Optional[str], trigger: str) -> dict:
    async with job_run_lock(RGPD_JOB_NAME):
        async with get_task_session() as db:
            job = build_rgpd_cleanup_job(db, build_cleanup_clients())
            summary = await job.run(run_timestamp=run_timestamp, trigger=trigger)
    return summary_to_dict(summary)


def _skipped_run(job_name: str, run_timestamp: Optional[str], trigger: str) -> dict:
    logger.warning(
        "Batch job already running, trigger ignored",
        extra_data={"job_name": job_name, "trigger": trigger},
    )
    return {
        "job_name": job_name,
        "run_timestamp": run_timestamp,
        "trigger": trigger,
        "status": "SKIPPED",
    }


@celery_app.task(name="hobbyjobs.workers.tasks.run_payment_reconciliation")
def run_payment_reconciliation(run_timestamp: Optional[str] = None, trigger: str = TRIGGER_CRON):
    """סנכרון תשלומים תקועים מול HelloAsso"""
    try:
        return run_async(reconcile_payments(run_timestamp, trigger))
    except BatchRunInProgressError:
        return _skipped_run(RECONCILIATION_JOB_NAME, run_timestamp, trigger)


@celery_app.task(name="hobbyjobs.workers.tasks.run_rgpd_cleanup")
def run_rgpd_cleanup(run_timestamp: Optional[str] = None, trigger: str = TRIGGER_CRON):
    """אנונימיזציה של משתמשים שנמחקו וניקוי בשירותים הפנימיים"""
    try:
        return run_async(cleanup_rgpd_data(run_timestamp, trigger))
    except BatchRunInProgressError:
        return _skipped_run(RGPD_JOB_NAME, run_timestamp, trigger)


async def delete_old_webhook_logs(days: int) -> int:
    async with get_task_session() as db:
        cutoff = utcnow() - timedelta(days=days)
        result = await db.execute(
            sa_delete(WebhookEventLog).where(
                WebhookEventLog.processed.is_(True),
                WebhookEventLog.received_at < cutoff,
            )
        )
        await db.commit()
        return result.rowcount


@celery_app.task(name="hobbyjobs.workers.tasks.cleanup_old_webhook_logs")
def cleanup_old_webhook_logs(days: Optional[int] = None):
    """ניקוי רשומות webhook שעובדו מטבלת payment_webhook_logs"""
    days = days or settings.WEBHOOK_LOG_RETENTION_DAYS
    deleted = run_async(delete_old_webhook_logs(days))
    logger.info(
        "Cleaned up old webhook logs",
        extra_data={"deleted": deleted, "cutoff_days": days},
    )
    return {"deleted": deleted}
