"""
Celery Application Configuration
"""
from celery import Celery
from celery.schedules import crontab

from hobbyjobs.core.config import settings

celery_app = Celery(
    "hobbyjobs",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["hobbyjobs.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # שעה: תואם ל-BATCH_RUN_LOCK_SECONDS
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)


def crontab_from_expression(expression: str) -> crontab:
    """
    המרת ביטוי cron סטנדרטי (5 שדות) ל-crontab של Celery.

    "0 8 * * *" → כל יום ב-08:00, "0 3 * * 0" → כל יום ראשון ב-03:00.
    """
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(
            f"cron expression must have 5 fields "
            f"(minute hour day_of_month month day_of_week), got: {expression!r}"
        )
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def build_beat_schedule() -> dict:
    schedule = {
        "cleanup-old-webhook-logs-daily": {
            "task": "hobbyjobs.workers.tasks.cleanup_old_webhook_logs",
            "schedule": crontab(minute="30", hour="4"),
        },
    }
    # BATCH_SCHEDULING_ENABLED=False: ה-jobs רצים רק בהפעלה ידנית מה-admin API
    if settings.BATCH_SCHEDULING_ENABLED:
        schedule["payment-reconciliation"] = {
            "task": "hobbyjobs.workers.tasks.run_payment_reconciliation",
            "schedule": crontab_from_expression(settings.RECONCILIATION_CRON),
        }
        schedule["rgpd-data-cleanup"] = {
            "task": "hobbyjobs.workers.tasks.run_rgpd_cleanup",
            "schedule": crontab_from_expression(settings.RGPD_CLEANUP_CRON),
        }
    return schedule


celery_app.conf.beat_schedule = build_beat_schedule()
