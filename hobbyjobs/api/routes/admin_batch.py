"""
Admin Batch Endpoints: הפעלה ידנית של jobs ושליפת לוג הביקורת.

כל ה-endpoints דורשים X-Admin-API-Key.
ההפעלה אסינכרונית: ה-job נשלח ל-Celery וה-endpoint מחזיר 202 עם מזהה ה-task.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.api.dependencies.admin_auth import require_admin_api_key
from hobbyjobs.batch.engine import TRIGGER_ADMIN_MANUAL
from hobbyjobs.batch.payment_reconciliation import JOB_NAME as RECONCILIATION_JOB_NAME
from hobbyjobs.batch.rgpd_cleanup import JOB_NAME as RGPD_JOB_NAME
from hobbyjobs.core.clock import to_naive_utc, utcnow
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.database import get_db
from hobbyjobs.db.models.run_audit import RunAuditRecord
from hobbyjobs.workers.tasks import run_payment_reconciliation, run_rgpd_cleanup

logger = get_logger(__name__)

router = APIRouter()


class JobTriggerResponse(BaseModel):
    task_id: str
    job_name: str
    run_timestamp: str
    trigger: str


class RunAuditResponse(BaseModel):
    id: int
    job_name: str
    run_timestamp: str
    trigger: str
    execution_timestamp: datetime
    run_status: str
    items_processed: int
    items_changed: int
    skip_count: int
    side_effect_outcome: str
    error_details: Optional[str] = None


def _enqueue(task, job_name: str) -> JobTriggerResponse:
    run_timestamp = utcnow().isoformat()
    result = task.delay(run_timestamp=run_timestamp, trigger=TRIGGER_ADMIN_MANUAL)
    logger.info(
        "Admin triggered batch job",
        extra_data={"job_name": job_name, "task_id": result.id},
    )
    return JobTriggerResponse(
        task_id=result.id,
        job_name=job_name,
        run_timestamp=run_timestamp,
        trigger=TRIGGER_ADMIN_MANUAL,
    )


@router.post(
    "/payment-reconciliation",
    response_model=JobTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="הפעלה ידנית של סנכרון תשלומים",
    responses={
        202: {"description": "ה-job נשלח להרצה"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
    },
)
async def trigger_payment_reconciliation(
    _: None = Depends(require_admin_api_key),
) -> JobTriggerResponse:
    return _enqueue(run_payment_reconciliation, RECONCILIATION_JOB_NAME)


@router.post(
    "/rgpd-cleanup",
    response_model=JobTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="הפעלה ידנית של ניקוי RGPD",
    responses={
        202: {"description": "ה-job נשלח להרצה"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
    },
)
async def trigger_rgpd_cleanup(
    _: None = Depends(require_admin_api_key),
) -> JobTriggerResponse:
    return _enqueue(run_rgpd_cleanup, RGPD_JOB_NAME)


@router.get(
    "/runs",
    response_model=list[RunAuditResponse],
    summary="לוג ביקורת של הרצות",
    description="רשומות ביקורת מהחדשה לישנה, עם סינון לפי job וטווח זמן.",
    responses={
        200: {"description": "רשימת הרצות"},
        400: {"description": "טווח זמן לא תקין"},
        401: {"description": "חסר מפתח API"},
        403: {"description": "מפתח API שגוי"},
    },
)
async def list_runs(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
    job_name: Optional[str] = Query(default=None, description="סינון לפי שם job"),
    since: Optional[datetime] = Query(default=None, description="מ- (כולל)"),
    until: Optional[datetime] = Query(default=None, description="עד (לא כולל)"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[RunAuditResponse]:
    since = to_naive_utc(since) if since else None
    until = to_naive_utc(until) if until else None
    if since and until and since >= until:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'since' must be earlier than 'until'",
        )

    query = select(RunAuditRecord)
    if job_name:
        query = query.where(RunAuditRecord.job_name == job_name)
    if since:
        query = query.where(RunAuditRecord.execution_timestamp >= since)
    if until:
        query = query.where(RunAuditRecord.execution_timestamp < until)
    query = (
        query.order_by(RunAuditRecord.execution_timestamp.desc(), RunAuditRecord.id.desc())
        .offset(offset)
        .limit(limit)
    )

    result = await db.execute(query)
    return [
        RunAuditResponse(
            id=record.id,
            job_name=record.job_name,
            run_timestamp=record.run_timestamp,
            trigger=record.trigger,
            execution_timestamp=record.execution_timestamp,
            run_status=record.run_status.value,
            items_processed=record.items_processed,
            items_changed=record.items_changed,
            skip_count=record.skip_count,
            side_effect_outcome=record.side_effect_outcome.value,
            error_details=record.error_details,
        )
        for record in result.scalars().all()
    ]
