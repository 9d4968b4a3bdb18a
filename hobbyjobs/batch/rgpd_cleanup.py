"""
RGPD Data Cleanup Job

ניקוי נתונים אישיים של חשבונות שנמחקו ועבר עליהם חלון השמירה:
1. Reader: משתמשים במצב DELETED, לא מאונמים, שעודכנו לפני retention_days.
2. Processor: אנונימיזציה של כל שדות ה-PII (לא מדלג לעולם).
3. Writer: commit אחד ל-chunk, ואז קריאת cleanup לכל שירות פנימי בנפרד.
   כשלון בשירות פנימי לא מבטל את האנונימיזציה המקומית, רק מוריד את התוצאה
   ל-PARTIAL_FAILURE / FAILED בלוג הביקורת.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.batch.engine import BatchJob, ItemProcessor, ItemWriter
from hobbyjobs.batch.listener import AuditRunListener
from hobbyjobs.batch.reader import BufferedQueryReader
from hobbyjobs.batch.skip_policy import LimitedSkipPolicy
from hobbyjobs.core.clock import Clock, utcnow
from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import ExternalApiError
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.models.user import User, UserStatus
from hobbyjobs.domain.services.anonymizer import PiiAnonymizer
from hobbyjobs.domain.services.internal_service_client import InternalServiceClient

logger = get_logger(__name__)

JOB_NAME = "rgpdDataCleanupJob"


class EligibleUserReader(BufferedQueryReader[User]):

    def __init__(
        self,
        db: AsyncSession,
        retention_days: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        super().__init__(db, clock)
        self.retention_days = (
            retention_days if retention_days is not None else settings.RGPD_RETENTION_DAYS
        )

    def build_query(self, now: datetime) -> Select:
        cutoff = now - timedelta(days=self.retention_days)
        return (
            select(User)
            .where(
                User.status == UserStatus.DELETED,
                User.anonymized.is_(False),
                User.updated_at < cutoff,
            )
            .order_by(User.updated_at, User.id)
        )


class RgpdAnonymizationProcessor(ItemProcessor[User, User]):

    def __init__(self, anonymizer: PiiAnonymizer, clock: Clock = utcnow):
        self.anonymizer = anonymizer
        self._clock = clock

    async def process(self, user: User) -> User:
        self.anonymizer.anonymize(user)
        user.updated_at = self._clock()
        logger.info("User anonymized", extra_data={"user_id": user.id})
        return user


class RgpdCleanupWriter(ItemWriter[User]):

    def __init__(self, db: AsyncSession, cleanup_clients: Sequence[InternalServiceClient]):
        super().__init__()
        self.db = db
        self.cleanup_clients = list(cleanup_clients)

    async def write(self, items: Sequence[User]) -> None:
        for user in items:
            self.db.add(user)
        await self.db.commit()
        self.items_written += len(items)

        for user in items:
            for client in self.cleanup_clients:
                try:
                    await client.cleanup_user_data(user.id)
                except ExternalApiError as e:
                    logger.warning(
                        "Cross-service cleanup failed",
                        extra_data={
                            "service": client.service_name,
                            "user_id": user.id,
                            "error": str(e),
                        },
                    )
                    # הודעת ExternalApiError כבר כוללת את שם השירות
                    self.side_effects.record_failure(f"user {user.id}: {e}")
                else:
                    self.side_effects.record_success()


def build_rgpd_cleanup_job(
    db: AsyncSession,
    cleanup_clients: Sequence[InternalServiceClient],
    *,
    anonymizer: Optional[PiiAnonymizer] = None,
    clock: Clock = utcnow,
    chunk_size: Optional[int] = None,
    retention_days: Optional[int] = None,
) -> BatchJob[User, User]:
    reader = EligibleUserReader(db, retention_days=retention_days, clock=clock)
    writer = RgpdCleanupWriter(db, cleanup_clients)
    return BatchJob(
        name=JOB_NAME,
        reader=reader,
        processor=RgpdAnonymizationProcessor(anonymizer or PiiAnonymizer(), clock=clock),
        writer=writer,
        chunk_size=chunk_size or settings.RGPD_CHUNK_SIZE,
        # האנונימיזציה מקומית בלבד: אין כשלים זמניים לדלג עליהם
        skip_policy=LimitedSkipPolicy(max_skip_count=0),
        listeners=[AuditRunListener(db, reader, writer)],
        clock=clock,
    )
