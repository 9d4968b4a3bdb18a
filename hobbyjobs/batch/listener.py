"""
Audit run listener: כותב שורת RunAuditRecord אחת בסוף כל הרצה.

לפני ההרצה: איפוס מוני ה-writer.
אחרי ההרצה: rollback של מה שלא נשמר (אם ההרצה נכשלה באמצע chunk),
ואז רשומת ביקורת אחת עם commit משלה.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.batch.engine import ItemReader, ItemWriter, RunContext, RunListener, RunSummary
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.models.run_audit import RunAuditRecord, SideEffectOutcome

logger = get_logger(__name__)


class AuditRunListener(RunListener):

    def __init__(self, db: AsyncSession, reader: ItemReader, writer: ItemWriter):
        self.db = db
        self.reader = reader
        self.writer = writer

    async def before_run(self, context: RunContext) -> None:
        self.writer.reset()

    async def after_run(self, summary: RunSummary) -> RunAuditRecord:
        if summary.failed:
            # chunk שנקטע באמצע לא נשמר
            await self.db.rollback()

        errors = list(self.writer.side_effects.errors)
        if summary.error_text:
            errors.append(summary.error_text)

        outcome = (
            SideEffectOutcome.FAILED if summary.failed
            else self.writer.side_effects.outcome
        )

        record = RunAuditRecord(
            job_name=summary.job_name,
            run_timestamp=summary.run_timestamp,
            trigger=summary.trigger,
            execution_timestamp=summary.finished_at or summary.started_at,
            run_status=summary.status,
            items_processed=self.reader.read_count,
            items_changed=self.writer.items_written,
            skip_count=summary.skip_count,
            side_effect_outcome=outcome,
            error_details="\n".join(errors) or None,
        )
        self.db.add(record)
        await self.db.commit()

        logger.info(
            "Run audit recorded",
            extra_data={
                "job_name": summary.job_name,
                "items_processed": record.items_processed,
                "items_changed": record.items_changed,
                "side_effect_outcome": outcome.value,
            },
        )
        return record
