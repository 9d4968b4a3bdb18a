"""
Batch Run Audit Model: לוג ביקורת להרצות jobs.

רישום בלתי-הפיך: שורה אחת לכל הרצה, נכתבת רק ע"י ה-run listener בסיום ההרצה
ולא מתעדכנת אחר כך.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum, Index

from hobbyjobs.core.clock import utcnow
from hobbyjobs.db.database import Base


class SideEffectOutcome(str, enum.Enum):
    """תוצאה מצטברת של תופעות הלוואי בהרצה (אירועים / קריאות לשירותים אחרים)"""
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILED = "FAILED"


class RunStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RunAuditRecord(Base):
    """One immutable summary row per job execution"""

    __tablename__ = "batch_run_audit"

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String(100), nullable=False)
    # פרמטר ההרצה הייחודי (ISO timestamp): מונע התנגשות זהות בין הרצות
    run_timestamp = Column(String(64), nullable=False)
    trigger = Column(String(20), nullable=False, default="CRON")

    execution_timestamp = Column(DateTime, default=utcnow, nullable=False)
    run_status = Column(SQLEnum(RunStatus), nullable=False)
    items_processed = Column(Integer, nullable=False, default=0)
    items_changed = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    side_effect_outcome = Column(SQLEnum(SideEffectOutcome), nullable=False)
    error_details = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_batch_run_audit_job_execution", "job_name", "execution_timestamp"),
    )
