"""
Payment Webhook Log - טבלת idempotency ורישום של כל webhook שהתקבל מ-HelloAsso.

external_event_id ייחודי גלובלית. רשומה עם processed=True לא מעובדת שוב לעולם :
בדיקת הקיום היא שער ה-idempotency ומתבצעת לפני כל לוגיקה עסקית.
רשומה עם processed=False (עיבוד שנכשל) מאפשרת ניסיון חוזר במסירה הבאה.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Index

from hobbyjobs.core.clock import utcnow
from hobbyjobs.db.database import Base


class WebhookEventLog(Base):
    """רשומת webhook נכנס"""

    __tablename__ = "payment_webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    external_event_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(50), nullable=True)
    payload = Column(Text, nullable=True)
    signature = Column(String(255), nullable=True)

    processed = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    received_at = Column(DateTime, default=utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_payment_webhook_logs_processed_received", "processed", "received_at"),
    )
