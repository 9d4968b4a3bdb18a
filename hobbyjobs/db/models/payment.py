"""
Payment Model - תשלום שנפתח מול HelloAsso checkout
"""
import enum

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Numeric, Enum as SQLEnum, Index

from hobbyjobs.core.clock import utcnow
from hobbyjobs.db.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


# מעברים מותרים: חד-כיווניים, אף סטטוס לא חוזר ל-PENDING
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}


class Payment(Base):
    """Payment lifecycle from checkout initiation through HelloAsso to a terminal state"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    family_id = Column(BigInteger, nullable=False, index=True)
    subscription_id = Column(BigInteger, nullable=False)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    description = Column(String(255), nullable=True)

    helloasso_checkout_id = Column(String(255), nullable=True, unique=True)

    paid_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # שאילתת ה-reader: status=PENDING AND created_at < cutoff
        Index("ix_payments_status_created", "status", "created_at"),
    )

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS.get(PaymentStatus(self.status), frozenset())
