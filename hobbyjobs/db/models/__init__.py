"""
Database Models
"""
from hobbyjobs.db.models.payment import Payment, PaymentStatus
from hobbyjobs.db.models.user import User, UserStatus
from hobbyjobs.db.models.webhook_event_log import WebhookEventLog
from hobbyjobs.db.models.run_audit import RunAuditRecord, RunStatus, SideEffectOutcome

__all__ = [
    "Payment",
    "PaymentStatus",
    "User",
    "UserStatus",
    "WebhookEventLog",
    "RunAuditRecord",
    "RunStatus",
    "SideEffectOutcome",
]
