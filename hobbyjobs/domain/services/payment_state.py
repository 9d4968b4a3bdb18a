"""
Payment state mapping: טבלת המיפוי היחידה ממצב HelloAsso לסטטוס מקומי.

משותפת ל-job הסנכרון ול-webhook handler, כך ששני המסלולים תמיד מסכימים.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from hobbyjobs.core.exceptions import InvalidPaymentTransitionError
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.models.payment import Payment, PaymentStatus

logger = get_logger(__name__)

# השוואה case-insensitive: HelloAsso מחזיר "Authorized", "Refused" וכו'
_STATE_MAP: dict[str, PaymentStatus] = {
    "authorized": PaymentStatus.COMPLETED,
    "registered": PaymentStatus.COMPLETED,
    "refused": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
}
_PENDING_STATES = frozenset({"pending", "waiting", "processing"})


def map_checkout_state(state: Optional[str]) -> Optional[PaymentStatus]:
    """
    Map a HelloAsso checkout state to a terminal PaymentStatus.

    Returns None when no transition is warranted: the checkout is still
    pending, the state is missing, or the state is unknown (logged).
    """
    if not state:
        return None
    normalized = state.strip().lower()
    if normalized in _PENDING_STATES:
        return None
    target = _STATE_MAP.get(normalized)
    if target is None:
        logger.warning(
            "Unknown HelloAsso checkout state, leaving payment unchanged",
            extra_data={"state": state},
        )
    return target


def apply_transition(
    payment: Payment,
    target: PaymentStatus,
    occurred_at: datetime,
    *,
    paid_at: Optional[datetime] = None,
) -> bool:
    """
    מעבר סטטוס על התשלום + חותמת הזמן המתאימה.

    Returns:
        True אם הסטטוס השתנה, False אם התשלום כבר בסטטוס היעד.

    Raises:
        InvalidPaymentTransitionError: מעבר אסור (למשל FAILED → COMPLETED).
    """
    current = PaymentStatus(payment.status)
    if current == target:
        return False
    if not payment.can_transition_to(target):
        raise InvalidPaymentTransitionError(payment.id, current.value, target.value)

    payment.status = target
    if target == PaymentStatus.COMPLETED:
        payment.paid_at = paid_at or occurred_at
    elif target == PaymentStatus.FAILED:
        payment.failed_at = occurred_at
    elif target == PaymentStatus.REFUNDED:
        payment.refunded_at = occurred_at
    payment.updated_at = occurred_at
    return True
