"""
HelloAsso Payment Webhook Service

Idempotent processing of HelloAsso payment notifications:

1. Resolve the event id (top-level ``eventId``, falling back to ``data.id``).
2. A log row with processed=True means the event was already applied: done.
3. Otherwise insert the log row (or reuse an unprocessed one from a failed
   delivery), look up the payment by checkout id under a row lock, apply the
   mapped status, publish the matching event and mark the row processed.
4. Any failure is stored on the log row; the row stays unprocessed so the
   next delivery of the same event retries it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.core.clock import Clock, to_naive_utc, utcnow
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.models.payment import Payment, PaymentStatus
from hobbyjobs.db.models.webhook_event_log import WebhookEventLog
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.domain.services.payment_state import apply_transition, map_checkout_state

logger = get_logger(__name__)

_MAX_ERROR_CHARS = 2000


class HelloAssoWebhookData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    amount: Optional[int] = None
    state: Optional[str] = None
    date: Optional[datetime] = None


class HelloAssoWebhookPayload(BaseModel):
    """גוף ה-webhook של HelloAsso: שדות לא מוכרים נזרקים"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_type: Optional[str] = Field(default=None, alias="eventType")
    event_id: Optional[str] = Field(default=None, alias="eventId")
    data: Optional[HelloAssoWebhookData] = None

    @property
    def resolved_event_id(self) -> Optional[str]:
        if self.event_id:
            return self.event_id
        if self.data is not None and self.data.id:
            return self.data.id
        return None


class HelloAssoWebhookHandler:

    def __init__(
        self,
        db: AsyncSession,
        publisher: PaymentEventPublisher,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.publisher = publisher
        self._clock = clock

    async def handle(
        self,
        payload: HelloAssoWebhookPayload,
        raw_body: str,
        signature: Optional[str] = None,
    ) -> bool:
        """
        Returns:
            True אם האירוע עובד (עכשיו או קודם), False אם חסר מזהה או שהעיבוד נכשל.
        """
        event_id = payload.resolved_event_id
        if not event_id:
            logger.warning(
                "HelloAsso webhook without event id rejected",
                extra_data={"event_type": payload.event_type},
            )
            return False

        log_row = await self._acquire_log_row(event_id, payload, raw_body, signature)
        if log_row is None:
            return True

        try:
            transitioned = await self._apply_payment_update(payload)
        except Exception as e:
            await self.db.rollback()
            await self._record_failure(event_id, str(e))
            logger.error(
                "HelloAsso webhook processing failed",
                extra_data={"event_id": event_id, "error": str(e)},
                exc_info=True,
            )
            return False

        log_row.processed = True
        log_row.processed_at = self._clock()
        log_row.error_message = None
        await self.db.commit()

        logger.info(
            "HelloAsso webhook processed",
            extra_data={"event_id": event_id, "event_type": payload.event_type},
        )
        # פרסום רק אחרי commit: כשלון פרסום לא משפיע על השינוי שנשמר
        if transitioned is not None:
            await self._publish(*transitioned)
        return True

    async def _acquire_log_row(
        self,
        event_id: str,
        payload: HelloAssoWebhookPayload,
        raw_body: str,
        signature: Optional[str],
    ) -> Optional[WebhookEventLog]:
        """
        שער ה-idempotency: נבדק לפני כל לוגיקה עסקית.

        מחזיר None אם האירוע כבר עובד, אחרת את שורת הלוג לעיבוד.
        """
        existing = await self._find_log_row(event_id)
        if existing is not None:
            if existing.processed:
                logger.info(
                    "Skipping already processed HelloAsso webhook",
                    extra_data={"event_id": event_id},
                )
                return None
            # מסירה חוזרת של אירוע שנכשל: מעבדים שוב על אותה שורה
            existing.payload = raw_body
            existing.signature = signature
            return existing

        log_row = WebhookEventLog(
            external_event_id=event_id,
            event_type=payload.event_type,
            payload=raw_body,
            signature=signature,
            processed=False,
            received_at=self._clock(),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(log_row)
            await self.db.commit()
        except IntegrityError:
            # מסירה מקבילה של אותו אירוע הכניסה שורה ראשונה
            await self.db.rollback()
            logger.info(
                "Concurrent delivery of HelloAsso webhook, skipping",
                extra_data={"event_id": event_id},
            )
            return None
        return log_row

    async def _find_log_row(self, event_id: str) -> Optional[WebhookEventLog]:
        result = await self.db.execute(
            select(WebhookEventLog).where(WebhookEventLog.external_event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def _apply_payment_update(
        self, payload: HelloAssoWebhookPayload
    ) -> Optional[tuple[Payment, PaymentStatus]]:
        """מחזיר (payment, target) אם הסטטוס השתנה, לפרסום אחרי commit"""
        data = payload.data
        checkout_id = data.id if data is not None else None
        if not checkout_id:
            logger.warning("HelloAsso webhook has no checkout id, nothing to update")
            return None

        result = await self.db.execute(
            select(Payment)
            .where(Payment.helloasso_checkout_id == checkout_id)
            .with_for_update()
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            logger.warning(
                "No payment found for HelloAsso checkout",
                extra_data={"checkout_id": checkout_id},
            )
            return None

        target = map_checkout_state(data.state)
        if target is None:
            logger.info(
                "HelloAsso webhook state needs no transition",
                extra_data={"payment_id": payment.id, "state": data.state},
            )
            return None

        now = self._clock()
        changed = apply_transition(
            payment, target, now, paid_at=to_naive_utc(data.date) if data.date else None
        )
        await self.db.flush()
        return (payment, target) if changed else None

    async def _publish(self, payment: Payment, target: PaymentStatus) -> None:
        if target == PaymentStatus.COMPLETED:
            await self.publisher.publish_payment_completed(payment)
        elif target == PaymentStatus.FAILED:
            await self.publisher.publish_payment_failed(payment)

    async def _record_failure(self, event_id: str, error: str) -> None:
        log_row = await self._find_log_row(event_id)
        if log_row is None:
            return
        log_row.processed = False
        log_row.error_message = error[:_MAX_ERROR_CHARS]
        await self.db.commit()
