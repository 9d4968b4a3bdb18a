"""
Payment Reconciliation Job

Re-queries HelloAsso for payments stuck in PENDING longer than the stale
threshold and moves them to the terminal status HelloAsso reports.
COMPLETED and FAILED transitions publish one payment event each; REFUNDED
is persisted silently.
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
from hobbyjobs.core.clock import Clock, to_naive_utc, utcnow
from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import ExternalApiError
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.models.payment import Payment, PaymentStatus
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.domain.services.helloasso import HelloAssoCheckoutClient
from hobbyjobs.domain.services.payment_state import apply_transition, map_checkout_state

logger = get_logger(__name__)

JOB_NAME = "paymentReconciliationJob"


class StalePaymentReader(BufferedQueryReader[Payment]):
    """PENDING payments created before now - stale_hours, oldest first"""

    def __init__(
        self,
        db: AsyncSession,
        stale_hours: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        super().__init__(db, clock)
        self.stale_hours = stale_hours if stale_hours is not None else settings.RECONCILIATION_STALE_HOURS

    def build_query(self, now: datetime) -> Select:
        cutoff = now - timedelta(hours=self.stale_hours)
        return (
            select(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING,
                Payment.created_at < cutoff,
            )
            .order_by(Payment.created_at, Payment.id)
        )


class PaymentReconciliationProcessor(ItemProcessor[Payment, Payment]):

    def __init__(self, checkout_client: HelloAssoCheckoutClient, clock: Clock = utcnow):
        self.checkout_client = checkout_client
        self._clock = clock

    async def process(self, payment: Payment) -> Optional[Payment]:
        checkout_id = payment.helloasso_checkout_id
        if not checkout_id:
            # אין מה לשאול את HelloAsso: נשאר PENDING
            logger.warning(
                "Stale payment has no HelloAsso checkout id, skipping",
                extra_data={"payment_id": payment.id},
            )
            return None

        status = await self.checkout_client.get_checkout_status(checkout_id)
        target = map_checkout_state(status.state)
        if target is None:
            logger.info(
                "Payment still pending on HelloAsso",
                extra_data={"payment_id": payment.id, "state": status.state},
            )
            return None

        paid_at = to_naive_utc(status.date) if status.date else None
        apply_transition(payment, target, self._clock(), paid_at=paid_at)
        logger.info(
            "Payment reconciled",
            extra_data={
                "payment_id": payment.id,
                "checkout_id": checkout_id,
                "status": target.value,
            },
        )
        return payment


class PaymentReconciliationWriter(ItemWriter[Payment]):
    """Commits the chunk, then publishes one event per COMPLETED/FAILED payment"""

    def __init__(self, db: AsyncSession, publisher: PaymentEventPublisher):
        super().__init__()
        self.db = db
        self.publisher = publisher

    async def write(self, items: Sequence[Payment]) -> None:
        for payment in items:
            self.db.add(payment)
        await self.db.commit()
        self.items_written += len(items)

        for payment in items:
            status = PaymentStatus(payment.status)
            if status == PaymentStatus.COMPLETED:
                published = await self.publisher.publish_payment_completed(payment)
            elif status == PaymentStatus.FAILED:
                published = await self.publisher.publish_payment_failed(payment)
            else:
                continue

            if published:
                self.side_effects.record_success()
            else:
                self.side_effects.record_failure(
                    f"payment {payment.id}: {status.value} event not published"
                )


def build_payment_reconciliation_job(
    db: AsyncSession,
    checkout_client: HelloAssoCheckoutClient,
    publisher: PaymentEventPublisher,
    *,
    clock: Clock = utcnow,
    chunk_size: Optional[int] = None,
    max_skip_count: Optional[int] = None,
    stale_hours: Optional[int] = None,
) -> BatchJob[Payment, Payment]:
    reader = StalePaymentReader(db, stale_hours=stale_hours, clock=clock)
    writer = PaymentReconciliationWriter(db, publisher)
    return BatchJob(
        name=JOB_NAME,
        reader=reader,
        processor=PaymentReconciliationProcessor(checkout_client, clock=clock),
        writer=writer,
        chunk_size=chunk_size or settings.RECONCILIATION_CHUNK_SIZE,
        skip_policy=LimitedSkipPolicy(
            max_skip_count=(
                max_skip_count if max_skip_count is not None
                else settings.RECONCILIATION_MAX_SKIP_COUNT
            ),
            skippable=(ExternalApiError,),
        ),
        listeners=[AuditRunListener(db, reader, writer)],
        clock=clock,
    )
