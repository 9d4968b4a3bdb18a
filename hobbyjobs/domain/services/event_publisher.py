"""
Payment Event Publisher: פרסום אירועי תשלום ל-Redis Pub/Sub.

Fire-and-forget: כשלון בפרסום נרשם ללוג ומוחזר כ-False, אף פעם לא נזרק.
שינוי הסטטוס שכבר נשמר לא מתבטל בגלל כשלון פרסום.

ערוצים:
- family-hobbies.payment.completed
- family-hobbies.payment.failed
"""
import json
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis

from hobbyjobs.core.clock import utcnow
from hobbyjobs.core.logging import get_logger
from hobbyjobs.core.redis_client import get_redis
from hobbyjobs.db.models.payment import Payment

logger = get_logger(__name__)

TOPIC_PAYMENT_COMPLETED = "family-hobbies.payment.completed"
TOPIC_PAYMENT_FAILED = "family-hobbies.payment.failed"


class PaymentEventPublisher:

    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ):
        self._redis_factory = redis_factory

    async def publish_payment_completed(self, payment: Payment) -> bool:
        return await self._publish(TOPIC_PAYMENT_COMPLETED, payment, {
            "payment_id": payment.id,
            "subscription_id": payment.subscription_id,
            "family_id": payment.family_id,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
        })

    async def publish_payment_failed(
        self, payment: Payment, reason: str = "Payment refused by HelloAsso"
    ) -> bool:
        return await self._publish(TOPIC_PAYMENT_FAILED, payment, {
            "payment_id": payment.id,
            "subscription_id": payment.subscription_id,
            "family_id": payment.family_id,
            "failure_reason": reason,
        })

    async def _publish(self, topic: str, payment: Payment, event: dict[str, Any]) -> bool:
        # מפתח ההודעה = מזהה התשלום, לשמירת סדר per-payment אצל הצרכנים
        message = {"key": str(payment.id), "occurred_at": utcnow().isoformat(), **event}
        try:
            redis = await self._redis_factory()
            await redis.publish(topic, json.dumps(message, ensure_ascii=False, default=str))
        except Exception as e:
            logger.error(
                "כשלון בפרסום אירוע תשלום",
                extra_data={"topic": topic, "payment_id": payment.id, "error": str(e)},
                exc_info=True,
            )
            return False

        logger.info(
            "אירוע תשלום פורסם",
            extra_data={"topic": topic, "payment_id": payment.id},
        )
        return True
