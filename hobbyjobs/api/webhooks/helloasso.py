"""
HelloAsso Webhook Endpoint

POST /api/payments/webhook: תמיד מחזיר 200 עם {accepted, message}, כדי
ש-HelloAsso לא ינסה שוב על כשלים שלנו. כשלים נרשמים בשורת הלוג של האירוע.
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from hobbyjobs.api.dependencies.webhook_auth import is_valid_helloasso_signature
from hobbyjobs.core.exceptions import WebhookPayloadError
from hobbyjobs.core.logging import get_logger
from hobbyjobs.db.database import get_db
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.domain.services.payment_webhook_service import (
    HelloAssoWebhookHandler,
    HelloAssoWebhookPayload,
)

logger = get_logger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-HelloAsso-Signature"


class WebhookAckResponse(BaseModel):
    accepted: bool
    message: str


def get_event_publisher() -> PaymentEventPublisher:
    return PaymentEventPublisher()


def parse_helloasso_payload(body: bytes) -> HelloAssoWebhookPayload:
    try:
        return HelloAssoWebhookPayload.model_validate_json(body)
    except ValidationError as e:
        raise WebhookPayloadError(
            "HelloAsso webhook body is not a valid payload",
            details={"errors": e.error_count()},
        ) from e


@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    summary="HelloAsso payment webhook",
    description="קבלת אירועי תשלום מ-HelloAsso. מחזיר תמיד 200.",
    responses={200: {"description": "Webhook acknowledged"}},
    tags=["Webhooks"],
)
async def helloasso_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    publisher: PaymentEventPublisher = Depends(get_event_publisher),
) -> WebhookAckResponse:
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    if not is_valid_helloasso_signature(signature, body):
        logger.warning("HelloAsso webhook rejected: invalid signature")
        return WebhookAckResponse(accepted=False, message="Invalid signature")

    try:
        payload = parse_helloasso_payload(body)
    except WebhookPayloadError as e:
        logger.warning(
            "HelloAsso webhook rejected: unreadable payload",
            extra_data={"error": e.message, **e.details},
        )
        return WebhookAckResponse(accepted=False, message="Deserialization error")

    handler = HelloAssoWebhookHandler(db, publisher)
    try:
        processed = await handler.handle(
            payload, body.decode("utf-8", errors="replace"), signature=signature
        )
    except Exception as e:
        # תקלת DB מחוץ לשורת הלוג: HelloAsso עדיין מקבל 200, המסירה הבאה תנסה שוב
        logger.error(
            "HelloAsso webhook handling crashed",
            extra_data={"event_id": payload.resolved_event_id, "error": str(e)},
            exc_info=True,
        )
        processed = False
    return WebhookAckResponse(
        accepted=processed,
        message="Webhook processed" if processed else "Webhook processing failed",
    )
