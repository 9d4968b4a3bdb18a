"""
Domain Services
"""
from hobbyjobs.domain.services.anonymizer import PiiAnonymizer
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.domain.services.internal_service_client import InternalServiceClient
from hobbyjobs.domain.services.payment_webhook_service import HelloAssoWebhookHandler

__all__ = [
    "PiiAnonymizer",
    "PaymentEventPublisher",
    "InternalServiceClient",
    "HelloAssoWebhookHandler",
]
