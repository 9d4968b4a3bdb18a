"""
HelloAsso API adapters

OAuth2 token cache and checkout status lookups used by payment reconciliation.
"""
from hobbyjobs.domain.services.helloasso.token_manager import HelloAssoTokenManager
from hobbyjobs.domain.services.helloasso.checkout_client import (
    CheckoutStatus,
    HelloAssoCheckoutClient,
)

__all__ = [
    "HelloAssoTokenManager",
    "HelloAssoCheckoutClient",
    "CheckoutStatus",
]
