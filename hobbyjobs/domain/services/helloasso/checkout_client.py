"""
HelloAsso checkout status client.

GET {HELLOASSO_API_URL}/v5/payments/{checkout_id} with a bearer token from
HelloAssoTokenManager. A 401 invalidates the cached token and the call is
retried once with a fresh one. Every failure surfaces as ExternalApiError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import ExternalApiError, ServiceTimeoutError
from hobbyjobs.core.logging import get_logger
from hobbyjobs.domain.services.helloasso.token_manager import (
    SERVICE_NAME,
    HelloAssoTokenManager,
)

logger = get_logger(__name__)


class CheckoutStatus(BaseModel):
    """תשובת HelloAsso לסטטוס checkout: שדות לא מוכרים נזרקים"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    state: Optional[str] = None
    amount: Optional[int] = None
    date: Optional[datetime] = None


class HelloAssoCheckoutClient:

    def __init__(
        self,
        token_manager: HelloAssoTokenManager,
        base_url: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_manager = token_manager
        self.base_url = (base_url or settings.HELLOASSO_API_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.HELLOASSO_TIMEOUT_SECONDS
        self._transport = transport

    async def get_checkout_status(self, checkout_id: str) -> CheckoutStatus:
        """
        שליפת סטטוס checkout מ-HelloAsso.

        Raises:
            ExternalApiError: timeout, כשל רשת, סטטוס שגיאה או תשובה לא תקינה.
        """
        response = await self._get_status(checkout_id)
        if response.status_code == 401:
            logger.warning(
                "HelloAsso rejected bearer token, refreshing and retrying",
                extra_data={"checkout_id": checkout_id},
            )
            self.token_manager.invalidate()
            response = await self._get_status(checkout_id)

        if response.status_code >= 400:
            raise ExternalApiError.from_response(SERVICE_NAME, "checkout-status", response)

        try:
            return CheckoutStatus.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ExternalApiError(
                SERVICE_NAME,
                f"HelloAsso checkout-status returned an unreadable body for {checkout_id}",
                upstream_status=response.status_code,
            ) from exc

    async def _get_status(self, checkout_id: str) -> httpx.Response:
        token = await self.token_manager.get_access_token()
        url = f"{self.base_url}/v5/payments/{checkout_id}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                return await client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(SERVICE_NAME, self.timeout_seconds) from exc
        except httpx.RequestError as exc:
            raise ExternalApiError(
                SERVICE_NAME, f"HelloAsso checkout-status request failed: {exc}"
            ) from exc
