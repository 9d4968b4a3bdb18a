"""
Internal service client: קריאות cleanup לשירותים פנימיים (RGPD).

DELETE {base_url}/api/v1/internal/users/{user_id}/data
כל 2xx/3xx נחשב הצלחה; סטטוס שגיאה, timeout או כשל רשת זורקים ExternalApiError.
"""
from typing import Optional

import httpx

from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import ExternalApiError, ServiceTimeoutError
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)


class InternalServiceClient:

    def __init__(
        self,
        service_name: str,
        base_url: str,
        *,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.INTERNAL_SERVICE_TIMEOUT_SECONDS
        self._transport = transport

    async def cleanup_user_data(self, user_id: int) -> None:
        url = f"{self.base_url}/api/v1/internal/users/{user_id}/data"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
                follow_redirects=False,
            ) as client:
                response = await client.delete(url)
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(self.service_name, self.timeout_seconds) from exc
        except httpx.RequestError as exc:
            raise ExternalApiError(
                self.service_name, f"{self.service_name} cleanup request failed: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise ExternalApiError.from_response(
                self.service_name, "cleanup-user-data", response
            )

        logger.info(
            "Cross-service user data cleanup succeeded",
            extra_data={"service": self.service_name, "user_id": user_id},
        )


def build_cleanup_clients(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[InternalServiceClient]:
    """השירותים שמחזיקים נתוני משתמש: association-service ו-payment-service"""
    return [
        InternalServiceClient(
            "association-service", settings.ASSOCIATION_SERVICE_URL, transport=transport
        ),
        InternalServiceClient(
            "payment-service", settings.PAYMENT_SERVICE_URL, transport=transport
        ),
    ]
