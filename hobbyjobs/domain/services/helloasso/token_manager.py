"""
HelloAsso OAuth2 token manager.

Caches one bearer token per instance and refreshes it before it expires
(client-credentials grant). All access goes through a single asyncio.Lock,
so concurrent callers wait for the one in-flight refresh instead of racing.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import httpx

from hobbyjobs.core.clock import Clock, utcnow
from hobbyjobs.core.config import settings
from hobbyjobs.core.exceptions import ServiceTimeoutError, TokenRefreshError
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "HelloAsso"
# HelloAsso לא תמיד מחזיר expires_in
DEFAULT_EXPIRES_IN_SECONDS = 3600


class HelloAssoTokenManager:

    def __init__(
        self,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        refresh_margin_seconds: Optional[int] = None,
        clock: Clock = utcnow,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_url = token_url or settings.HELLOASSO_TOKEN_URL
        self.client_id = client_id if client_id is not None else settings.HELLOASSO_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.HELLOASSO_CLIENT_SECRET
        )
        self.timeout_seconds = timeout_seconds or settings.HELLOASSO_TIMEOUT_SECONDS
        self.refresh_margin = timedelta(
            seconds=(
                refresh_margin_seconds
                if refresh_margin_seconds is not None
                else settings.HELLOASSO_TOKEN_REFRESH_MARGIN_SECONDS
            )
        )
        self._clock = clock
        self._transport = transport
        self._lock = asyncio.Lock()
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def _is_valid(self, now: datetime) -> bool:
        return (
            self._access_token is not None
            and self._expires_at is not None
            and now + self.refresh_margin < self._expires_at
        )

    async def get_access_token(self) -> str:
        """
        מחזיר טוקן תקף: מהמטמון, או אחרי רענון מול HelloAsso.

        Raises:
            TokenRefreshError: ה-token endpoint נכשל או לא החזיר טוקן.
            ServiceTimeoutError: ה-token endpoint לא ענה בזמן.
        """
        async with self._lock:
            if self._is_valid(self._clock()):
                return self._access_token  # type: ignore[return-value]
            await self._refresh()
            return self._access_token  # type: ignore[return-value]

    def invalidate(self) -> None:
        """מחיקת הטוקן מהמטמון: אחרי 401 מ-HelloAsso"""
        self._access_token = None
        self._expires_at = None
        logger.info("HelloAsso access token invalidated")

    async def _refresh(self) -> None:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.token_url, data=data)
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(SERVICE_NAME, self.timeout_seconds) from exc
        except httpx.RequestError as exc:
            raise TokenRefreshError(
                SERVICE_NAME, f"HelloAsso token request failed: {exc}"
            ) from exc

        if response.status_code >= 400:
            logger.error(
                "HelloAsso token request rejected",
                extra_data={"status_code": response.status_code},
            )
            raise TokenRefreshError(
                SERVICE_NAME,
                f"HelloAsso token endpoint returned status {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TokenRefreshError(
                SERVICE_NAME, "HelloAsso token response is not JSON",
                upstream_status=response.status_code,
            ) from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise TokenRefreshError(
                SERVICE_NAME, "HelloAsso token response has no access_token",
                upstream_status=response.status_code,
            )

        expires_in = body.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
        self._access_token = access_token
        self._expires_at = self._clock() + timedelta(seconds=int(expires_in))
        logger.info(
            "HelloAsso access token refreshed",
            extra_data={"expires_in": int(expires_in)},
        )
