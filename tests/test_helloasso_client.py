"""
Tests for the HelloAsso adapters: hobbyjobs/domain/services/helloasso/

מכסה:
- token manager: מטמון, רענון לפני פקיעה, invalidate, כשלי endpoint
- גישה מקבילה: רענון אחד בלבד תחת ה-lock
- checkout client: 401 → רענון טוקן וניסיון חוזר אחד, שגיאות → ExternalApiError
"""
import asyncio
from datetime import datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from hobbyjobs.core.exceptions import ExternalApiError, ServiceTimeoutError, TokenRefreshError
from hobbyjobs.domain.services.helloasso import HelloAssoCheckoutClient, HelloAssoTokenManager

TOKEN_URL = "https://auth.test/oauth2/token"
API_URL = "https://api.test"


class MutableClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def _token_handler(expires_in=3600):
    issued = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        issued["count"] += 1
        body = {"access_token": f"token-{issued['count']}", "token_type": "bearer"}
        if expires_in is not None:
            body["expires_in"] = expires_in
        return httpx.Response(200, json=body)

    return handler


def _manager(transport, clock=None) -> HelloAssoTokenManager:
    return HelloAssoTokenManager(
        TOKEN_URL,
        "client-id",
        "client-secret",
        timeout_seconds=10.0,
        refresh_margin_seconds=60,
        clock=clock or MutableClock(datetime(2026, 3, 1, 8, 0)),
        transport=transport,
    )


class TestHelloAssoTokenManager:

    @pytest.mark.unit
    async def test_fetches_with_client_credentials_and_caches(self, make_transport):
        transport = make_transport(_token_handler())
        manager = _manager(transport)

        first = await manager.get_access_token()
        second = await manager.get_access_token()

        assert first == second == "token-1"
        assert len(transport.requests) == 1
        form = parse_qs(transport.requests[0].content.decode())
        assert form == {
            "grant_type": ["client_credentials"],
            "client_id": ["client-id"],
            "client_secret": ["client-secret"],
        }

    @pytest.mark.unit
    async def test_refreshes_inside_margin(self, make_transport):
        clock = MutableClock(datetime(2026, 3, 1, 8, 0))
        transport = make_transport(_token_handler(expires_in=3600))
        manager = _manager(transport, clock)

        await manager.get_access_token()
        clock.advance(3600 - 61)
        assert await manager.get_access_token() == "token-1"

        clock.advance(2)
        assert await manager.get_access_token() == "token-2"

    @pytest.mark.unit
    async def test_missing_expires_in_defaults_to_one_hour(self, make_transport):
        clock = MutableClock(datetime(2026, 3, 1, 8, 0))
        transport = make_transport(_token_handler(expires_in=None))
        manager = _manager(transport, clock)

        await manager.get_access_token()
        clock.advance(3500)

        assert await manager.get_access_token() == "token-1"

    @pytest.mark.unit
    async def test_invalidate_forces_refresh(self, make_transport):
        transport = make_transport(_token_handler())
        manager = _manager(transport)

        await manager.get_access_token()
        manager.invalidate()

        assert await manager.get_access_token() == "token-2"

    @pytest.mark.unit
    async def test_concurrent_callers_share_one_refresh(self, make_transport):
        transport = make_transport(_token_handler())
        manager = _manager(transport)

        tokens = await asyncio.gather(*(manager.get_access_token() for _ in range(10)))

        assert set(tokens) == {"token-1"}
        assert len(transport.requests) == 1

    @pytest.mark.unit
    async def test_error_status_raises_token_refresh_error(self, make_transport):
        manager = _manager(make_transport(lambda request: httpx.Response(401, json={"error": "invalid_client"})))

        with pytest.raises(TokenRefreshError) as exc_info:
            await manager.get_access_token()

        assert exc_info.value.upstream_status == 401
        assert isinstance(exc_info.value, ExternalApiError)

    @pytest.mark.unit
    async def test_response_without_token_raises(self, make_transport):
        manager = _manager(make_transport(lambda request: httpx.Response(200, json={"token_type": "bearer"})))

        with pytest.raises(TokenRefreshError):
            await manager.get_access_token()

    @pytest.mark.unit
    async def test_timeout_raises_service_timeout(self, make_transport):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        manager = _manager(make_transport(handler))

        with pytest.raises(ServiceTimeoutError):
            await manager.get_access_token()

    @pytest.mark.unit
    async def test_failed_refresh_does_not_return_expired_token(self, make_transport):
        clock = MutableClock(datetime(2026, 3, 1, 8, 0))
        responses = iter([
            httpx.Response(200, json={"access_token": "token-1", "expires_in": 120}),
            httpx.Response(500),
        ])
        manager = _manager(make_transport(lambda request: next(responses)), clock)

        await manager.get_access_token()
        clock.advance(120)

        with pytest.raises(TokenRefreshError):
            await manager.get_access_token()


def _api_transport(make_transport, api_handler):
    """transport אחד שמשרת גם את ה-token endpoint וגם את ה-API"""
    token_handler = _token_handler()

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            return token_handler(request)
        return api_handler(request)

    return make_transport(handler)


class TestHelloAssoCheckoutClient:

    @pytest.mark.unit
    async def test_returns_checkout_status(self, make_transport):
        def api(request):
            assert request.headers["Authorization"] == "Bearer token-1"
            assert request.url.path == "/v5/payments/ck-7"
            return httpx.Response(200, json={
                "id": "ck-7", "state": "Authorized", "amount": 4500,
                "date": "2026-02-27T14:30:00+01:00", "paymentMeans": "Card",
            })

        transport = _api_transport(make_transport, api)
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        status = await client.get_checkout_status("ck-7")

        assert status.id == "ck-7"
        assert status.state == "Authorized"
        assert status.amount == 4500
        assert status.date is not None

    @pytest.mark.unit
    async def test_unauthorized_refreshes_token_and_retries_once(self, make_transport):
        def api(request):
            if request.headers["Authorization"] == "Bearer token-1":
                return httpx.Response(401)
            return httpx.Response(200, json={"id": "ck-1", "state": "Refused"})

        transport = _api_transport(make_transport, api)
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        status = await client.get_checkout_status("ck-1")

        assert status.state == "Refused"
        token_calls = [r for r in transport.requests if str(r.url) == TOKEN_URL]
        assert len(token_calls) == 2

    @pytest.mark.unit
    async def test_repeated_unauthorized_raises(self, make_transport):
        transport = _api_transport(make_transport, lambda request: httpx.Response(401))
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.get_checkout_status("ck-1")

        assert exc_info.value.upstream_status == 401

    @pytest.mark.unit
    @pytest.mark.parametrize("status_code", [404, 500, 503])
    async def test_error_status_raises_external_api_error(self, make_transport, status_code):
        transport = _api_transport(make_transport, lambda request: httpx.Response(status_code, text="oops"))
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        with pytest.raises(ExternalApiError) as exc_info:
            await client.get_checkout_status("ck-1")

        assert exc_info.value.upstream_status == status_code
        assert exc_info.value.service_name == "HelloAsso"

    @pytest.mark.unit
    async def test_timeout_raises_service_timeout(self, make_transport):
        def api(request):
            raise httpx.ReadTimeout("slow", request=request)

        transport = _api_transport(make_transport, api)
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        with pytest.raises(ServiceTimeoutError):
            await client.get_checkout_status("ck-1")

    @pytest.mark.unit
    async def test_non_json_body_raises_external_api_error(self, make_transport):
        transport = _api_transport(make_transport, lambda request: httpx.Response(200, text="<html>"))
        client = HelloAssoCheckoutClient(_manager(transport), API_URL, transport=transport)

        with pytest.raises(ExternalApiError):
            await client.get_checkout_status("ck-1")
