"""Tests for the Dropbox bearer-token cache."""

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import FakeClock, dropbox_settings
from prionstudy.config import Settings
from prionstudy.exceptions import ConfigurationError, TokenRefreshError
from prionstudy.services.token_cache import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    REFRESH_BUFFER_SECONDS,
    TokenCache,
)


class TokenEndpoint:
    """Fake OAuth endpoint handing out token-1, token-2, ..."""

    def __init__(self, expires_in=3600):
        self.calls = 0
        self.expires_in = expires_in
        self.fail = False
        self.last_form = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        self.last_form = parse_qs(request.content.decode())
        if self.fail:
            return httpx.Response(400, text='{"error": "invalid_grant"}')
        body = {"access_token": f"token-{self.calls}", "token_type": "bearer"}
        if self.expires_in is not None:
            body["expires_in"] = self.expires_in
        return httpx.Response(200, json=body)


def make_cache(endpoint: TokenEndpoint, clock: FakeClock, settings: Settings = None) -> TokenCache:
    return TokenCache(
        settings=settings or dropbox_settings(),
        clock=clock,
        transport=httpx.MockTransport(endpoint),
    )


def test_first_call_refreshes_then_reuses(clock):
    endpoint = TokenEndpoint()
    cache = make_cache(endpoint, clock)

    async def run():
        first = await cache.get_valid_token()
        clock.advance(60)
        second = await cache.get_valid_token()
        return first, second

    first, second = asyncio.run(run())
    assert first == second == "token-1"
    assert endpoint.calls == 1
    assert endpoint.last_form["grant_type"] == ["refresh_token"]
    assert endpoint.last_form["refresh_token"] == ["refresh-token"]
    assert endpoint.last_form["client_id"] == ["app-key"]


def test_token_inside_buffer_is_refreshed(clock):
    endpoint = TokenEndpoint(expires_in=3600)
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        clock.advance(3600 - REFRESH_BUFFER_SECONDS + 1)
        return await cache.get_valid_token()

    assert asyncio.run(run()) == "token-2"
    assert endpoint.calls == 2


def test_token_exactly_at_buffer_edge_is_still_served(clock):
    endpoint = TokenEndpoint(expires_in=3600)
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        clock.advance(3600 - REFRESH_BUFFER_SECONDS)
        return await cache.get_valid_token()

    assert asyncio.run(run()) == "token-1"
    assert endpoint.calls == 1


def test_missing_expires_in_defaults_to_four_hours(clock):
    endpoint = TokenEndpoint(expires_in=None)
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        clock.advance(DEFAULT_TOKEN_LIFETIME_SECONDS - REFRESH_BUFFER_SECONDS - 1)
        kept = await cache.get_valid_token()
        clock.advance(2)
        renewed = await cache.get_valid_token()
        return kept, renewed

    assert asyncio.run(run()) == ("token-1", "token-2")


def test_failed_refresh_keeps_previous_token(clock):
    endpoint = TokenEndpoint(expires_in=3600)
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        endpoint.fail = True
        with pytest.raises(TokenRefreshError) as excinfo:
            await cache.force_refresh()
        assert excinfo.value.status == 400
        return await cache.get_valid_token()

    assert asyncio.run(run()) == "token-1"
    assert cache.status()["hasToken"] is True


def test_failed_refresh_of_expired_token_raises(clock):
    endpoint = TokenEndpoint(expires_in=600)
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        endpoint.fail = True
        clock.advance(600)
        await cache.get_valid_token()

    with pytest.raises(TokenRefreshError):
        asyncio.run(run())


def test_network_error_becomes_token_refresh_error(clock):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    cache = TokenCache(settings=dropbox_settings(), clock=clock, transport=httpx.MockTransport(handler))
    with pytest.raises(TokenRefreshError):
        asyncio.run(cache.get_valid_token())


def test_missing_secrets_raise_configuration_error(clock):
    endpoint = TokenEndpoint()
    cache = make_cache(endpoint, clock, settings=dropbox_settings(dropbox_refresh_token=""))

    assert cache.configured is False
    with pytest.raises(ConfigurationError):
        asyncio.run(cache.get_valid_token())
    assert endpoint.calls == 0


def test_concurrent_callers_share_one_refresh(clock):
    endpoint = TokenEndpoint()
    cache = make_cache(endpoint, clock)

    async def run():
        return await asyncio.gather(*(cache.get_valid_token() for _ in range(5)))

    tokens = asyncio.run(run())
    assert set(tokens) == {"token-1"}
    assert endpoint.calls == 1


def test_status_never_exposes_token(clock):
    cache = make_cache(TokenEndpoint(), clock)
    asyncio.run(cache.get_valid_token())

    status = cache.status()
    assert status["fresh"] is True
    assert status["expiresAt"].endswith("+00:00")
    assert "token-1" not in str(status)


def test_non_json_token_response_becomes_token_refresh_error(clock):
    def handler(request):
        return httpx.Response(200, text="<html>captive portal</html>")

    cache = TokenCache(settings=dropbox_settings(), clock=clock, transport=httpx.MockTransport(handler))
    with pytest.raises(TokenRefreshError):
        asyncio.run(cache.get_valid_token())
    assert cache.status()["hasToken"] is False


def test_invalidate_forces_the_next_call_to_refresh(clock):
    endpoint = TokenEndpoint()
    cache = make_cache(endpoint, clock)

    async def run():
        await cache.get_valid_token()
        cache.invalidate()
        return await cache.get_valid_token()

    assert asyncio.run(run()) == "token-2"
    assert endpoint.calls == 2
