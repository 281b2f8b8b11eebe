"""
Tests for the Salesforce credential cache.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
import aiohttp
from aioresponses import aioresponses
from yarl import URL

from attendance_bridge.core.config import Settings
from attendance_bridge.integrations.salesforce.credential_cache import Credential, CredentialCache
from attendance_bridge.integrations.salesforce.errors import AuthenticationError


LOGIN_URL = "https://login.example.com/services/oauth2/token"
INSTANCE_URL = "https://example.my.salesforce.com"


@pytest.fixture
def config():
    return Settings(
        SF_LOGIN_URL=LOGIN_URL,
        SF_CLIENT_ID="client",
        SF_CLIENT_SECRET="secret",
        SF_USERNAME="user@example.com",
        SF_PASSWORD="hunter2",
        SF_SECURITY_TOKEN="tok",
        SF_SESSION_LIFETIME_SECONDS=7200,
        TOKEN_REFRESH_MARGIN_SECONDS=300,
    )


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 20, 10, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def token_payload(token="access-1"):
    return {
        "access_token": token,
        "instance_url": INSTANCE_URL,
        "token_type": "Bearer",
        "issued_at": "1768903200000",
    }


class TestCredentialCache:

    @pytest.mark.asyncio
    async def test_first_call_authenticates(self, config):
        clock = FakeClock()
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=token_payload(), status=200)

            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=clock)
                credential = await cache.get_credential()

            sent = m.requests[("POST", URL(LOGIN_URL))][0].kwargs["data"]

        assert credential.instance_url == INSTANCE_URL
        assert credential.access_token == "access-1"
        assert credential.authorization_header == "Bearer access-1"
        assert sent["grant_type"] == "password"
        assert sent["password"] == "hunter2tok"

    @pytest.mark.asyncio
    async def test_expiry_is_lifetime_minus_margin(self, config):
        clock = FakeClock()
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=token_payload(), status=200)
            async with aiohttp.ClientSession() as session:
                credential = await CredentialCache(session, config, clock=clock).get_credential()

        assert credential.expires_at == clock.now + timedelta(seconds=7200 - 300)

    @pytest.mark.asyncio
    async def test_declared_expires_in_wins(self, config):
        clock = FakeClock()
        payload = dict(token_payload(), expires_in=3600)
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=payload, status=200)
            async with aiohttp.ClientSession() as session:
                credential = await CredentialCache(session, config, clock=clock).get_credential()

        assert credential.expires_at == clock.now + timedelta(seconds=3300)

    @pytest.mark.asyncio
    async def test_cached_until_expiry_then_refreshed(self, config):
        clock = FakeClock()
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=token_payload("access-1"), status=200)
            m.post(LOGIN_URL, payload=token_payload("access-2"), status=200)

            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=clock)
                first = await cache.get_credential()

                clock.advance(minutes=90)
                assert await cache.get_credential() is first
                assert cache.refresh_count == 1

                clock.advance(minutes=26)  # past lifetime - margin
                second = await cache.get_credential()

        assert second.access_token == "access-2"
        assert cache.refresh_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_authenticate_once(self, config):
        clock = FakeClock()
        with aioresponses() as m:
            # Registered once: a second login attempt would fail to match
            m.post(LOGIN_URL, payload=token_payload(), status=200)

            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=clock)
                credentials = await asyncio.gather(*[cache.get_credential() for _ in range(5)])

        assert cache.refresh_count == 1
        assert all(c is credentials[0] for c in credentials)

    @pytest.mark.asyncio
    async def test_rejected_login_raises_authentication_error(self, config):
        with aioresponses() as m:
            m.post(
                LOGIN_URL,
                payload={"error": "invalid_grant", "error_description": "authentication failure"},
                status=400
            )
            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=FakeClock())
                with pytest.raises(AuthenticationError) as exc_info:
                    await cache.get_credential()

        error = exc_info.value
        assert error.error_code == "invalid_grant"
        assert error.message == "authentication failure"
        assert "hunter2" not in str(error.to_response())
        assert cache.credential is None

    @pytest.mark.asyncio
    async def test_transport_failure_raises_authentication_error(self, config):
        with aioresponses() as m:
            m.post(LOGIN_URL, exception=aiohttp.ClientConnectionError("refused"))
            async with aiohttp.ClientSession() as session:
                with pytest.raises(AuthenticationError):
                    await CredentialCache(session, config, clock=FakeClock()).get_credential()

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, config):
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=token_payload("access-1"), status=200)
            m.post(LOGIN_URL, payload=token_payload("access-2"), status=200)
            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=FakeClock())
                await cache.get_credential()
                cache.invalidate()
                credential = await cache.get_credential()

        assert credential.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_invalidating_superseded_credential_keeps_current(self, config):
        with aioresponses() as m:
            m.post(LOGIN_URL, payload=token_payload("access-1"), status=200)
            m.post(LOGIN_URL, payload=token_payload("access-2"), status=200)
            async with aiohttp.ClientSession() as session:
                cache = CredentialCache(session, config, clock=FakeClock())
                first = await cache.get_credential()
                cache.invalidate(first)
                second = await cache.get_credential()

                cache.invalidate(first)

                assert cache.credential is second
                assert (await cache.get_credential()) is second

        assert cache.refresh_count == 2


def test_credential_validity_window():
    now = datetime(2026, 1, 20, tzinfo=timezone.utc)
    credential = Credential(INSTANCE_URL, "t", expires_at=now + timedelta(seconds=1))
    assert credential.is_valid(now)
    assert not credential.is_valid(now + timedelta(seconds=1))
