"""
OAuth 2.0 password-grant authentication and bearer credential caching.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import aiohttp

from attendance_bridge.core.config import Settings, settings as default_settings
from attendance_bridge.integrations.salesforce.errors import AuthenticationError, parse_error_body


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Bearer credential for one Salesforce instance. Replaced wholesale on refresh."""
    instance_url: str
    access_token: str
    expires_at: datetime
    token_type: str = "Bearer"

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"


class CredentialCache:
    """
    Holds the current Salesforce credential and refreshes it when absent or expired.

    Concurrent callers that miss the cache wait on a single lock, so only one of
    them performs the login call; the rest reuse its result.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        config: Settings = default_settings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self._http_session = http_session
        self.config = config
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    async def get_credential(self) -> Credential:
        """Return the cached credential, authenticating first if it is missing or expired."""
        credential = self._credential
        if credential and credential.is_valid(self._clock()):
            return credential

        async with self._lock:
            # Another waiter may have refreshed while we were blocked
            credential = self._credential
            if credential and credential.is_valid(self._clock()):
                return credential
            return await self.refresh()

    async def refresh(self) -> Credential:
        """Authenticate unconditionally and replace the cached credential."""
        token_response = await self._request_token()
        issued_at = self._clock()
        lifetime = int(token_response.get('expires_in') or self.config.SF_SESSION_LIFETIME_SECONDS)
        expires_at = issued_at + timedelta(
            seconds=lifetime - self.config.TOKEN_REFRESH_MARGIN_SECONDS
        )

        self._credential = Credential(
            instance_url=token_response['instance_url'].rstrip('/'),
            access_token=token_response['access_token'],
            expires_at=expires_at,
            token_type=token_response.get('token_type', 'Bearer'),
        )
        self.refresh_count += 1
        logger.info(f"[SF LOGIN] Connected to: {self._credential.instance_url}")
        return self._credential

    def invalidate(self, stale: Optional[Credential] = None) -> None:
        """
        Drop the cached credential so the next call re-authenticates.

        With ``stale`` given, only that credential is dropped; a newer one stored by a
        concurrent refresh is kept.
        """
        if stale is not None and self._credential is not stale:
            return
        self._credential = None

    async def _request_token(self) -> Dict[str, Any]:
        token_data = {
            'grant_type': 'password',
            'client_id': self.config.SF_CLIENT_ID,
            'client_secret': self.config.SF_CLIENT_SECRET,
            'username': self.config.SF_USERNAME,
            'password': self.config.SF_PASSWORD + (self.config.SF_SECURITY_TOKEN or ''),
        }

        try:
            async with self._http_session.post(
                self.config.SF_LOGIN_URL,
                data=token_data,
                headers={'Content-Type': 'application/x-www-form-urlencoded'}
            ) as response:

                if response.status != 200:
                    message, error_code, _ = parse_error_body(await response.text())
                    logger.error(
                        f"[SF LOGIN] Failed: status {response.status}, error {error_code}"
                    )
                    raise AuthenticationError(
                        message,
                        error_code=error_code,
                        details={'status': response.status},
                    )

                token_response = await response.json()

        except aiohttp.ClientError as e:
            logger.error(f"[SF LOGIN] HTTP error: {e}")
            raise AuthenticationError(f"HTTP error during login: {e}", original_exception=e)
        except asyncio.TimeoutError as e:
            logger.error("[SF LOGIN] Timed out")
            raise AuthenticationError("Login request timed out", original_exception=e)

        if 'access_token' not in token_response or 'instance_url' not in token_response:
            raise AuthenticationError("Login response is missing access_token or instance_url")

        return token_response
