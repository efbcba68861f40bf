"""
Bearer-token cache for the Dropbox API.

Dropbox hands out short-lived access tokens (about four hours) that are
minted from a long-lived refresh token. TokenCache keeps exactly one access
token plus its absolute expiry and refreshes it whenever it is missing or
within REFRESH_BUFFER_SECONDS of expiring. Concurrent callers wait on the
same in-flight refresh instead of each issuing their own.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional
import httpx
from prionstudy.config import Settings, get_settings
from prionstudy.exceptions import ConfigurationError, TokenRefreshError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.dropbox.com/oauth2/token"
REFRESH_BUFFER_SECONDS = 5 * 60
DEFAULT_TOKEN_LIFETIME_SECONDS = 4 * 60 * 60


class TokenCache:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._clock = clock
        self._transport = transport
        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self.settings.dropbox_configured

    def _is_fresh(self) -> bool:
        if not self._token or self._expires_at is None:
            return False
        return self._clock() <= self._expires_at - REFRESH_BUFFER_SECONDS

    def _require_config(self) -> None:
        if not self.configured:
            raise ConfigurationError(
                "Dropbox not configured",
                {"needsAction": "Set DROPBOX_APP_KEY, DROPBOX_APP_SECRET and DROPBOX_REFRESH_TOKEN"},
            )

    async def get_valid_token(self) -> str:
        self._require_config()
        if self._is_fresh():
            return self._token
        async with self._lock:
            # another caller may have refreshed while we waited
            if self._is_fresh():
                return self._token
            return await self._refresh()

    async def force_refresh(self) -> str:
        """Refresh regardless of expiry. The current token survives a failed refresh."""
        self._require_config()
        async with self._lock:
            return await self._refresh()

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = None

    def status(self) -> dict:
        expires_at = None
        if self._expires_at is not None:
            expires_at = datetime.fromtimestamp(self._expires_at, tz=timezone.utc).isoformat()
        return {
            "configured": self.configured,
            "hasToken": self._token is not None,
            "expiresAt": expires_at,
            "fresh": self._is_fresh(),
        }

    async def _refresh(self) -> str:
        logger.info("Refreshing Dropbox access token")
        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self.settings.dropbox_refresh_token,
                        "client_id": self.settings.dropbox_app_key,
                        "client_secret": self.settings.dropbox_app_secret,
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Dropbox token refresh failed: %s", e)
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            logger.error("Dropbox token refresh rejected (%s): %s", response.status_code, response.text[:200])
            raise TokenRefreshError(
                f"Token refresh rejected ({response.status_code}): {response.text[:200]}",
                status=response.status_code,
                details={"needsAction": "Regenerate the refresh token at https://www.dropbox.com/developers/apps"},
            )

        try:
            data = response.json()
        except ValueError:
            raise TokenRefreshError("Token refresh response was not JSON", status=response.status_code)
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TokenRefreshError("Token refresh response did not include an access_token")

        lifetime = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        self._token = token
        self._expires_at = self._clock() + lifetime
        logger.info("Dropbox access token refreshed (expires in %d minutes)", lifetime // 60)
        return token


token_cache = TokenCache()
