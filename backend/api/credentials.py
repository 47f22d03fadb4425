"""
Google OAuth credential provider for calendar export.

Hands out an access token that is valid right now, refreshing it through
Google's token endpoint when it is expired or about to expire. A failed
refresh is never papered over with the stale token: the caller gets
ReauthenticationRequired and the viewer has to sign in again.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import OAuthCredential, UserAccount
from shared.repositories import UserRepository
from shared.utils.clock import Clock
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class ReauthenticationRequired(Exception):
    """The stored grant can no longer produce an access token."""

    def __init__(self, user_id: str, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"User {user_id} must re-authenticate: {reason}")


class CredentialProvider:
    def __init__(
        self,
        users: UserRepository,
        http_client: Optional[UpstreamHTTPClient] = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._users = users
        self._settings = settings or get_settings()
        self._http = http_client or UpstreamHTTPClient("google_oauth", max_retries=1, settings=self._settings)
        self._clock = clock or Clock()

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    def _is_expiring(self, user: UserAccount) -> bool:
        if not user.access_token or user.token_expires_at is None:
            return True
        leeway = timedelta(seconds=self._settings.token_refresh_leeway_s)
        return user.token_expires_at <= self._clock.now() + leeway

    async def get_valid_credential(self, user: UserAccount) -> OAuthCredential:
        """
        Return a credential that is valid for at least the refresh leeway.

        Raises:
            ReauthenticationRequired: No refresh token is stored, or the
                token endpoint refused or could not be reached.
        """
        if not self._is_expiring(user):
            return OAuthCredential(access_token=user.access_token, expires_at=user.token_expires_at)

        if not user.refresh_token:
            raise ReauthenticationRequired(str(user.id), "no refresh token on file")

        logger.info("access_token_refreshing", user_id=str(user.id))
        try:
            resp = await self._http.post(
                self._settings.google_token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": user.refresh_token,
                    "client_id": self._settings.google_client_id,
                    "client_secret": self._settings.google_client_secret,
                },
            )
            payload = resp.json()
            access_token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 3600))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.error("access_token_refresh_failed", user_id=str(user.id), error=str(exc))
            raise ReauthenticationRequired(str(user.id), "token refresh failed") from exc

        expires_at = self._clock.now() + timedelta(seconds=expires_in)
        await self._users.update_access_token(user.id, access_token, expires_at)
        logger.info("access_token_refreshed", user_id=str(user.id))
        return OAuthCredential(access_token=access_token, expires_at=expires_at)
