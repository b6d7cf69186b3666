"""Gmail OAuth: consent URL, code exchange, token refresh and API clients.

Operators connect their own Gmail inboxes through the OAuth consent flow.
GmailOAuthClient talks to Google's token and userinfo endpoints over httpx;
GSuiteAuthManager keeps each account's access token fresh and builds
authorized Gmail API v1 service instances from it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from src.app.inbox.schemas import GmailAccountRead, GmailTokens

logger = structlog.get_logger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Access tokens this close to expiry are refreshed before use
REFRESH_MARGIN = timedelta(minutes=5)


class GmailAuthError(Exception):
    """Raised when Google rejects a code exchange or token refresh."""


def _tokens_from_response(data: dict[str, Any], now: datetime | None = None) -> GmailTokens:
    now = now or datetime.now(timezone.utc)
    return GmailTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expiry_date=now + timedelta(seconds=int(data.get("expires_in", 3600))),
    )


def needs_refresh(expiry_date: datetime, now: datetime | None = None) -> bool:
    """True when the access token expires within REFRESH_MARGIN."""
    now = now or datetime.now(timezone.utc)
    if expiry_date.tzinfo is None:
        expiry_date = expiry_date.replace(tzinfo=timezone.utc)
    return expiry_date - now < REFRESH_MARGIN


class GmailOAuthClient:
    """Client for Google's OAuth 2.0 endpoints.

    Args:
        client_id: OAuth client id of the web application.
        client_secret: OAuth client secret.
        redirect_uri: Callback URL registered with Google.
    """

    TIMEOUT = 15.0

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    def authorization_url(self) -> str:
        """Consent screen URL requesting offline access."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(GMAIL_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, form: dict[str, str]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.TIMEOUT) as client:
            response = await client.post(TOKEN_URL, data=form)
        if response.status_code >= 400:
            raise GmailAuthError(f"Token request failed: {response.text}")
        return response.json()

    async def _get_userinfo(self, access_token: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.TIMEOUT) as client:
            response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if response.status_code >= 400:
            raise GmailAuthError("Failed to get user info")
        return response.json()

    async def exchange_code(self, code: str) -> tuple[GmailTokens, str]:
        """Exchange an authorization code for tokens and the inbox address.

        Returns:
            Tuple of (tokens, email).

        Raises:
            GmailAuthError: If Google rejects the code or userinfo lookup.
        """
        data = await self._post_token({
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": self._redirect_uri,
            "grant_type": "authorization_code",
        })
        tokens = _tokens_from_response(data)
        userinfo = await self._get_userinfo(tokens.access_token)
        email = userinfo.get("email")
        if not email:
            raise GmailAuthError("Google account has no email address")
        logger.info("gmail_oauth_code_exchanged", email=email)
        return tokens, email

    async def refresh(self, refresh_token: str) -> GmailTokens:
        """Trade a refresh token for a new access token."""
        data = await self._post_token({
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
        })
        return _tokens_from_response(data)


class GSuiteAuthManager:
    """Keeps Gmail account tokens valid and builds Gmail API services.

    Refreshed tokens are persisted through the inbox repository. A refresh
    that Google rejects deactivates the account, which must then be
    reconnected through the consent flow.

    Args:
        oauth_client: GmailOAuthClient for token refresh.
        inbox_repository: InboxRepository (or compatible) for persistence.
    """

    def __init__(self, oauth_client: GmailOAuthClient, inbox_repository: Any) -> None:
        self._oauth = oauth_client
        self._repo = inbox_repository

    async def get_valid_access_token(self, account: GmailAccountRead) -> str:
        """Access token for the account, refreshing it when near expiry.

        Raises:
            GmailAuthError: If the refresh fails; the account is deactivated.
        """
        if not needs_refresh(account.expiry_date):
            return account.access_token

        try:
            tokens = await self._oauth.refresh(account.refresh_token)
        except (GmailAuthError, httpx.HTTPError) as exc:
            logger.warning(
                "gmail_token_refresh_failed",
                account_id=account.id,
                email=account.email,
                error=str(exc),
            )
            await self._repo.deactivate_accounts(account.id)
            raise GmailAuthError("Token refresh failed - account disconnected") from exc

        await self._repo.update_account_tokens(account.id, tokens)
        logger.info("gmail_token_refreshed", account_id=account.id)
        return tokens.access_token

    async def get_gmail_service(self, account: GmailAccountRead) -> Any:
        """Authorized Gmail API v1 Resource for the account."""
        token = await self.get_valid_access_token(account)
        credentials = Credentials(token=token)
        return build("gmail", "v1", credentials=credentials, cache_discovery=False)
