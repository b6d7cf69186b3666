"""FastAPI dependencies for authentication.

Dashboard routes authenticate the single CRM operator with a Bearer JWT.
The inbound webhook and the cron routes use static shared secrets instead.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import Header, HTTPException, status

from src.app.config import get_settings
from src.app.core.security import bearer_token, match_api_key, verify_token

logger = structlog.get_logger(__name__)


async def get_current_operator(authorization: str | None = Header(default=None)) -> dict:
    """Validate the Bearer access token and return its claims.

    Raises:
        HTTPException(401): If no valid token is provided.
    """
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_token(token, token_type="access")


async def require_webhook_api_key(authorization: str | None = Header(default=None)) -> str:
    """Resolve the webhook caller from its Bearer API key.

    Returns:
        The caller name configured for the key.
    """
    caller = match_api_key(bearer_token(authorization), get_settings().webhook_api_keys())
    if caller is None:
        logger.warning("webhook_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return caller


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Check ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    secret = get_settings().CRON_SECRET
    if not secret:
        return
    expected = f"Bearer {secret}".encode("utf-8")
    if not authorization or not hmac.compare_digest(authorization.encode("utf-8"), expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
