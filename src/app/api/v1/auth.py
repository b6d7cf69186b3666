"""Authentication API endpoints.

Provides operator login, token refresh and current operator info. The
operator account is configured through OPERATOR_EMAIL and
OPERATOR_PASSWORD_HASH rather than stored in the database.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.app.api.deps import get_current_operator
from src.app.config import get_settings
from src.app.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.app.schemas.auth import (
    LoginRequest,
    OperatorResponse,
    TokenRefreshRequest,
    TokenResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _is_operator(email: str) -> bool:
    configured = get_settings().OPERATOR_EMAIL.strip().lower()
    return bool(configured) and hmac.compare_digest(
        email.strip().lower().encode("utf-8"), configured.encode("utf-8")
    )


def _issue_tokens(email: str) -> TokenResponse:
    token_data = {"sub": email, "role": "operator"}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest):
    """Authenticate the operator and return JWT tokens."""
    settings = get_settings()
    if not _is_operator(body.email) or not settings.OPERATOR_PASSWORD_HASH:
        logger.warning("login_failed", email=body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, settings.OPERATOR_PASSWORD_HASH):
        logger.warning("login_failed", email=body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    logger.info("login_succeeded", email=body.email)
    return _issue_tokens(body.email.strip().lower())


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    # The operator may have been reconfigured since the token was issued
    if not _is_operator(payload["sub"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator not found",
        )
    return _issue_tokens(payload["sub"])


@router.get("/me", response_model=OperatorResponse)
async def get_me(operator: dict = Depends(get_current_operator)):
    """Return current operator info from JWT claims."""
    return OperatorResponse(email=operator["sub"], role=operator.get("role", "operator"))
