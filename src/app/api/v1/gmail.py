"""Gmail integration endpoints: OAuth connect flow, status, disconnect, sync.

The authorize and callback routes are browser redirects in the consent
flow and carry no operator token; the callback always redirects back to
the dashboard settings page with a ``gmail=success|error`` query flag.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.config import get_settings
from src.app.crm.schemas import InputModel
from src.app.inbox.schemas import SyncResult
from src.app.inbox.sync import MANUAL_SYNC

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/gmail", tags=["gmail"])

NOT_CONFIGURED = (
    "Gmail not configured. Add GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET to environment."
)


class GmailAccountStatus(BaseModel):
    id: str
    email: str
    name: str | None = None
    last_sync_at: str | None = None
    created_at: str | None = None


class GmailStatusResponse(BaseModel):
    configured: bool
    connected: bool
    accounts: list[GmailAccountStatus] = Field(default_factory=list)


class DisconnectRequest(InputModel):
    account_id: str | None = None


class SuccessResponse(BaseModel):
    success: bool = True


def _get_inbox_repository(request: Request) -> Any:
    """Retrieve InboxRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "inbox_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inbox not initialized",
        )
    return repo


def _get_oauth_client(request: Request) -> Any:
    client = getattr(request.app.state, "gmail_oauth", None)
    if client is None or not get_settings().gmail_configured():
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NOT_CONFIGURED,
        )
    return client


def settings_redirect(outcome: str, message: str | None = None) -> RedirectResponse:
    """Redirect to the dashboard settings page with the connect outcome."""
    params = {"gmail": outcome}
    if message:
        params["message"] = message
    url = f"{get_settings().DASHBOARD_URL.rstrip('/')}/settings?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/authorize")
async def authorize(request: Request) -> RedirectResponse:
    """Redirect the browser to Google's consent screen."""
    client = _get_oauth_client(request)
    return RedirectResponse(
        url=client.authorization_url(),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: str | None = Query(default=None),
    error: str | None = Query(default=None),
) -> RedirectResponse:
    """Exchange the authorization code and store the account's tokens."""
    if error:
        logger.warning("gmail_oauth_denied", error=error)
        return settings_redirect("error", error)
    if not code:
        return settings_redirect("error", "No authorization code")

    client = _get_oauth_client(request)
    inbox = _get_inbox_repository(request)
    try:
        tokens, email = await client.exchange_code(code)
        await inbox.upsert_account(
            email, tokens, label_filter=get_settings().GMAIL_LABEL_FILTER or None
        )
    except Exception as exc:
        logger.error("gmail_oauth_callback_failed", error=str(exc), exc_info=True)
        return settings_redirect("error", str(exc))

    return settings_redirect("success")


@router.get("/status", response_model=GmailStatusResponse)
async def gmail_status(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> GmailStatusResponse:
    """Whether Gmail is configured and which accounts are connected."""
    if not get_settings().gmail_configured():
        return GmailStatusResponse(configured=False, connected=False)

    inbox = _get_inbox_repository(request)
    accounts = await inbox.list_active_accounts()
    return GmailStatusResponse(
        configured=True,
        connected=bool(accounts),
        accounts=[
            GmailAccountStatus(
                id=a.id,
                email=a.email,
                name=a.name,
                last_sync_at=a.last_sync_at.isoformat() if a.last_sync_at else None,
                created_at=a.created_at.isoformat() if a.created_at else None,
            )
            for a in accounts
        ],
    )


@router.post("/disconnect", response_model=SuccessResponse)
async def disconnect(
    request: Request,
    body: DisconnectRequest | None = None,
    operator: dict = Depends(get_current_operator),
) -> SuccessResponse:
    """Deactivate one account, or every account when no id is given."""
    inbox = _get_inbox_repository(request)
    await inbox.deactivate_accounts(body.account_id if body else None)
    return SuccessResponse()


@router.post("/sync", response_model=SyncResult)
async def manual_sync(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> SyncResult:
    """Import the last 7 days of mail (read and unread) from every account."""
    sync_service = getattr(request.app.state, "gmail_sync", None)
    if sync_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gmail sync not initialized",
        )
    try:
        return await sync_service.sync(MANUAL_SYNC)
    except Exception as exc:
        logger.error("gmail_manual_sync_failed", error=str(exc), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Sync failed",
        )
