"""REST API endpoints for AI email drafts.

Drafts are created by the Gmail sync (replies to imported emails) and by
``POST /deals/{id}/generate-draft``. Operators review and edit them here,
send them through Gmail, or ask the drafter for a new version.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.schemas import ActivityCreate, InputModel
from src.app.inbox.schemas import DraftRead, DraftStatus, DraftTone, DraftUpdate
from src.app.services.gsuite.models import EmailMessage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/drafts", tags=["drafts"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class DraftListResponse(BaseModel):
    drafts: list[DraftRead] = Field(default_factory=list)


class DraftResponse(BaseModel):
    draft: DraftRead
    message: str | None = None


class RegenerateRequest(InputModel):
    tone: DraftTone | None = None
    feedback: str | None = None


class BulkDraftsRequest(InputModel):
    ids: list[str] | None = None


class BulkDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int


class SendResponse(BaseModel):
    message: str
    message_id: str


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_inbox_repository(request: Request) -> Any:
    """Retrieve InboxRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "inbox_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inbox not initialized",
        )
    return repo


def _get_state(request: Request, name: str, label: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return value


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Draft not found")


def draft_send_subject(draft: DraftRead) -> str:
    return draft.draft_subject or f"Re: {draft.original_subject or ''}"


async def _sending_account(inbox: Any, draft: DraftRead) -> Any:
    """The draft's own Gmail account when active, else the first active one."""
    if draft.gmail_account_id:
        account = await inbox.get_account(draft.gmail_account_id)
        if account is not None and account.is_active:
            return account
    accounts = await inbox.list_active_accounts()
    return accounts[0] if accounts else None


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=DraftListResponse)
async def list_drafts(
    request: Request,
    statuses: str | None = Query(default=None, description="Comma-separated statuses"),
    operator: dict = Depends(get_current_operator),
) -> DraftListResponse:
    """Drafts newest first, optionally limited to some statuses."""
    inbox = _get_inbox_repository(request)
    wanted = [s.strip() for s in statuses.split(",") if s.strip()] if statuses else None
    return DraftListResponse(drafts=await inbox.list_drafts(wanted))


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_drafts(
    body: BulkDraftsRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> BulkDeleteResponse:
    if not body.ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Draft IDs are required",
        )
    inbox = _get_inbox_repository(request)
    return BulkDeleteResponse(deleted_count=await inbox.bulk_delete_drafts(body.ids))


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(
    draft_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DraftResponse:
    inbox = _get_inbox_repository(request)
    draft = await inbox.get_draft(draft_id)
    if draft is None:
        raise _not_found()
    return DraftResponse(draft=draft)


@router.patch("/{draft_id}", response_model=DraftResponse)
async def update_draft(
    draft_id: str,
    body: DraftUpdate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DraftResponse:
    """Edit subject, body, tone or status."""
    inbox = _get_inbox_repository(request)
    try:
        draft = await inbox.update_draft(draft_id, body.model_dump(exclude_unset=True))
    except ValueError:
        raise _not_found()
    return DraftResponse(draft=draft, message="Draft updated")


@router.delete("/{draft_id}", response_model=MessageResponse)
async def delete_draft(
    draft_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    inbox = _get_inbox_repository(request)
    if not await inbox.delete_draft(draft_id):
        raise _not_found()
    return MessageResponse(message="Draft deleted")


@router.post("/{draft_id}/send", response_model=SendResponse)
async def send_draft(
    draft_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> SendResponse:
    """Send the draft through Gmail and log it as an email activity.

    A failed send marks the draft ``failed`` with the error message.
    """
    inbox = _get_inbox_repository(request)
    gmail = _get_state(request, "gmail_service", "Gmail service")
    crm = _get_state(request, "crm_repository", "CRM")

    draft = await inbox.get_draft(draft_id)
    if draft is None:
        raise _not_found()
    if draft.status == DraftStatus.sent.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Draft already sent")

    subject = draft_send_subject(draft)
    try:
        account = await _sending_account(inbox, draft)
        if account is None:
            raise RuntimeError("Gmail not connected")
        result = await gmail.send_email(
            account,
            EmailMessage(
                to=draft.original_from_email,
                subject=subject,
                body_text=draft.draft_body or "",
                thread_id=draft.gmail_thread_id,
                in_reply_to=draft.gmail_message_id,
            ),
        )
    except Exception as exc:
        logger.error("draft_send_failed", draft_id=draft_id, error=str(exc), exc_info=True)
        await inbox.update_draft(
            draft_id, {"status": DraftStatus.failed.value, "error_message": str(exc)}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send email",
        )

    await inbox.update_draft(
        draft_id,
        {
            "status": DraftStatus.sent.value,
            "sent_at": datetime.now(timezone.utc),
            "sent_gmail_message_id": result.message_id,
            "error_message": None,
        },
    )
    if draft.deal_id or draft.contact_id:
        await crm.create_activity(
            ActivityCreate(
                deal_id=draft.deal_id,
                contact_id=draft.contact_id,
                type="email",
                subject=f"Sent: {subject}",
                description=(draft.draft_body or "")[:2000],
                outcome="completed",
            )
        )
    logger.info("draft_sent", draft_id=draft_id, message_id=result.message_id)
    return SendResponse(message="Email sent successfully", message_id=result.message_id)


@router.post("/{draft_id}/regenerate", response_model=DraftResponse)
async def regenerate_draft(
    draft_id: str,
    body: RegenerateRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DraftResponse:
    """Ask the drafter for a new version with another tone or feedback."""
    inbox = _get_inbox_repository(request)
    drafter = _get_state(request, "email_drafter", "Email drafter")
    crm = _get_state(request, "crm_repository", "CRM")

    draft = await inbox.get_draft(draft_id)
    if draft is None:
        raise _not_found()

    contact = await crm.get_contact(draft.contact_id) if draft.contact_id else None
    deal = await crm.get_deal(draft.deal_id) if draft.deal_id else None

    await inbox.update_draft(draft_id, {"status": DraftStatus.generating.value})
    try:
        generated = await drafter.regenerate(
            draft,
            tone=body.tone,
            feedback=body.feedback,
            contact_name=contact.name if contact else None,
            company_name=contact.company if contact else None,
            deal_title=deal.title if deal else None,
            deal_stage=deal.stage if deal else None,
        )
    except Exception as exc:
        logger.error("draft_regenerate_failed", draft_id=draft_id, error=str(exc), exc_info=True)
        await inbox.update_draft(draft_id, {"status": DraftStatus.pending.value})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to regenerate draft",
        )

    updated = await inbox.update_draft(
        draft_id,
        {
            "draft_subject": generated.subject,
            "draft_body": generated.body,
            "tone": body.tone or draft.tone,
            "status": DraftStatus.pending.value,
        },
    )
    return DraftResponse(draft=updated, message="Draft regenerated")
