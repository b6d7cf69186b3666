"""REST API endpoints for deals and the sales pipeline.

Provides CRUD for deals, re-opening closed deals, bulk delete, the pipeline
dashboard metrics and AI draft generation for a deal's contact. Stage
changes go through apply_stage_transition() so closing a deal stamps
closed_at, probability and last_stage consistently.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.pipeline import (
    PipelineMetrics,
    apply_stage_transition,
    compute_pipeline_metrics,
    reopen_changes,
)
from src.app.crm.schemas import (
    DealCreate,
    DealDetail,
    DealRead,
    DealUpdate,
    DealWithContact,
    InputModel,
)
from src.app.inbox.schemas import DraftCreate, OutreachContext, ReplyContext

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/deals", tags=["deals"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class DealListResponse(BaseModel):
    deals: list[DealWithContact] = Field(default_factory=list)


class DealResponse(BaseModel):
    deal: DealRead
    message: str | None = None


class DealDetailResponse(BaseModel):
    deal: DealDetail


class BulkDealsRequest(InputModel):
    ids: list[str] | None = None


class BulkDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class GenerateDraftResponse(BaseModel):
    draft_id: str
    message: str


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_crm_repository(request: Request) -> Any:
    """Retrieve CrmRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "crm_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRM not initialized",
        )
    return repo


def _get_inbox_repository(request: Request) -> Any:
    repo = getattr(request.app.state, "inbox_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inbox not initialized",
        )
    return repo


def _get_drafter(request: Request) -> Any:
    drafter = getattr(request.app.state, "email_drafter", None)
    if drafter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email drafter not initialized",
        )
    return drafter


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")


# ── Collection Endpoints ─────────────────────────────────────────────────────


@router.get("", response_model=DealListResponse)
async def list_deals(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DealListResponse:
    """List deals newest first, each with its contact and last contact time."""
    repo = _get_crm_repository(request)
    return DealListResponse(deals=await repo.list_deals())


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DealResponse:
    """Create a deal. The title is required; a given contact must exist."""
    if not body.title or not body.title.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title is required",
        )
    repo = _get_crm_repository(request)
    if body.contact_id and await repo.get_contact(body.contact_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    try:
        deal = await repo.create_deal(body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.info("deal_created", deal_id=deal.id, stage=deal.stage)
    return DealResponse(deal=deal, message="Deal created successfully")


@router.get("/metrics", response_model=PipelineMetrics)
async def get_pipeline_metrics(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> PipelineMetrics:
    """Pipeline dashboard metrics over every deal."""
    repo = _get_crm_repository(request)
    return compute_pipeline_metrics(await repo.list_deals())


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_deals(
    body: BulkDealsRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> BulkDeleteResponse:
    """Delete many deals, unlinking their imported emails and drafts first."""
    if not body.ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deal IDs are required",
        )
    repo = _get_crm_repository(request)
    return BulkDeleteResponse(deleted_count=await repo.bulk_delete_deals(body.ids))


# ── Single Deal Endpoints ────────────────────────────────────────────────────


@router.get("/{deal_id}", response_model=DealDetailResponse)
async def get_deal(
    deal_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DealDetailResponse:
    """Deal with contact, latest activities and reminders."""
    repo = _get_crm_repository(request)
    deal = await repo.get_deal_detail(deal_id)
    if deal is None:
        raise _not_found()
    return DealDetailResponse(deal=deal)


@router.patch("/{deal_id}", response_model=DealResponse)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DealResponse:
    """Partial update applying stage-transition side effects."""
    repo = _get_crm_repository(request)
    current = await repo.get_deal(deal_id)
    if current is None:
        raise _not_found()

    requested = body.model_dump(exclude_unset=True)
    if requested.get("contact_id") and await repo.get_contact(requested["contact_id"]) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    changes = apply_stage_transition(current, requested)
    try:
        deal = await repo.update_deal(deal_id, changes)
    except ValueError:
        raise _not_found()
    if deal.stage != current.stage:
        logger.info("deal_stage_changed", deal_id=deal_id, old=current.stage, new=deal.stage)
    return DealResponse(deal=deal, message="Deal updated successfully")


@router.delete("/{deal_id}", response_model=MessageResponse)
async def delete_deal(
    deal_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    repo = _get_crm_repository(request)
    if not await repo.delete_deal(deal_id):
        raise _not_found()
    return MessageResponse(message="Deal deleted successfully")


@router.post("/{deal_id}/reopen", response_model=DealResponse)
async def reopen_deal(
    deal_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> DealResponse:
    """Move a closed deal back to its last open stage (or lead)."""
    repo = _get_crm_repository(request)
    current = await repo.get_deal(deal_id)
    if current is None:
        raise _not_found()
    try:
        changes = reopen_changes(current)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    deal = await repo.update_deal(deal_id, changes)
    logger.info("deal_reopened", deal_id=deal_id, stage=deal.stage)
    return DealResponse(deal=deal, message=f"Deal re-opened and moved to {deal.stage}")


@router.post("/{deal_id}/generate-draft", response_model=GenerateDraftResponse)
async def generate_draft(
    deal_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> GenerateDraftResponse:
    """Draft an email for the deal's contact.

    Deals created from an imported email get a reply to that email; any
    other deal gets an outreach email.
    """
    repo = _get_crm_repository(request)
    inbox = _get_inbox_repository(request)
    drafter = _get_drafter(request)

    deal = await repo.get_deal_detail(deal_id)
    if deal is None:
        raise _not_found()
    contact = deal.contact
    if contact is None or not contact.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deal has no contact with email address",
        )

    original = await inbox.find_processed_for_deal(deal_id)
    try:
        if original is not None and original.subject and original.from_email:
            generated = await drafter.generate_reply(
                ReplyContext(
                    from_name=original.from_email.split("@")[0] or "Contact",
                    from_email=original.from_email,
                    subject=original.subject,
                    contact_name=contact.name,
                    company_name=contact.company,
                    deal_title=deal.title,
                    deal_stage=deal.stage,
                )
            )
        else:
            generated = await drafter.generate_outreach(
                OutreachContext(
                    contact_name=contact.name,
                    contact_email=contact.email,
                    contact_company=contact.company,
                    deal_title=deal.title,
                    deal_stage=deal.stage,
                    deal_tier=deal.tier,
                    enquiry_type=deal.enquiry_type,
                    next_step=deal.next_step,
                )
            )
    except Exception as exc:
        logger.error("deal_draft_generation_failed", deal_id=deal_id, error=str(exc), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate draft",
        )

    draft = await inbox.create_draft(
        DraftCreate(
            processed_email_id=original.id if original else None,
            gmail_account_id=deal.gmail_account_id,
            contact_id=contact.id,
            deal_id=deal.id,
            original_from_email=contact.email,
            original_from_name=contact.name,
            original_subject=original.subject if original else None,
            draft_subject=generated.subject,
            draft_body=generated.body,
            gmail_message_id=original.gmail_message_id if original else None,
        )
    )
    return GenerateDraftResponse(draft_id=draft.id, message="Draft generated successfully")
