"""REST API endpoints for contacts.

Listing with search, detail with deals/activities/reminders, partial
updates, and bulk delete / bulk tagging. All endpoints require the operator
token.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.schemas import (
    ContactCreate,
    ContactDetail,
    ContactRead,
    ContactUpdate,
    ContactWithDeals,
    InputModel,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class ContactListResponse(BaseModel):
    contacts: list[ContactWithDeals] = Field(default_factory=list)


class ContactResponse(BaseModel):
    contact: ContactRead
    message: str | None = None


class ContactDetailResponse(BaseModel):
    contact: ContactDetail


class BulkContactsRequest(InputModel):
    contact_ids: list[str] | None = None


class BulkTagsRequest(InputModel):
    contact_ids: list[str] | None = None
    tag_ids: list[str] | None = None
    action: str = "add"


class BulkDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int


class BulkUpdateResponse(BaseModel):
    success: bool = True
    updated_count: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ── Dependency Injection Helper ──────────────────────────────────────────────


def _get_crm_repository(request: Request) -> Any:
    """Retrieve CrmRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "crm_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRM not initialized",
        )
    return repo


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=ContactListResponse)
async def list_contacts(
    request: Request,
    search: str | None = Query(default=None, description="Match name, email or company"),
    operator: dict = Depends(get_current_operator),
) -> ContactListResponse:
    """List contacts newest first, each with its deals."""
    repo = _get_crm_repository(request)
    contacts = await repo.list_contacts(search=search or None)
    return ContactListResponse(contacts=contacts)


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ContactResponse:
    """Create a contact. A name is required."""
    if not body.name or not body.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name is required",
        )
    repo = _get_crm_repository(request)
    contact = await repo.create_contact(body)
    logger.info("contact_created", contact_id=contact.id)
    return ContactResponse(contact=contact, message="Contact created successfully")


# Static paths are declared before /{contact_id}


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_contacts(
    body: BulkContactsRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> BulkDeleteResponse:
    """Delete many contacts, unlinking their imported emails and drafts first."""
    if not body.contact_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Contact IDs are required",
        )
    repo = _get_crm_repository(request)
    deleted = await repo.bulk_delete_contacts(body.contact_ids)
    return BulkDeleteResponse(deleted_count=deleted)


@router.post("/bulk-tags", response_model=BulkUpdateResponse)
async def bulk_update_tags(
    body: BulkTagsRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> BulkUpdateResponse:
    """Add (default) or remove tags on many contacts."""
    if not body.contact_ids or not body.tag_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Contact IDs and tag IDs are required",
        )
    repo = _get_crm_repository(request)
    updated = await repo.bulk_update_tags(body.contact_ids, body.tag_ids, body.action)
    return BulkUpdateResponse(updated_count=updated)


@router.get("/{contact_id}", response_model=ContactDetailResponse)
async def get_contact(
    contact_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ContactDetailResponse:
    """Contact with deals, recent activities and reminders."""
    repo = _get_crm_repository(request)
    contact = await repo.get_contact_detail(contact_id)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    return ContactDetailResponse(contact=contact)


@router.patch("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: str,
    body: ContactUpdate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ContactResponse:
    """Apply the fields present in the request body."""
    repo = _get_crm_repository(request)
    try:
        contact = await repo.update_contact(contact_id, body.model_dump(exclude_unset=True))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    return ContactResponse(contact=contact, message="Contact updated successfully")


@router.delete("/{contact_id}", response_model=MessageResponse)
async def delete_contact(
    contact_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    repo = _get_crm_repository(request)
    if not await repo.delete_contact(contact_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contact not found",
        )
    return MessageResponse(message="Contact deleted successfully")
