"""REST API endpoints for contact tags."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.schemas import TagCreate, TagRead, TagUpdate

router = APIRouter(prefix="/tags", tags=["tags"])


class TagListResponse(BaseModel):
    tags: list[TagRead] = Field(default_factory=list)


class TagResponse(BaseModel):
    tag: TagRead


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def _get_crm_repository(request: Request) -> Any:
    """Retrieve CrmRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "crm_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRM not initialized",
        )
    return repo


@router.get("", response_model=TagListResponse)
async def list_tags(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> TagListResponse:
    repo = _get_crm_repository(request)
    return TagListResponse(tags=await repo.list_tags())


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(
    body: TagCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> TagResponse:
    if not body.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    repo = _get_crm_repository(request)
    return TagResponse(tag=await repo.create_tag(body))


@router.patch("/{tag_id}", response_model=TagResponse)
async def update_tag(
    tag_id: str,
    body: TagUpdate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> TagResponse:
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v}
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    repo = _get_crm_repository(request)
    try:
        tag = await repo.update_tag(tag_id, changes)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return TagResponse(tag=tag)


@router.delete("/{tag_id}", response_model=MessageResponse)
async def delete_tag(
    tag_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    repo = _get_crm_repository(request)
    if not await repo.delete_tag(tag_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return MessageResponse(message="Tag deleted successfully")
