"""REST API endpoints for the activity log (calls, emails, demos, notes)."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.schemas import ActivityCreate, ActivityRead

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/activities", tags=["activities"])


class ActivityListResponse(BaseModel):
    activities: list[ActivityRead] = Field(default_factory=list)


class ActivityResponse(BaseModel):
    activity: ActivityRead
    message: str | None = None


def _get_crm_repository(request: Request) -> Any:
    """Retrieve CrmRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "crm_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRM not initialized",
        )
    return repo


@router.get("", response_model=ActivityListResponse)
async def list_activities(
    request: Request,
    deal_id: str | None = Query(default=None, alias="dealId"),
    contact_id: str | None = Query(default=None, alias="contactId"),
    limit: int = Query(default=50, ge=1, le=500),
    operator: dict = Depends(get_current_operator),
) -> ActivityListResponse:
    """Activities newest first, optionally for one deal and/or contact."""
    repo = _get_crm_repository(request)
    activities = await repo.list_activities(deal_id=deal_id, contact_id=contact_id, limit=limit)
    return ActivityListResponse(activities=activities)


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    body: ActivityCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ActivityResponse:
    """Log an activity against a deal and/or contact."""
    if body.type is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Activity type is required",
        )
    repo = _get_crm_repository(request)
    if body.deal_id and await repo.get_deal(body.deal_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    if body.contact_id and await repo.get_contact(body.contact_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")

    activity = await repo.create_activity(body)
    logger.info("activity_logged", activity_id=activity.id, type=activity.type)
    return ActivityResponse(activity=activity, message="Activity logged successfully")
