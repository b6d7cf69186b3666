"""REST API endpoints for follow-up reminders.

``today`` limits the list to reminders due today; ``upcoming`` to those due
from the start of today through the end of the seventh day ahead. Day
boundaries are UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_operator
from src.app.crm.schemas import ReminderCreate, ReminderFilter, ReminderRead, ReminderUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])

UPCOMING_DAYS = 7


class ReminderListResponse(BaseModel):
    reminders: list[ReminderRead] = Field(default_factory=list)


class ReminderResponse(BaseModel):
    reminder: ReminderRead
    message: str | None = None


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


def due_window(
    today: bool, upcoming: bool, now: datetime | None = None
) -> tuple[datetime | None, datetime | None]:
    """Return the [from, before) due-date window for the list filters."""
    now = now or datetime.now(timezone.utc)
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if today:
        return start_of_today, start_of_today + timedelta(days=1)
    if upcoming:
        return start_of_today, start_of_today + timedelta(days=UPCOMING_DAYS + 1)
    return None, None


@router.get("", response_model=ReminderListResponse)
async def list_reminders(
    request: Request,
    show_completed: bool = Query(default=False, alias="showCompleted"),
    deal_id: str | None = Query(default=None, alias="dealId"),
    contact_id: str | None = Query(default=None, alias="contactId"),
    today: bool = Query(default=False),
    upcoming: bool = Query(default=False),
    operator: dict = Depends(get_current_operator),
) -> ReminderListResponse:
    """Reminders ordered by due date ascending."""
    repo = _get_crm_repository(request)
    due_from, due_before = due_window(today, upcoming)
    reminders = await repo.list_reminders(
        ReminderFilter(
            show_completed=show_completed,
            deal_id=deal_id,
            contact_id=contact_id,
            due_from=due_from,
            due_before=due_before,
        )
    )
    return ReminderListResponse(reminders=reminders)


@router.post("", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    body: ReminderCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ReminderResponse:
    if not body.title or body.due_at is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title and due date are required",
        )
    repo = _get_crm_repository(request)
    if body.deal_id and await repo.get_deal(body.deal_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    if body.contact_id and await repo.get_contact(body.contact_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")

    reminder = await repo.create_reminder(body)
    logger.info("reminder_created", reminder_id=reminder.id, due_at=str(reminder.due_at))
    return ReminderResponse(reminder=reminder, message="Reminder created successfully")


@router.patch("/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: str,
    body: ReminderUpdate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ReminderResponse:
    """Partial update; ``is_completed`` also sets or clears completed_at."""
    repo = _get_crm_repository(request)
    changes = body.model_dump(exclude_unset=True)
    try:
        reminder = await repo.update_reminder(reminder_id, changes)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found")
    message = (
        "Reminder completed" if changes.get("is_completed") else "Reminder updated successfully"
    )
    return ReminderResponse(reminder=reminder, message=message)


@router.delete("/{reminder_id}", response_model=MessageResponse)
async def delete_reminder(
    reminder_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    repo = _get_crm_repository(request)
    if not await repo.delete_reminder(reminder_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found")
    return MessageResponse(message="Reminder deleted successfully")
