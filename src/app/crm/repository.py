"""CRM repository -- async CRUD for contacts, deals, activities, reminders and tags.

Provides CrmRepository with the session_factory callable pattern used by
every repository in the app. Converts between SQLAlchemy models and the
Pydantic Read schemas in src.app.crm.schemas; callers never see ORM objects.

Update methods take a plain ``changes`` dict (usually
``UpdateSchema.model_dump(exclude_unset=True)``) so explicit nulls clear a
column while omitted keys leave it untouched.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.crm.models import (
    ActivityModel,
    ContactModel,
    DealModel,
    EmailDraftModel,
    ProcessedEmailModel,
    ReminderModel,
    TagModel,
)
from src.app.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    ContactCreate,
    ContactDetail,
    ContactRead,
    ContactWithDeals,
    DealCreate,
    DealDetail,
    DealRead,
    DealWithActivities,
    DealWithContact,
    ReminderCreate,
    ReminderFilter,
    ReminderRead,
    TagCreate,
    TagRead,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def as_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    """Parse an id string, returning None for missing or malformed ids."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _str_id(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


def _prepare_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Convert *_id string values to UUIDs for assignment onto models.

    Blank ids clear the reference.

    Raises:
        ValueError: If an id is not a valid UUID.
    """
    prepared: dict[str, Any] = {}
    for key, value in changes.items():
        if key.endswith("_id") and isinstance(value, str) and not value.strip():
            value = None
        if key.endswith("_id") and value is not None:
            parsed = as_uuid(value)
            if parsed is None:
                raise ValueError(f"Invalid {key}: {value}")
            value = parsed
        prepared[key] = value
    return prepared


def _model_to_contact(model: ContactModel) -> ContactRead:
    """Convert ContactModel to ContactRead schema."""
    return ContactRead(
        id=str(model.id),
        name=model.name,
        email=model.email,
        phone=model.phone,
        company=model.company,
        title=model.title,
        property_type=model.property_type,
        website=model.website,
        linkedin_url=model.linkedin_url,
        notes=model.notes,
        source=model.source,
        tags=list(model.tags or []),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_deal(model: DealModel) -> DealRead:
    """Convert DealModel to DealRead schema."""
    return DealRead(
        id=str(model.id),
        contact_id=_str_id(model.contact_id),
        title=model.title,
        stage=model.stage,
        tier=model.tier,
        value=float(model.value) if model.value is not None else None,
        billing_period=model.billing_period,
        property_count=model.property_count,
        property_count_range=model.property_count_range,
        lead_source=model.lead_source,
        current_system=model.current_system,
        pain_point=model.pain_point,
        probability=model.probability,
        expected_close_date=model.expected_close_date,
        next_step=model.next_step,
        follow_up_date=model.follow_up_date,
        closed_at=model.closed_at,
        lost_reason=model.lost_reason,
        last_stage=model.last_stage,
        notes=model.notes,
        sort_order=model.sort_order,
        gmail_account_id=_str_id(model.gmail_account_id),
        enquiry_type=model.enquiry_type,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_activity(model: ActivityModel) -> ActivityRead:
    return ActivityRead(
        id=str(model.id),
        deal_id=_str_id(model.deal_id),
        contact_id=_str_id(model.contact_id),
        type=model.type,
        subject=model.subject,
        description=model.description,
        outcome=model.outcome,
        scheduled_at=model.scheduled_at,
        completed_at=model.completed_at,
        created_at=model.created_at,
    )


def _model_to_reminder(model: ReminderModel) -> ReminderRead:
    return ReminderRead(
        id=str(model.id),
        deal_id=_str_id(model.deal_id),
        contact_id=_str_id(model.contact_id),
        title=model.title,
        description=model.description,
        due_at=model.due_at,
        is_completed=bool(model.is_completed),
        completed_at=model.completed_at,
        priority=model.priority,
        created_at=model.created_at,
    )


def _model_to_tag(model: TagModel) -> TagRead:
    return TagRead(
        id=str(model.id),
        name=model.name,
        color=model.color,
        created_at=model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class CrmRepository:
    """Async CRUD operations for the CRM entities.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Contacts ────────────────────────────────────────────────────────────

    async def list_contacts(self, search: str | None = None) -> list[ContactWithDeals]:
        """List contacts newest first, each with its deals.

        Args:
            search: Optional case-insensitive substring matched against
                name, email and company.
        """
        async for session in self._session_factory():
            stmt = select(ContactModel).order_by(ContactModel.created_at.desc())
            if search:
                pattern = f"%{search}%"
                stmt = stmt.where(
                    or_(
                        ContactModel.name.ilike(pattern),
                        ContactModel.email.ilike(pattern),
                        ContactModel.company.ilike(pattern),
                    )
                )
            contacts = (await session.execute(stmt)).scalars().all()
            if not contacts:
                return []

            deal_rows = (
                await session.execute(
                    select(DealModel)
                    .where(DealModel.contact_id.in_([c.id for c in contacts]))
                    .order_by(DealModel.created_at.desc())
                )
            ).scalars().all()
            deals_by_contact: dict[uuid.UUID, list[DealRead]] = {}
            for deal in deal_rows:
                deals_by_contact.setdefault(deal.contact_id, []).append(_model_to_deal(deal))

            return [
                ContactWithDeals(
                    **_model_to_contact(c).model_dump(),
                    deals=deals_by_contact.get(c.id, []),
                )
                for c in contacts
            ]

    async def create_contact(self, data: ContactCreate) -> ContactRead:
        """Create a new contact.

        Args:
            data: ContactCreate with a non-empty name.

        Returns:
            ContactRead with all persisted fields.
        """
        async for session in self._session_factory():
            model = ContactModel(
                name=data.name,
                email=data.email,
                phone=data.phone,
                company=data.company,
                title=data.title,
                property_type=data.property_type,
                website=data.website,
                linkedin_url=data.linkedin_url,
                notes=data.notes,
                source=data.source,
                tags=list(data.tags),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("contact_created", contact_id=str(model.id))
            return _model_to_contact(model)

    async def get_contact(self, contact_id: str) -> ContactRead | None:
        """Get a contact by ID, None if missing or the id is malformed."""
        cid = as_uuid(contact_id)
        if cid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(ContactModel, cid)
            return _model_to_contact(model) if model else None

    async def find_contact_by_email(self, email: str) -> ContactRead | None:
        """Case-insensitive exact email lookup (first match)."""
        async for session in self._session_factory():
            stmt = (
                select(ContactModel)
                .where(func.lower(ContactModel.email) == email.strip().lower())
                .order_by(ContactModel.created_at)
                .limit(1)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_contact(model) if model else None

    async def get_contact_detail(self, contact_id: str) -> ContactDetail | None:
        """Contact with deals (5 latest activities each), its 20 latest
        activities and its reminders ordered by due date."""
        cid = as_uuid(contact_id)
        if cid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(ContactModel, cid)
            if model is None:
                return None

            deal_rows = (
                await session.execute(
                    select(DealModel)
                    .where(DealModel.contact_id == cid)
                    .order_by(DealModel.created_at.desc())
                )
            ).scalars().all()
            deals: list[DealWithActivities] = []
            for deal in deal_rows:
                acts = (
                    await session.execute(
                        select(ActivityModel)
                        .where(ActivityModel.deal_id == deal.id)
                        .order_by(ActivityModel.created_at.desc())
                        .limit(5)
                    )
                ).scalars().all()
                deals.append(
                    DealWithActivities(
                        **_model_to_deal(deal).model_dump(),
                        activities=[_model_to_activity(a) for a in acts],
                    )
                )

            activities = (
                await session.execute(
                    select(ActivityModel)
                    .where(ActivityModel.contact_id == cid)
                    .order_by(ActivityModel.created_at.desc())
                    .limit(20)
                )
            ).scalars().all()
            reminders = (
                await session.execute(
                    select(ReminderModel)
                    .where(ReminderModel.contact_id == cid)
                    .order_by(ReminderModel.due_at.asc())
                )
            ).scalars().all()

            return ContactDetail(
                **_model_to_contact(model).model_dump(),
                deals=deals,
                activities=[_model_to_activity(a) for a in activities],
                reminders=[_model_to_reminder(r) for r in reminders],
            )

    async def update_contact(self, contact_id: str, changes: dict[str, Any]) -> ContactRead:
        """Apply a partial update to a contact.

        Raises:
            ValueError: If the contact is not found.
        """
        cid = as_uuid(contact_id)
        async for session in self._session_factory():
            model = await session.get(ContactModel, cid) if cid else None
            if model is None:
                raise ValueError(f"Contact not found: {contact_id}")
            for key, value in _prepare_changes(changes).items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_contact(model)

    async def delete_contact(self, contact_id: str) -> bool:
        """Delete a contact (deals, activities, reminders cascade).

        Returns:
            True if a row was deleted.
        """
        cid = as_uuid(contact_id)
        if cid is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(delete(ContactModel).where(ContactModel.id == cid))
            await session.commit()
            return result.rowcount > 0

    async def bulk_delete_contacts(self, contact_ids: list[str]) -> int:
        """Delete many contacts after unlinking imported emails and drafts.

        Processed emails and drafts that point at the contacts, or at any of
        their deals, keep their row but lose the link.

        Returns:
            Number of contacts deleted.
        """
        ids = [cid for cid in (as_uuid(c) for c in contact_ids) if cid is not None]
        if not ids:
            return 0
        async for session in self._session_factory():
            deal_ids = (
                await session.execute(select(DealModel.id).where(DealModel.contact_id.in_(ids)))
            ).scalars().all()

            for table in (ProcessedEmailModel, EmailDraftModel):
                await session.execute(
                    update(table).where(table.contact_id.in_(ids)).values(contact_id=None)
                )
                if deal_ids:
                    await session.execute(
                        update(table).where(table.deal_id.in_(deal_ids)).values(deal_id=None)
                    )

            result = await session.execute(delete(ContactModel).where(ContactModel.id.in_(ids)))
            await session.commit()
            logger.info("contacts_bulk_deleted", count=result.rowcount)
            return result.rowcount

    async def bulk_update_tags(
        self, contact_ids: list[str], tag_ids: list[str], action: str = "add"
    ) -> int:
        """Add (default) or remove tags on many contacts.

        Args:
            contact_ids: Contacts to update.
            tag_ids: Tag ids to add or remove.
            action: "remove" removes the tags; anything else adds them.

        Returns:
            Number of contacts updated.
        """
        ids = [cid for cid in (as_uuid(c) for c in contact_ids) if cid is not None]
        if not ids:
            return 0
        async for session in self._session_factory():
            models = (
                await session.execute(select(ContactModel).where(ContactModel.id.in_(ids)))
            ).scalars().all()
            now = datetime.now(timezone.utc)
            for model in models:
                current = list(model.tags or [])
                if action == "remove":
                    new_tags = [t for t in current if t not in tag_ids]
                else:
                    new_tags = current + [t for t in tag_ids if t not in current]
                model.tags = new_tags
                model.updated_at = now
            await session.commit()
            return len(models)

    # ── Deals ───────────────────────────────────────────────────────────────

    async def list_deals(self) -> list[DealWithContact]:
        """List deals newest first with contact and last-contacted time."""
        async for session in self._session_factory():
            rows = (
                await session.execute(
                    select(DealModel, ContactModel)
                    .outerjoin(ContactModel, DealModel.contact_id == ContactModel.id)
                    .order_by(DealModel.created_at.desc())
                )
            ).all()
            last_contacted = dict(
                (
                    await session.execute(
                        select(ActivityModel.deal_id, func.max(ActivityModel.created_at))
                        .where(ActivityModel.deal_id.is_not(None))
                        .group_by(ActivityModel.deal_id)
                    )
                ).all()
            )
            return [
                DealWithContact(
                    **_model_to_deal(deal).model_dump(),
                    contact=_model_to_contact(contact) if contact else None,
                    last_contacted_at=last_contacted.get(deal.id),
                )
                for deal, contact in rows
            ]

    async def create_deal(self, data: DealCreate) -> DealRead:
        """Create a new deal.

        Args:
            data: DealCreate with a non-empty title.

        Returns:
            DealRead with all persisted fields.
        """
        fields = _prepare_changes(data.model_dump())
        async for session in self._session_factory():
            model = DealModel(**fields)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("deal_created", deal_id=str(model.id), stage=model.stage)
            return _model_to_deal(model)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        did = as_uuid(deal_id)
        if did is None:
            return None
        async for session in self._session_factory():
            model = await session.get(DealModel, did)
            return _model_to_deal(model) if model else None

    async def get_deal_detail(self, deal_id: str) -> DealDetail | None:
        """Deal with contact, its 10 latest activities and its reminders."""
        did = as_uuid(deal_id)
        if did is None:
            return None
        async for session in self._session_factory():
            model = await session.get(DealModel, did)
            if model is None:
                return None
            contact = (
                await session.get(ContactModel, model.contact_id) if model.contact_id else None
            )
            activities = (
                await session.execute(
                    select(ActivityModel)
                    .where(ActivityModel.deal_id == did)
                    .order_by(ActivityModel.created_at.desc())
                    .limit(10)
                )
            ).scalars().all()
            reminders = (
                await session.execute(
                    select(ReminderModel)
                    .where(ReminderModel.deal_id == did)
                    .order_by(ReminderModel.due_at.asc())
                )
            ).scalars().all()
            return DealDetail(
                **_model_to_deal(model).model_dump(),
                contact=_model_to_contact(contact) if contact else None,
                activities=[_model_to_activity(a) for a in activities],
                reminders=[_model_to_reminder(r) for r in reminders],
            )

    async def find_latest_deal_for_contact(self, contact_id: str) -> DealRead | None:
        """Most recently created deal for a contact."""
        cid = as_uuid(contact_id)
        if cid is None:
            return None
        async for session in self._session_factory():
            stmt = (
                select(DealModel)
                .where(DealModel.contact_id == cid)
                .order_by(DealModel.created_at.desc())
                .limit(1)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_deal(model) if model else None

    async def update_deal(self, deal_id: str, changes: dict[str, Any]) -> DealRead:
        """Apply a partial update to a deal.

        Stage-transition side effects are computed by the caller
        (see src.app.crm.pipeline.apply_stage_transition).

        Raises:
            ValueError: If the deal is not found.
        """
        did = as_uuid(deal_id)
        async for session in self._session_factory():
            model = await session.get(DealModel, did) if did else None
            if model is None:
                raise ValueError(f"Deal not found: {deal_id}")
            for key, value in _prepare_changes(changes).items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_deal(model)

    async def delete_deal(self, deal_id: str) -> bool:
        did = as_uuid(deal_id)
        if did is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(delete(DealModel).where(DealModel.id == did))
            await session.commit()
            return result.rowcount > 0

    async def bulk_delete_deals(self, deal_ids: list[str]) -> int:
        """Delete many deals after unlinking imported emails and drafts.

        Returns:
            Number of deals deleted.
        """
        ids = [did for did in (as_uuid(d) for d in deal_ids) if did is not None]
        if not ids:
            return 0
        async for session in self._session_factory():
            for table in (ProcessedEmailModel, EmailDraftModel):
                await session.execute(
                    update(table).where(table.deal_id.in_(ids)).values(deal_id=None)
                )
            result = await session.execute(delete(DealModel).where(DealModel.id.in_(ids)))
            await session.commit()
            logger.info("deals_bulk_deleted", count=result.rowcount)
            return result.rowcount

    # ── Activities ──────────────────────────────────────────────────────────

    async def list_activities(
        self,
        deal_id: str | None = None,
        contact_id: str | None = None,
        limit: int = 50,
    ) -> list[ActivityRead]:
        """List activities newest first, optionally for a deal and/or contact.

        A malformed id matches nothing.
        """
        did = as_uuid(deal_id) if deal_id else None
        cid = as_uuid(contact_id) if contact_id else None
        if (deal_id and did is None) or (contact_id and cid is None):
            return []
        async for session in self._session_factory():
            stmt = select(ActivityModel).order_by(ActivityModel.created_at.desc()).limit(limit)
            if did is not None:
                stmt = stmt.where(ActivityModel.deal_id == did)
            if cid is not None:
                stmt = stmt.where(ActivityModel.contact_id == cid)
            rows = (await session.execute(stmt)).scalars().all()
            return [_model_to_activity(a) for a in rows]

    async def create_activity(self, data: ActivityCreate) -> ActivityRead:
        """Log an activity. ``completed_at`` defaults to now."""
        fields = _prepare_changes(data.model_dump())
        if fields.get("completed_at") is None:
            fields["completed_at"] = datetime.now(timezone.utc)
        async for session in self._session_factory():
            model = ActivityModel(**fields)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_activity(model)

    # ── Reminders ───────────────────────────────────────────────────────────

    async def list_reminders(self, filters: ReminderFilter) -> list[ReminderRead]:
        """List reminders ordered by due date ascending; a malformed id matches nothing."""
        did = as_uuid(filters.deal_id) if filters.deal_id else None
        cid = as_uuid(filters.contact_id) if filters.contact_id else None
        if (filters.deal_id and did is None) or (filters.contact_id and cid is None):
            return []
        async for session in self._session_factory():
            stmt = select(ReminderModel).order_by(ReminderModel.due_at.asc())
            if not filters.show_completed:
                stmt = stmt.where(ReminderModel.is_completed.is_(False))
            if did is not None:
                stmt = stmt.where(ReminderModel.deal_id == did)
            if cid is not None:
                stmt = stmt.where(ReminderModel.contact_id == cid)
            if filters.due_from is not None:
                stmt = stmt.where(ReminderModel.due_at >= filters.due_from)
            if filters.due_before is not None:
                stmt = stmt.where(ReminderModel.due_at < filters.due_before)
            rows = (await session.execute(stmt)).scalars().all()
            return [_model_to_reminder(r) for r in rows]

    async def get_reminder(self, reminder_id: str) -> ReminderRead | None:
        rid = as_uuid(reminder_id)
        if rid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(ReminderModel, rid)
            return _model_to_reminder(model) if model else None

    async def create_reminder(self, data: ReminderCreate) -> ReminderRead:
        fields = _prepare_changes(data.model_dump())
        async for session in self._session_factory():
            model = ReminderModel(**fields)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_reminder(model)

    async def update_reminder(self, reminder_id: str, changes: dict[str, Any]) -> ReminderRead:
        """Apply a partial update to a reminder.

        Setting ``is_completed`` stamps or clears ``completed_at``.

        Raises:
            ValueError: If the reminder is not found.
        """
        rid = as_uuid(reminder_id)
        async for session in self._session_factory():
            model = await session.get(ReminderModel, rid) if rid else None
            if model is None:
                raise ValueError(f"Reminder not found: {reminder_id}")
            for key, value in _prepare_changes(changes).items():
                setattr(model, key, value)
            if "is_completed" in changes:
                model.completed_at = (
                    datetime.now(timezone.utc) if changes["is_completed"] else None
                )
            await session.commit()
            await session.refresh(model)
            return _model_to_reminder(model)

    async def delete_reminder(self, reminder_id: str) -> bool:
        rid = as_uuid(reminder_id)
        if rid is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(delete(ReminderModel).where(ReminderModel.id == rid))
            await session.commit()
            return result.rowcount > 0

    # ── Tags ────────────────────────────────────────────────────────────────

    async def list_tags(self) -> list[TagRead]:
        async for session in self._session_factory():
            rows = (
                await session.execute(select(TagModel).order_by(TagModel.created_at.desc()))
            ).scalars().all()
            return [_model_to_tag(t) for t in rows]

    async def create_tag(self, data: TagCreate) -> TagRead:
        async for session in self._session_factory():
            model = TagModel(name=data.name, color=data.color)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_tag(model)

    async def update_tag(self, tag_id: str, changes: dict[str, Any]) -> TagRead:
        """Rename or recolor a tag.

        Raises:
            ValueError: If the tag is not found.
        """
        tid = as_uuid(tag_id)
        async for session in self._session_factory():
            model = await session.get(TagModel, tid) if tid else None
            if model is None:
                raise ValueError(f"Tag not found: {tag_id}")
            for key, value in changes.items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_tag(model)

    async def delete_tag(self, tag_id: str) -> bool:
        tid = as_uuid(tag_id)
        if tid is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(delete(TagModel).where(TagModel.id == tid))
            await session.commit()
            return result.rowcount > 0
