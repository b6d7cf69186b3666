"""Inbox repository -- Gmail accounts, processed-email markers and drafts.

Same session_factory pattern as CrmRepository. Gmail accounts are never
hard-deleted: disconnecting clears ``is_active`` so tokens can be replaced
on reconnect.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.crm.models import EmailDraftModel, GmailAccountModel, ProcessedEmailModel
from src.app.crm.repository import as_uuid
from src.app.inbox.schemas import (
    DraftCreate,
    DraftRead,
    GmailAccountRead,
    GmailTokens,
    ProcessedEmailCreate,
    ProcessedEmailRead,
)

logger = structlog.get_logger(__name__)


def _str_id(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


# Foreign keys; gmail_message_id and gmail_thread_id are Gmail strings
_FK_FIELDS = frozenset({"processed_email_id", "gmail_account_id", "contact_id", "deal_id"})


def _ids_to_uuid(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        key: as_uuid(value) if key in _FK_FIELDS else value
        for key, value in fields.items()
    }


def _model_to_account(model: GmailAccountModel) -> GmailAccountRead:
    return GmailAccountRead(
        id=str(model.id),
        email=model.email,
        name=model.name,
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expiry_date=model.expiry_date,
        is_active=bool(model.is_active),
        label_filter=model.label_filter,
        last_sync_at=model.last_sync_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_processed(model: ProcessedEmailModel) -> ProcessedEmailRead:
    return ProcessedEmailRead(
        id=str(model.id),
        gmail_account_id=_str_id(model.gmail_account_id),
        gmail_message_id=model.gmail_message_id,
        from_email=model.from_email,
        subject=model.subject,
        contact_id=_str_id(model.contact_id),
        deal_id=_str_id(model.deal_id),
        created_at=model.created_at,
    )


def _model_to_draft(model: EmailDraftModel) -> DraftRead:
    return DraftRead(
        id=str(model.id),
        processed_email_id=_str_id(model.processed_email_id),
        gmail_account_id=_str_id(model.gmail_account_id),
        contact_id=_str_id(model.contact_id),
        deal_id=_str_id(model.deal_id),
        original_from_email=model.original_from_email,
        original_from_name=model.original_from_name,
        original_subject=model.original_subject,
        original_body=model.original_body,
        original_received_at=model.original_received_at,
        draft_subject=model.draft_subject,
        draft_body=model.draft_body,
        tone=model.tone,
        status=model.status,
        error_message=model.error_message,
        sent_at=model.sent_at,
        sent_gmail_message_id=model.sent_gmail_message_id,
        gmail_thread_id=model.gmail_thread_id,
        gmail_message_id=model.gmail_message_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class InboxRepository:
    """Async persistence for Gmail accounts, processed emails and drafts.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Gmail accounts ──────────────────────────────────────────────────────

    async def list_active_accounts(self) -> list[GmailAccountRead]:
        """Active accounts, oldest connection first."""
        async for session in self._session_factory():
            rows = (
                await session.execute(
                    select(GmailAccountModel)
                    .where(GmailAccountModel.is_active.is_(True))
                    .order_by(GmailAccountModel.created_at.asc())
                )
            ).scalars().all()
            return [_model_to_account(a) for a in rows]

    async def get_account(self, account_id: str) -> GmailAccountRead | None:
        aid = as_uuid(account_id)
        if aid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(GmailAccountModel, aid)
            return _model_to_account(model) if model else None

    async def upsert_account(
        self, email: str, tokens: GmailTokens, label_filter: str | None = None
    ) -> GmailAccountRead:
        """Store tokens for an address, reactivating an existing account.

        A new account is named after the local part of the address. When
        Google does not return a new refresh token the stored one is kept.
        """
        normalized = email.strip().lower()
        async for session in self._session_factory():
            model = (
                await session.execute(
                    select(GmailAccountModel).where(
                        func.lower(GmailAccountModel.email) == normalized
                    )
                )
            ).scalar_one_or_none()
            now = datetime.now(timezone.utc)
            if model is None:
                if not tokens.refresh_token:
                    raise ValueError("Google did not return a refresh token")
                model = GmailAccountModel(
                    email=normalized,
                    name=normalized.split("@")[0],
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    expiry_date=tokens.expiry_date,
                    is_active=True,
                    label_filter=label_filter or None,
                )
                session.add(model)
                logger.info("gmail_account_connected", email=normalized)
            else:
                model.access_token = tokens.access_token
                if tokens.refresh_token:
                    model.refresh_token = tokens.refresh_token
                model.expiry_date = tokens.expiry_date
                model.is_active = True
                model.updated_at = now
                logger.info("gmail_account_reconnected", email=normalized)
            await session.commit()
            await session.refresh(model)
            return _model_to_account(model)

    async def update_account_tokens(self, account_id: str, tokens: GmailTokens) -> None:
        aid = as_uuid(account_id)
        values: dict[str, Any] = {
            "access_token": tokens.access_token,
            "expiry_date": tokens.expiry_date,
            "updated_at": datetime.now(timezone.utc),
        }
        if tokens.refresh_token:
            values["refresh_token"] = tokens.refresh_token
        async for session in self._session_factory():
            await session.execute(
                update(GmailAccountModel).where(GmailAccountModel.id == aid).values(**values)
            )
            await session.commit()

    async def deactivate_accounts(self, account_id: str | None = None) -> int:
        """Soft-disconnect one account, or every account when id is None.

        Returns:
            Number of accounts deactivated.
        """
        stmt = update(GmailAccountModel).values(
            is_active=False, updated_at=datetime.now(timezone.utc)
        )
        if account_id is not None:
            aid = as_uuid(account_id)
            if aid is None:
                return 0
            stmt = stmt.where(GmailAccountModel.id == aid)
        async for session in self._session_factory():
            result = await session.execute(stmt)
            await session.commit()
            logger.info("gmail_accounts_disconnected", count=result.rowcount, account_id=account_id)
            return result.rowcount

    async def touch_last_sync(self, account_id: str) -> None:
        aid = as_uuid(account_id)
        async for session in self._session_factory():
            now = datetime.now(timezone.utc)
            await session.execute(
                update(GmailAccountModel)
                .where(GmailAccountModel.id == aid)
                .values(last_sync_at=now, updated_at=now)
            )
            await session.commit()

    # ── Processed emails ────────────────────────────────────────────────────

    async def is_processed(self, gmail_message_id: str) -> bool:
        async for session in self._session_factory():
            found = (
                await session.execute(
                    select(ProcessedEmailModel.id).where(
                        ProcessedEmailModel.gmail_message_id == gmail_message_id
                    )
                )
            ).first()
            return found is not None

    async def record_processed(self, data: ProcessedEmailCreate) -> ProcessedEmailRead:
        async for session in self._session_factory():
            model = ProcessedEmailModel(**_ids_to_uuid(data.model_dump()))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_processed(model)

    async def find_processed_for_deal(self, deal_id: str) -> ProcessedEmailRead | None:
        """Earliest imported email that created or belongs to a deal."""
        did = as_uuid(deal_id)
        if did is None:
            return None
        async for session in self._session_factory():
            model = (
                await session.execute(
                    select(ProcessedEmailModel)
                    .where(ProcessedEmailModel.deal_id == did)
                    .order_by(ProcessedEmailModel.created_at.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            return _model_to_processed(model) if model else None

    # ── Drafts ──────────────────────────────────────────────────────────────

    async def list_drafts(self, statuses: list[str] | None = None) -> list[DraftRead]:
        """Drafts newest first, optionally limited to some statuses."""
        async for session in self._session_factory():
            stmt = select(EmailDraftModel).order_by(EmailDraftModel.created_at.desc())
            if statuses:
                stmt = stmt.where(EmailDraftModel.status.in_(statuses))
            rows = (await session.execute(stmt)).scalars().all()
            return [_model_to_draft(d) for d in rows]

    async def get_draft(self, draft_id: str) -> DraftRead | None:
        did = as_uuid(draft_id)
        if did is None:
            return None
        async for session in self._session_factory():
            model = await session.get(EmailDraftModel, did)
            return _model_to_draft(model) if model else None

    async def create_draft(self, data: DraftCreate) -> DraftRead:
        async for session in self._session_factory():
            model = EmailDraftModel(**_ids_to_uuid(data.model_dump()))
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("draft_created", draft_id=str(model.id), deal_id=data.deal_id)
            return _model_to_draft(model)

    async def update_draft(self, draft_id: str, changes: dict[str, Any]) -> DraftRead:
        """Apply a partial update to a draft.

        Raises:
            ValueError: If the draft is not found.
        """
        did = as_uuid(draft_id)
        async for session in self._session_factory():
            model = await session.get(EmailDraftModel, did) if did else None
            if model is None:
                raise ValueError(f"Draft not found: {draft_id}")
            for key, value in changes.items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_draft(model)

    async def delete_draft(self, draft_id: str) -> bool:
        did = as_uuid(draft_id)
        if did is None:
            return False
        async for session in self._session_factory():
            result = await session.execute(delete(EmailDraftModel).where(EmailDraftModel.id == did))
            await session.commit()
            return result.rowcount > 0

    async def bulk_delete_drafts(self, draft_ids: list[str]) -> int:
        ids = [did for did in (as_uuid(d) for d in draft_ids) if did is not None]
        if not ids:
            return 0
        async for session in self._session_factory():
            result = await session.execute(
                delete(EmailDraftModel).where(EmailDraftModel.id.in_(ids))
            )
            await session.commit()
            return result.rowcount
