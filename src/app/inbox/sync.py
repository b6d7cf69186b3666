"""Gmail inbox sync: imports inbound emails as CRM leads.

The same pipeline runs for the scheduled cron trigger (unread mail only)
and the manual trigger from the settings page (last 7 days, read or
unread). For every new message from a real sender it creates the contact,
deal and activity, records the message as processed, drafts a reply and
marks the message read with the CRM-Imported label.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from src.app.core.monitoring import record_gmail_sync
from src.app.inbox.schemas import (
    DraftCreate,
    GmailAccountRead,
    ProcessedEmailCreate,
    ReplyContext,
    SyncResult,
)
from src.app.services.gsuite.models import InboundEmail
from src.app.services.gsuite.parsing import is_no_reply

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SyncMode:
    trigger: str
    max_results: int
    unread_only: bool
    newer_than_days: int | None


CRON_SYNC = SyncMode(trigger="cron", max_results=20, unread_only=True, newer_than_days=None)
MANUAL_SYNC = SyncMode(trigger="manual", max_results=50, unread_only=False, newer_than_days=7)


class GmailSyncService:
    """Imports new Gmail messages from every active account.

    Args:
        inbox_repository: InboxRepository for accounts, markers and drafts.
        gmail_service: GmailService for fetching and labelling messages.
        intake_service: LeadIntakeService creating contact, deal and activity.
        drafter: EmailDrafter, or None to skip reply drafting.
        label_filter: Fallback Gmail label for accounts without their own.
    """

    def __init__(
        self,
        inbox_repository: Any,
        gmail_service: Any,
        intake_service: Any,
        drafter: Any | None = None,
        label_filter: str | None = None,
    ) -> None:
        self._inbox = inbox_repository
        self._gmail = gmail_service
        self._intake = intake_service
        self._drafter = drafter
        self._label_filter = label_filter

    async def sync(self, mode: SyncMode = CRON_SYNC) -> SyncResult:
        accounts = await self._inbox.list_active_accounts()
        if not accounts:
            logger.info("gmail_sync_not_connected", trigger=mode.trigger)
            return SyncResult(success=False, message="Gmail not connected")

        result = SyncResult()
        for account in accounts:
            try:
                await self._sync_account(account, mode, result)
            except Exception as exc:
                logger.error(
                    "gmail_sync_account_failed",
                    account=account.email,
                    trigger=mode.trigger,
                    error=str(exc),
                    exc_info=True,
                )
                result.errors.append(f"{account.email}: {exc}")

        if result.errors and result.total == 0:
            result.success = False
            result.message = "Sync failed"
        record_gmail_sync(mode.trigger, result.processed, result.skipped)
        logger.info(
            "gmail_sync_completed",
            trigger=mode.trigger,
            processed=result.processed,
            skipped=result.skipped,
            total=result.total,
            accounts=len(accounts),
        )
        return result

    async def _sync_account(
        self, account: GmailAccountRead, mode: SyncMode, result: SyncResult
    ) -> None:
        emails = await self._gmail.fetch_messages(
            account,
            max_results=mode.max_results,
            unread_only=mode.unread_only,
            newer_than_days=mode.newer_than_days,
            label=self._label_filter,
        )
        result.total += len(emails)
        logger.info("gmail_sync_fetched", account=account.email, count=len(emails))

        for email in emails:
            if await self._import_email(account, email):
                result.processed += 1
            else:
                result.skipped += 1

        await self._inbox.touch_last_sync(account.id)

    async def _import_email(self, account: GmailAccountRead, email: InboundEmail) -> bool:
        """Import one message. Returns False when it was skipped."""
        if await self._inbox.is_processed(email.id):
            return False

        if is_no_reply(email.from_email):
            await self._gmail.mark_as_read(account, email.id)
            await self._inbox.record_processed(
                ProcessedEmailCreate(
                    gmail_account_id=account.id,
                    gmail_message_id=email.id,
                    from_email=email.from_email,
                    subject=email.subject,
                )
            )
            return False

        contact, deal, _ = await self._intake.create_email_lead(
            from_email=email.from_email,
            from_name=email.from_name if email.from_name != email.from_email else None,
            subject=email.subject,
            body=email.body,
            received_at=email.date,
            gmail_account_id=account.id,
        )
        processed = await self._inbox.record_processed(
            ProcessedEmailCreate(
                gmail_account_id=account.id,
                gmail_message_id=email.id,
                from_email=email.from_email,
                subject=email.subject,
                contact_id=contact.id,
                deal_id=deal.id,
            )
        )

        if self._drafter is not None:
            try:
                generated = await self._drafter.generate_reply(
                    ReplyContext(
                        from_name=email.from_name or email.from_email.split("@")[0],
                        from_email=email.from_email,
                        subject=email.subject,
                        body=email.body,
                        contact_name=contact.name,
                        company_name=contact.company,
                        deal_title=deal.title,
                        deal_stage=deal.stage,
                    )
                )
                await self._inbox.create_draft(
                    DraftCreate(
                        processed_email_id=processed.id,
                        gmail_account_id=account.id,
                        contact_id=contact.id,
                        deal_id=deal.id,
                        original_from_email=email.from_email,
                        original_from_name=email.from_name,
                        original_subject=email.subject,
                        original_body=email.body,
                        original_received_at=email.date,
                        draft_subject=generated.subject,
                        draft_body=generated.body,
                        gmail_thread_id=email.thread_id or None,
                        gmail_message_id=email.id,
                    )
                )
            except Exception as exc:
                logger.warning(
                    "gmail_sync_draft_failed",
                    message_id=email.id,
                    subject=email.subject,
                    error=str(exc),
                )

        await self._gmail.mark_as_read(account, email.id)
        try:
            await self._gmail.add_label(account, email.id)
        except Exception as exc:
            logger.warning("gmail_label_failed", message_id=email.id, error=str(exc))
        return True
