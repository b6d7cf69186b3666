"""Async Gmail API service for fetching, labelling and sending emails.

All Google API calls are wrapped in asyncio.to_thread() since the
google-api-python-client is synchronous. Replies thread with
In-Reply-To and References headers plus the Gmail threadId.
"""

from __future__ import annotations

import asyncio
import base64
from email.message import EmailMessage as StdlibEmailMessage
from typing import Any

import structlog

from src.app.inbox.schemas import GmailAccountRead
from src.app.services.gsuite.auth import GSuiteAuthManager
from src.app.services.gsuite.models import EmailMessage, InboundEmail, SentEmailResult
from src.app.services.gsuite.parsing import (
    build_search_query,
    extract_body,
    header_map,
    parse_date,
    parse_email_address,
)

logger = structlog.get_logger(__name__)

IMPORTED_LABEL = "CRM-Imported"


def message_to_inbound(message: dict[str, Any]) -> InboundEmail:
    """Convert a ``format=full`` Gmail message resource to an InboundEmail."""
    payload = message.get("payload", {})
    headers = header_map(payload)
    sender = headers.get("from", "")
    from_name, from_email = parse_email_address(sender)
    return InboundEmail(
        id=message["id"],
        thread_id=message.get("threadId", ""),
        sender=sender,
        from_email=from_email,
        from_name=from_name,
        subject=headers.get("subject", ""),
        body=extract_body(payload),
        date=parse_date(headers.get("date", "")),
        message_id_header=headers.get("message-id"),
    )


class GmailService:
    """Async wrapper around the Gmail API for connected accounts."""

    def __init__(self, auth_manager: GSuiteAuthManager) -> None:
        self._auth = auth_manager

    def _build_mime_message(self, account: GmailAccountRead, email: EmailMessage) -> str:
        """Build a plain-text RFC 2822 message, base64url encoded."""
        msg = StdlibEmailMessage()
        msg["To"] = email.to
        msg["From"] = f"{email.from_name or account.name or account.email} <{account.email}>"
        msg["Subject"] = email.subject

        if email.cc:
            msg["Cc"] = ", ".join(email.cc)

        if email.in_reply_to:
            # Gmail API ids are bare; the headers carry angle-bracketed ids
            reference = f"<{email.in_reply_to.strip('<>')}>"
            msg["In-Reply-To"] = reference
            msg["References"] = reference

        msg.set_content(email.body_text, charset="utf-8")
        if email.body_html:
            msg.add_alternative(email.body_html, subtype="html")

        return base64.urlsafe_b64encode(msg.as_bytes()).decode()

    async def fetch_messages(
        self,
        account: GmailAccountRead,
        max_results: int = 20,
        unread_only: bool = True,
        newer_than_days: int | None = None,
        label: str | None = None,
    ) -> list[InboundEmail]:
        """Fetch messages matching the account's label filter.

        Args:
            account: Connected Gmail account.
            max_results: Maximum number of messages to list.
            unread_only: Restrict to unread mail.
            newer_than_days: Only mail received in the last N days.
            label: Label to search in when the account has no label filter.
        """
        service = await self._auth.get_gmail_service(account)
        query = build_search_query(
            unread_only=unread_only,
            label=account.label_filter or label,
            newer_than_days=newer_than_days,
        )

        def _list() -> dict:
            return (
                service.users()
                .messages()
                .list(userId="me", q=query, maxResults=max_results)
                .execute()
            )

        logger.info("gmail_listing_messages", account=account.email, query=query)
        listing = await asyncio.to_thread(_list)

        emails: list[InboundEmail] = []
        for ref in listing.get("messages", []):
            message_id = ref["id"]

            def _get(mid: str = message_id) -> dict:
                return (
                    service.users()
                    .messages()
                    .get(userId="me", id=mid, format="full")
                    .execute()
                )

            message = await asyncio.to_thread(_get)
            emails.append(message_to_inbound(message))
        return emails

    async def mark_as_read(self, account: GmailAccountRead, message_id: str) -> None:
        service = await self._auth.get_gmail_service(account)

        def _modify() -> dict:
            return (
                service.users()
                .messages()
                .modify(userId="me", id=message_id, body={"removeLabelIds": ["UNREAD"]})
                .execute()
            )

        await asyncio.to_thread(_modify)

    async def add_label(
        self, account: GmailAccountRead, message_id: str, label_name: str = IMPORTED_LABEL
    ) -> None:
        """Apply a label to a message, creating the label if needed."""
        service = await self._auth.get_gmail_service(account)

        def _apply() -> None:
            labels = service.users().labels().list(userId="me").execute().get("labels", [])
            label_id = next((lb["id"] for lb in labels if lb.get("name") == label_name), None)
            if label_id is None:
                created = (
                    service.users()
                    .labels()
                    .create(
                        userId="me",
                        body={
                            "name": label_name,
                            "labelListVisibility": "labelShow",
                            "messageListVisibility": "show",
                        },
                    )
                    .execute()
                )
                label_id = created["id"]
            (
                service.users()
                .messages()
                .modify(userId="me", id=message_id, body={"addLabelIds": [label_id]})
                .execute()
            )

        await asyncio.to_thread(_apply)

    async def send_email(self, account: GmailAccountRead, email: EmailMessage) -> SentEmailResult:
        """Send an email from the account.

        Returns:
            SentEmailResult with message_id, thread_id and label_ids.
        """
        service = await self._auth.get_gmail_service(account)
        body: dict[str, Any] = {"raw": self._build_mime_message(account, email)}
        if email.thread_id:
            body["threadId"] = email.thread_id

        def _send() -> dict:
            return service.users().messages().send(userId="me", body=body).execute()

        logger.info(
            "gmail_sending_email",
            account=account.email,
            to=email.to,
            thread_id=email.thread_id,
        )
        result = await asyncio.to_thread(_send)

        return SentEmailResult(
            message_id=result.get("id", ""),
            thread_id=result.get("threadId", ""),
            label_ids=result.get("labelIds", []),
        )
