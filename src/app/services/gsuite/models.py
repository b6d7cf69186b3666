"""Pydantic schemas for Gmail messages exchanged with the Gmail API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class EmailMessage(BaseModel):
    """Email message to send via Gmail API."""

    to: str
    subject: str
    body_text: str
    body_html: str | None = None
    from_name: str | None = None
    thread_id: str | None = None
    in_reply_to: str | None = None
    cc: list[str] = Field(default_factory=list)


class SentEmailResult(BaseModel):
    """Result from sending an email via Gmail API."""

    message_id: str
    thread_id: str = ""
    label_ids: list[str] = Field(default_factory=list)


class InboundEmail(BaseModel):
    """A fetched Gmail message with parsed sender and plain-text body."""

    id: str
    thread_id: str = ""
    sender: str = ""
    from_email: str
    from_name: str
    subject: str = ""
    body: str = ""
    date: datetime | None = None
    message_id_header: str | None = None
