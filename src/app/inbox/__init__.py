"""Inbox module -- connected Gmail accounts, imported emails and AI drafts.

Provides InboxRepository, EmailDrafter (LLM reply and outreach drafts) and
GmailSyncService, which turns new inbound email into contacts, deals and
pending drafts.
"""
