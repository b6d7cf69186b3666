"""AI email drafting over the LiteLLM-backed LLMService.

EmailDrafter produces three kinds of drafts, all returned as a
GeneratedDraft (subject + body):
- reply: answer to an inbound email, with CRM context about the sender
- outreach: first-contact email for a deal that did not start in Gmail
- regenerate: new take on an existing draft, steered by tone and feedback

The model is asked for a JSON object; parse_draft_response() tolerates
Markdown code fences and falls back to using the raw text as the body.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from src.app.inbox.schemas import (
    DraftRead,
    DraftTone,
    GeneratedDraft,
    OutreachContext,
    ReplyContext,
)

logger = structlog.get_logger(__name__)

TONE_INSTRUCTIONS: dict[str, str] = {
    DraftTone.professional.value: (
        "Use a formal, business-appropriate tone. Be polite and respectful."
    ),
    DraftTone.friendly.value: (
        "Use a warm, personable tone. Be approachable while maintaining professionalism."
    ),
    DraftTone.concise.value: (
        "Be brief and to-the-point. Focus on essential information only."
    ),
    DraftTone.follow_up.value: (
        "Use a gentle follow-up tone. Acknowledge the previous conversation "
        "and move things forward."
    ),
}

_FENCE_RE = re.compile(r"```(?:json)?\n?")

_JSON_INSTRUCTION = (
    'Format your response as JSON with this exact structure:\n'
    '{"subject": "...", "body": "..."}\n\n'
    "Only output the JSON, nothing else."
)


def _tone_instruction(tone: str | None) -> str:
    return TONE_INSTRUCTIONS.get(tone or "", TONE_INSTRUCTIONS[DraftTone.professional.value])


def _context_lines(**values: str | None) -> str:
    labels = {
        "contact_name": "Contact Name",
        "company_name": "Company",
        "deal_title": "Related Deal",
        "deal_stage": "Deal Stage",
        "deal_tier": "Interested Tier",
        "enquiry_type": "Enquiry Type",
        "next_step": "Planned Next Step",
    }
    return "\n".join(f"- {labels[key]}: {value}" for key, value in values.items() if value)


def parse_draft_response(text: str, original_subject: str) -> GeneratedDraft:
    """Parse the model's JSON answer into a GeneratedDraft.

    Args:
        text: Raw model output, possibly wrapped in ```json fences.
        original_subject: Subject of the email being answered; used for
            the ``Re:`` fallback subject.
    """
    fallback_subject = f"Re: {original_subject}"
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        parsed: Any = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("draft_response_not_json", preview=text[:100])
        return GeneratedDraft(subject=fallback_subject, body=text)

    if not isinstance(parsed, dict):
        return GeneratedDraft(subject=fallback_subject, body=text)
    return GeneratedDraft(
        subject=str(parsed.get("subject") or fallback_subject),
        body=str(parsed.get("body") or ""),
    )


class EmailDrafter:
    """Drafts sales emails with the configured LLM.

    Args:
        llm_service: LLMService (or compatible) exposing ``completion()``.
    """

    def __init__(self, llm_service: Any) -> None:
        self._llm = llm_service

    async def _complete(self, system: str, user: str, purpose: str) -> str:
        result = await self._llm.completion(
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            model="fast",
            max_tokens=1024,
            temperature=0.7,
            purpose=purpose,
        )
        return result["content"]

    async def generate_reply(
        self, context: ReplyContext, tone: str = DraftTone.professional.value
    ) -> GeneratedDraft:
        """Draft a reply to an inbound email."""
        sender_context = _context_lines(
            contact_name=context.contact_name,
            company_name=context.company_name,
            deal_title=context.deal_title,
            deal_stage=context.deal_stage,
        )
        system = (
            "You are an AI assistant helping draft email responses for a sales CRM. "
            "Your job is to draft professional, helpful responses to incoming business "
            "inquiries.\n\n"
            "Guidelines:\n"
            f"- {_tone_instruction(tone)}\n"
            "- Keep responses focused and actionable\n"
            "- Don't make up specific details about products, pricing, or capabilities\n"
            "- If the email is asking about services, express interest in learning more "
            "about their needs\n"
            "- Include a clear call-to-action (schedule a call, reply with more info, etc.)\n"
            '- Sign off as "Best regards," followed by a newline; the user adds their '
            "name before sending\n"
            "- Keep the response between 100-200 words unless the inquiry requires more "
            "detail\n\n"
            f"Context about the sender (if available):\n{sender_context}"
        )
        user = (
            "Generate a draft email response to this incoming email:\n\n"
            f"From: {context.from_name} <{context.from_email}>\n"
            f"Subject: {context.subject}\n\n"
            f"---\n{context.body[:3000]}\n---\n\n"
            "Generate:\n"
            '1. A reply subject line (typically "Re: [original subject]" unless a '
            "different subject is more appropriate)\n"
            "2. The email body\n\n"
            f"{_JSON_INSTRUCTION}"
        )
        text = await self._complete(system, user, purpose="reply_draft")
        return parse_draft_response(text, context.subject)

    async def generate_outreach(
        self, context: OutreachContext, tone: str = DraftTone.professional.value
    ) -> GeneratedDraft:
        """Draft a first-contact email for a deal with no inbound email."""
        deal_context = _context_lines(
            contact_name=context.contact_name,
            company_name=context.contact_company,
            deal_title=context.deal_title,
            deal_stage=context.deal_stage,
            deal_tier=context.deal_tier,
            enquiry_type=context.enquiry_type,
            next_step=context.next_step,
        )
        system = (
            "You are an AI assistant helping a salesperson write outreach emails for a "
            "sales CRM that sells guest-messaging software to hotels and rental hosts.\n\n"
            "Guidelines:\n"
            f"- {_tone_instruction(tone)}\n"
            "- Address the contact by first name when known\n"
            "- Reference the deal context naturally; never invent pricing or features\n"
            "- Propose one concrete next step (a short call or a demo)\n"
            '- Sign off as "Best regards," followed by a newline\n'
            "- Keep the email between 80-150 words\n\n"
            f"Deal context:\n{deal_context}"
        )
        user = (
            f"Write an outreach email to {context.contact_name} <{context.contact_email}>.\n\n"
            "Generate a short, specific subject line and the email body.\n\n"
            f"{_JSON_INSTRUCTION}"
        )
        text = await self._complete(system, user, purpose="outreach_draft")
        fallback = context.deal_title or f"Following up, {context.contact_name}"
        draft = parse_draft_response(text, fallback)
        if draft.subject == f"Re: {fallback}":
            # Outreach is not a reply
            draft.subject = fallback
        return draft

    async def regenerate(
        self,
        draft: DraftRead,
        tone: str | None = None,
        feedback: str | None = None,
        contact_name: str | None = None,
        company_name: str | None = None,
        deal_title: str | None = None,
        deal_stage: str | None = None,
    ) -> GeneratedDraft:
        """Produce a new version of an existing draft."""
        effective_tone = tone or draft.tone
        context = _context_lines(
            contact_name=contact_name,
            company_name=company_name,
            deal_title=deal_title,
            deal_stage=deal_stage,
        )
        system = (
            "You are an AI assistant helping regenerate email drafts for a sales CRM.\n\n"
            f"Tone: {_tone_instruction(effective_tone)}\n"
            + (f"User feedback: {feedback}\n" if feedback else "User wants a fresh take on this draft.\n")
            + "\nGenerate a new, improved draft that addresses the feedback or takes a "
            "different approach."
            + (f"\n\nContext:\n{context}" if context else "")
        )
        subject = draft.original_subject or ""
        user = (
            "Original email received:\n"
            f"From: {draft.original_from_name or ''} <{draft.original_from_email}>\n"
            f"Subject: {subject}\n"
            f"{(draft.original_body or '')[:2000]}\n\n"
            "Previous draft that needs improvement:\n"
            f"{draft.draft_body or ''}\n\n"
            "Generate a new, improved draft response as JSON:\n"
            '{"subject": "...", "body": "..."}\n\n'
            "Only output the JSON, nothing else."
        )
        text = await self._complete(system, user, purpose="regenerate_draft")
        return parse_draft_response(text, subject)
