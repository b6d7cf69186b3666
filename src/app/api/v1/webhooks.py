"""Inbound webhook endpoint for external lead sources.

Signups, billing events, contact forms and support tickets from partner
systems arrive here as ``{source, event, data}`` and are recorded as CRM
contacts, deals and activities by LeadIntakeService. Callers authenticate
with a Bearer API key from CRM_API_KEY_* settings.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.app.api.deps import require_webhook_api_key
from src.app.crm.intake import IntakeResult, WebhookPayload, validate_payload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookResponse(IntakeResult):
    success: bool = True


def _get_intake_service(request: Request) -> Any:
    service = getattr(request.app.state, "intake_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Lead intake not initialized",
        )
    return service


@router.post("/inbound", response_model=WebhookResponse)
async def inbound_webhook(
    payload: WebhookPayload,
    request: Request,
    caller: str = Depends(require_webhook_api_key),
) -> WebhookResponse:
    """Record a lead-source event as contact, deal and activity."""
    error = validate_payload(payload)
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    service = _get_intake_service(request)
    logger.info("webhook_received", caller=caller, source=payload.source, event=payload.event)
    try:
        result = await service.process_webhook(payload)
    except Exception as exc:
        logger.error(
            "webhook_processing_failed",
            source=payload.source,
            event=payload.event,
            error=str(exc),
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook",
        )
    return WebhookResponse(**result.model_dump())
