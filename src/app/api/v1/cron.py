"""Scheduled job endpoints, called by an external scheduler.

Protected by ``Authorization: Bearer <CRON_SECRET>`` when CRON_SECRET is set.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.app.api.deps import require_cron_secret
from src.app.inbox.schemas import SyncResult
from src.app.inbox.sync import CRON_SYNC

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/gmail-sync", response_model=SyncResult, dependencies=[Depends(require_cron_secret)])
async def cron_gmail_sync(request: Request) -> SyncResult:
    """Import unread mail (up to 20 messages per account)."""
    sync_service = getattr(request.app.state, "gmail_sync", None)
    if sync_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gmail sync not initialized",
        )
    try:
        return await sync_service.sync(CRON_SYNC)
    except Exception as exc:
        logger.error("gmail_cron_sync_failed", error=str(exc), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Sync failed",
        )
