"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.app.api.v1 import (
    activities,
    auth,
    contacts,
    cron,
    customers,
    deals,
    drafts,
    gmail,
    health,
    reminders,
    tags,
    webhooks,
)

router = APIRouter(prefix="/api/v1")

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(contacts.router)
router.include_router(deals.router)
router.include_router(activities.router)
router.include_router(reminders.router)
router.include_router(tags.router)
router.include_router(drafts.router)
router.include_router(gmail.router)
router.include_router(cron.router)
router.include_router(webhooks.router)
router.include_router(customers.router)
