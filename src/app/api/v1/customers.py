"""Admin customer console endpoints.

Lists and maintains the hosting platform's organizations, and serves the
health, renewal, trial and upgrade dashboards. Aggregates are gathered by
AdminRepository and scored by the pure helpers in src.app.admin.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.admin.constants import (
    CHURN_REASONS,
    HEALTH_STATUSES,
    MAX_TRIAL_EXTENSION_DAYS,
    UPGRADE_STATUSES,
    VALID_STATUSES,
    VALID_TIERS,
)
from src.app.admin.health import (
    build_customer_health,
    compute_health_stats,
    filter_and_sort_health,
)
from src.app.admin.renewals import build_renewal_pipeline, compute_renewal_stats
from src.app.admin.schemas import (
    AdminStats,
    ChurnReasonCreate,
    ChurnRecord,
    CustomerAction,
    CustomerHealth,
    HealthStats,
    MemberRead,
    OrganizationDetail,
    OrganizationFilters,
    OrganizationPage,
    RenewalCustomer,
    RenewalStats,
    TrialCustomer,
    TrialStats,
    UpgradeOpportunity,
    UpgradeStats,
    UsageRead,
)
from src.app.admin.stats import compute_admin_stats
from src.app.admin.trials import build_trials, compute_trial_stats
from src.app.admin.upgrades import compute_upgrade_stats, detect_upgrade_opportunities
from src.app.api.deps import get_current_operator
from src.app.crm.schemas import InputModel

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class OrganizationResponse(BaseModel):
    organization: OrganizationDetail


class ActionResponse(BaseModel):
    message: str
    tier: str | None = None
    trial_ends_at: datetime | None = None


class BulkOrganizationsRequest(InputModel):
    organization_ids: list[str] | None = None


class BulkDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int


class MembersResponse(BaseModel):
    members: list[MemberRead] = Field(default_factory=list)


class UsageResponse(BaseModel):
    usage: list[UsageRead] = Field(default_factory=list)


class HealthListResponse(BaseModel):
    customers: list[CustomerHealth] = Field(default_factory=list)
    stats: HealthStats


class HealthDetailResponse(BaseModel):
    health: CustomerHealth


class RenewalsResponse(BaseModel):
    customers: list[RenewalCustomer] = Field(default_factory=list)
    stats: RenewalStats
    recent_churns: list[ChurnRecord] = Field(default_factory=list)


class TrialsResponse(BaseModel):
    trials: list[TrialCustomer] = Field(default_factory=list)
    stats: TrialStats


class UpgradeAlertsResponse(BaseModel):
    opportunities: list[UpgradeOpportunity] = Field(default_factory=list)
    stats: UpgradeStats


class MessageResponse(BaseModel):
    message: str


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_admin_repository(request: Request) -> Any:
    """Retrieve AdminRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "admin_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin console not initialized",
        )
    return repo


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def parse_extension_days(value: int | str | None) -> int | None:
    """Whole number of days from the request, or None when unparseable."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


# ── Collection Endpoints ─────────────────────────────────────────────────────


@router.get("", response_model=OrganizationPage)
async def list_customers(
    request: Request,
    search: str | None = Query(default=None),
    tier: str | None = Query(default=None),
    subscription_status: str | None = Query(default=None, alias="status"),
    sort: Literal["name", "tier", "status", "created_at", "createdAt"] = Query(default="created_at"),
    order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    date_from: datetime | None = Query(default=None, alias="dateFrom"),
    date_to: datetime | None = Query(default=None, alias="dateTo"),
    has_crm_addon: bool = Query(default=False, alias="hasCrmAddon"),
    operator: dict = Depends(get_current_operator),
) -> OrganizationPage:
    """Paginated organizations with counts, owner and CRM add-on flag."""
    repo = _get_admin_repository(request)
    filters = OrganizationFilters(
        search=search or None,
        tier=tier or None,
        status=subscription_status or None,
        sort="created_at" if sort == "createdAt" else sort,
        order=order,
        page=page,
        limit=limit,
        date_from=date_from,
        date_to=date_to,
        has_crm_addon=has_crm_addon,
    )
    return await repo.list_organizations(filters)


@router.get("/stats", response_model=AdminStats)
async def customer_stats(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> AdminStats:
    """Totals by status and tier, new signups and MRR breakdown."""
    repo = _get_admin_repository(request)
    orgs, crm_subscriptions = await repo.get_billing_inputs()
    return compute_admin_stats(orgs, crm_subscriptions)


@router.get("/health", response_model=HealthListResponse)
async def customer_health(
    request: Request,
    category: str | None = Query(default=None),
    tier: str | None = Query(default=None),
    sort: str = Query(default="score"),
    order: Literal["asc", "desc"] = Query(default="asc"),
    operator: dict = Depends(get_current_operator),
) -> HealthListResponse:
    """Health scores of active, trialing and past-due customers.

    Stats are computed over every scored customer, before filtering.
    """
    repo = _get_admin_repository(request)
    snapshots = await repo.get_snapshots(statuses=HEALTH_STATUSES)
    scored = [build_customer_health(s) for s in snapshots]
    return HealthListResponse(
        customers=filter_and_sort_health(scored, category, tier, sort, order),
        stats=compute_health_stats(scored),
    )


@router.get("/renewals", response_model=RenewalsResponse)
async def renewals(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> RenewalsResponse:
    """Estimated renewal pipeline with churn stats and the latest churns."""
    repo = _get_admin_repository(request)
    snapshots = await repo.get_snapshots(statuses=("active",))
    customers = build_renewal_pipeline(snapshots)
    return RenewalsResponse(
        customers=customers,
        stats=compute_renewal_stats(customers, await repo.churn_reasons()),
        recent_churns=await repo.list_recent_churns(20),
    )


@router.get("/trials", response_model=TrialsResponse)
async def trials(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> TrialsResponse:
    """Trialing customers with onboarding milestones, most urgent first."""
    repo = _get_admin_repository(request)
    items = build_trials(await repo.get_snapshots(statuses=("trialing",)))
    return TrialsResponse(trials=items, stats=compute_trial_stats(items))


@router.get("/upgrade-alerts", response_model=UpgradeAlertsResponse)
async def upgrade_alerts(
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> UpgradeAlertsResponse:
    repo = _get_admin_repository(request)
    opportunities = detect_upgrade_opportunities(
        await repo.get_snapshots(statuses=UPGRADE_STATUSES)
    )
    return UpgradeAlertsResponse(
        opportunities=opportunities,
        stats=compute_upgrade_stats(opportunities),
    )


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_customers(
    body: BulkOrganizationsRequest,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> BulkDeleteResponse:
    """Delete organizations (the platform cascades their child rows)."""
    if not body.organization_ids:
        raise _bad_request("Organization IDs are required")
    if not all(_is_uuid(org_id) for org_id in body.organization_ids):
        raise _bad_request("Invalid organization ID format")
    repo = _get_admin_repository(request)
    deleted = await repo.bulk_delete_organizations(body.organization_ids)
    logger.warning("customers_bulk_deleted", count=deleted)
    return BulkDeleteResponse(deleted_count=deleted)


# ── Single Organization Endpoints ────────────────────────────────────────────


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_customer(
    org_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> OrganizationResponse:
    repo = _get_admin_repository(request)
    org = await repo.get_organization_detail(org_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return OrganizationResponse(organization=org)


@router.patch("/{org_id}", response_model=ActionResponse)
async def update_customer(
    org_id: str,
    body: CustomerAction,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> ActionResponse:
    """Run one console action: changeTier, extendTrial, cancelSubscription
    or editDetails."""
    repo = _get_admin_repository(request)
    if not await repo.organization_exists(org_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    if body.action == "changeTier":
        if not body.tier or body.tier not in VALID_TIERS:
            raise _bad_request(f"Invalid tier. Must be one of: {', '.join(VALID_TIERS)}")
        await repo.change_tier(org_id, body.tier)
        return ActionResponse(message="Tier updated", tier=body.tier)

    if body.action == "extendTrial":
        days = parse_extension_days(body.days)
        if not days or days < 1 or days > MAX_TRIAL_EXTENSION_DAYS:
            raise _bad_request(f"Days must be between 1 and {MAX_TRIAL_EXTENSION_DAYS}")
        new_end = await repo.extend_trial(org_id, days)
        return ActionResponse(message="Trial extended", trial_ends_at=new_end)

    if body.action == "cancelSubscription":
        await repo.cancel_subscription(org_id)
        return ActionResponse(message="Subscription marked as canceled")

    if body.action == "editDetails":
        provided = body.model_fields_set
        changes: dict[str, Any] = {}
        if "name" in provided:
            if not body.name or not body.name.strip():
                raise _bad_request("Name cannot be empty")
            changes["name"] = body.name.strip()
        if "phone_number" in provided:
            changes["phone_number"] = (body.phone_number or "").strip() or None
        if "subscription_status" in provided:
            if body.subscription_status not in VALID_STATUSES:
                raise _bad_request("Invalid status")
            changes["subscription_status"] = body.subscription_status
        await repo.update_organization(org_id, changes)
        return ActionResponse(message="Details updated")

    raise _bad_request("Unknown action")


@router.get("/{org_id}/members", response_model=MembersResponse)
async def customer_members(
    org_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MembersResponse:
    repo = _get_admin_repository(request)
    return MembersResponse(members=await repo.get_members(org_id))


@router.get("/{org_id}/usage", response_model=UsageResponse)
async def customer_usage(
    org_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> UsageResponse:
    """Monthly AI usage, most recent month first."""
    repo = _get_admin_repository(request)
    return UsageResponse(usage=await repo.get_usage(org_id))


@router.get("/{org_id}/health", response_model=HealthDetailResponse)
async def customer_health_detail(
    org_id: str,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> HealthDetailResponse:
    repo = _get_admin_repository(request)
    snapshots = await repo.get_snapshots(org_ids=[org_id])
    if not snapshots:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found",
        )
    return HealthDetailResponse(health=build_customer_health(snapshots[0]))


@router.post("/{org_id}/churn-reason", response_model=MessageResponse)
async def log_churn_reason(
    org_id: str,
    body: ChurnReasonCreate,
    request: Request,
    operator: dict = Depends(get_current_operator),
) -> MessageResponse:
    """Record why a customer churned with their current health score."""
    if not body.reason or body.reason not in CHURN_REASONS:
        raise _bad_request("Invalid churn reason")
    repo = _get_admin_repository(request)

    snapshots = await repo.get_snapshots(org_ids=[org_id])
    health_score = build_customer_health(snapshots[0]).breakdown.total if snapshots else None
    await repo.log_churn_reason(org_id, body.reason, body.details, health_score)
    return MessageResponse(message="Churn reason logged")
