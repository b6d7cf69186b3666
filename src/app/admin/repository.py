"""Admin repository -- read and maintain platform organizations.

Queries the platform tables (PlatformBase) and the CRM-owned churn_reasons
table. Aggregates are batched per query over a set of organization ids and
stitched together in Python, then handed to the pure scoring modules as
OrgSnapshot / BillingInput values.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.admin.constants import (
    HIGH_TICKET_PRIORITIES,
    OPEN_TICKET_STATUSES,
    RESOLVED_TICKET_STATUSES,
    current_month,
)
from src.app.admin.models import (
    AccessTokenModel,
    AiUsageModel,
    ChatSessionModel,
    ContentSectionModel,
    CrmSubscriptionModel,
    FaqModel,
    OrganizationMemberModel,
    OrganizationModel,
    PropertyModel,
    TicketModel,
    UnitModel,
    UserModel,
)
from src.app.admin.schemas import (
    BillingInput,
    ChurnRecord,
    CrmSubscriptionInfo,
    MemberRead,
    MemberUser,
    OrganizationDetail,
    OrganizationFilters,
    OrganizationPage,
    OrganizationRead,
    OrgSnapshot,
    OwnerInfo,
    PropertySetup,
    TicketCounts,
    UsageRead,
)
from src.app.crm.models import ChurnReasonModel
from src.app.crm.repository import as_uuid

logger = structlog.get_logger(__name__)

_SORT_COLUMNS = {
    "name": OrganizationModel.name,
    "tier": OrganizationModel.pricing_tier,
    "status": OrganizationModel.subscription_status,
    "created_at": OrganizationModel.created_at,
}


def _naive_utc(value: datetime) -> datetime:
    """Platform columns are naive UTC timestamps."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _active_crm_subquery():
    return select(CrmSubscriptionModel.organization_id).where(
        CrmSubscriptionModel.status == "active"
    )


def _org_fields(model: OrganizationModel) -> dict[str, Any]:
    return {
        "id": str(model.id),
        "name": model.name,
        "slug": model.slug,
        "type": model.type,
        "pricing_tier": model.pricing_tier,
        "subscription_status": model.subscription_status,
        "billing_period": model.billing_period,
        "stripe_customer_id": model.stripe_customer_id,
        "stripe_subscription_id": model.stripe_subscription_id,
        "trial_started_at": model.trial_started_at,
        "trial_ends_at": model.trial_ends_at,
        "trial_extended_count": model.trial_extended_count,
        "extra_properties_count": model.extra_properties_count,
        "extra_units_count": model.extra_units_count,
        "phone_number": model.phone_number,
        "default_language": model.default_language,
        "onboarding_completed_at": model.onboarding_completed_at,
        "created_at": model.created_at,
    }


class AdminRepository:
    """Async access to platform organizations for the customer console.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Batched aggregates ──────────────────────────────────────────────────

    @staticmethod
    async def _property_counts(session: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        rows = await session.execute(
            select(PropertyModel.organization_id, func.count())
            .where(PropertyModel.organization_id.in_(ids))
            .group_by(PropertyModel.organization_id)
        )
        return {org_id: count for org_id, count in rows.all()}

    @staticmethod
    async def _unit_counts(session: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        rows = await session.execute(
            select(PropertyModel.organization_id, func.count())
            .select_from(UnitModel)
            .join(PropertyModel, UnitModel.property_id == PropertyModel.id)
            .where(PropertyModel.organization_id.in_(ids))
            .group_by(PropertyModel.organization_id)
        )
        return {org_id: count for org_id, count in rows.all()}

    @staticmethod
    async def _member_counts(session: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        rows = await session.execute(
            select(OrganizationMemberModel.organization_id, func.count())
            .where(OrganizationMemberModel.organization_id.in_(ids))
            .group_by(OrganizationMemberModel.organization_id)
        )
        return {org_id: count for org_id, count in rows.all()}

    @staticmethod
    async def _owners(session: AsyncSession, ids: list[uuid.UUID]) -> dict[uuid.UUID, OwnerInfo]:
        rows = await session.execute(
            select(OrganizationMemberModel.organization_id, UserModel.email, UserModel.name)
            .join(UserModel, UserModel.id == OrganizationMemberModel.user_id)
            .where(
                OrganizationMemberModel.role == "owner",
                OrganizationMemberModel.organization_id.in_(ids),
            )
        )
        owners: dict[uuid.UUID, OwnerInfo] = {}
        for org_id, email, name in rows.all():
            owners.setdefault(org_id, OwnerInfo(email=email, name=name))
        return owners

    @staticmethod
    async def _active_crm(
        session: AsyncSession, ids: list[uuid.UUID] | None = None
    ) -> dict[uuid.UUID, str | None]:
        stmt = select(
            CrmSubscriptionModel.organization_id, CrmSubscriptionModel.billing_period
        ).where(CrmSubscriptionModel.status == "active")
        if ids is not None:
            stmt = stmt.where(CrmSubscriptionModel.organization_id.in_(ids))
        rows = await session.execute(stmt)
        return {org_id: period for org_id, period in rows.all()}

    # ── Organizations ───────────────────────────────────────────────────────

    async def list_organizations(self, filters: OrganizationFilters) -> OrganizationPage:
        conditions = []
        if filters.search:
            conditions.append(OrganizationModel.name.ilike(f"%{filters.search}%"))
        if filters.tier:
            conditions.append(OrganizationModel.pricing_tier == filters.tier)
        if filters.status:
            conditions.append(OrganizationModel.subscription_status == filters.status)
        if filters.date_from:
            conditions.append(OrganizationModel.created_at >= _naive_utc(filters.date_from))
        if filters.date_to:
            conditions.append(OrganizationModel.created_at <= _naive_utc(filters.date_to))
        if filters.has_crm_addon:
            conditions.append(OrganizationModel.id.in_(_active_crm_subquery()))
        where = and_(*conditions) if conditions else None

        column = _SORT_COLUMNS[filters.sort]
        order_by = column.asc() if filters.order == "asc" else column.desc()

        async for session in self._session_factory():
            count_stmt = select(func.count()).select_from(OrganizationModel)
            stmt = select(OrganizationModel)
            if where is not None:
                count_stmt = count_stmt.where(where)
                stmt = stmt.where(where)
            total = (await session.execute(count_stmt)).scalar_one()
            orgs = (
                await session.execute(
                    stmt.order_by(order_by)
                    .limit(filters.limit)
                    .offset((filters.page - 1) * filters.limit)
                )
            ).scalars().all()

            page = OrganizationPage(total=total, page=filters.page, limit=filters.limit)
            if not orgs:
                return page

            ids = [o.id for o in orgs]
            props = await self._property_counts(session, ids)
            units = await self._unit_counts(session, ids)
            members = await self._member_counts(session, ids)
            owners = await self._owners(session, ids)
            crm = await self._active_crm(session, ids)
            page.organizations = [
                OrganizationRead(
                    **_org_fields(o),
                    property_count=props.get(o.id, 0),
                    unit_count=units.get(o.id, 0),
                    member_count=members.get(o.id, 0),
                    owner=owners.get(o.id),
                    has_crm_addon=o.id in crm,
                )
                for o in orgs
            ]
            return page

    async def organization_exists(self, org_id: str) -> bool:
        oid = as_uuid(org_id)
        if oid is None:
            return False
        async for session in self._session_factory():
            return await session.get(OrganizationModel, oid) is not None

    async def get_organization_detail(self, org_id: str) -> OrganizationDetail | None:
        oid = as_uuid(org_id)
        if oid is None:
            return None
        async for session in self._session_factory():
            org = await session.get(OrganizationModel, oid)
            if org is None:
                return None
            ids = [oid]
            sub = (
                await session.execute(
                    select(CrmSubscriptionModel)
                    .where(
                        CrmSubscriptionModel.organization_id == oid,
                        CrmSubscriptionModel.status == "active",
                    )
                    .limit(1)
                )
            ).scalar_one_or_none()
            return OrganizationDetail(
                **_org_fields(org),
                custom_domain=org.custom_domain,
                logo_url=org.logo_url,
                property_count=(await self._property_counts(session, ids)).get(oid, 0),
                unit_count=(await self._unit_counts(session, ids)).get(oid, 0),
                member_count=(await self._member_counts(session, ids)).get(oid, 0),
                owner=(await self._owners(session, ids)).get(oid),
                has_crm_addon=sub is not None,
                crm_subscription=(
                    CrmSubscriptionInfo(
                        status=sub.status,
                        billing_period=sub.billing_period or "monthly",
                        current_period_end=sub.current_period_end,
                        cancel_at_period_end=bool(sub.cancel_at_period_end),
                    )
                    if sub
                    else None
                ),
            )

    async def get_members(self, org_id: str) -> list[MemberRead]:
        oid = as_uuid(org_id)
        if oid is None:
            return []
        async for session in self._session_factory():
            rows = await session.execute(
                select(OrganizationMemberModel, UserModel)
                .join(UserModel, UserModel.id == OrganizationMemberModel.user_id)
                .where(OrganizationMemberModel.organization_id == oid)
            )
            return [
                MemberRead(
                    id=str(member.id),
                    user_id=str(member.user_id),
                    role=member.role,
                    job_title=member.job_title,
                    created_at=member.created_at,
                    user=MemberUser(name=user.name, email=user.email, image=user.image),
                )
                for member, user in rows.all()
            ]

    async def get_usage(self, org_id: str) -> list[UsageRead]:
        """Monthly AI usage, most recent month first."""
        oid = as_uuid(org_id)
        if oid is None:
            return []
        async for session in self._session_factory():
            rows = (
                await session.execute(
                    select(AiUsageModel)
                    .where(AiUsageModel.organization_id == oid)
                    .order_by(AiUsageModel.month.desc())
                )
            ).scalars().all()
            return [
                UsageRead(
                    month=u.month,
                    messages_used=u.messages_used or 0,
                    messages_cached=u.messages_cached or 0,
                    messages_faq_matched=u.messages_faq_matched or 0,
                    messages_direct_lookup=u.messages_direct_lookup or 0,
                    tokens_input=u.tokens_input or 0,
                    tokens_output=u.tokens_output or 0,
                )
                for u in rows
            ]

    # ── Console actions ─────────────────────────────────────────────────────

    async def update_organization(self, org_id: str, changes: dict[str, Any]) -> OrganizationModel:
        """Apply column changes to an organization.

        Raises:
            ValueError: If the organization is not found.
        """
        oid = as_uuid(org_id)
        async for session in self._session_factory():
            org = await session.get(OrganizationModel, oid) if oid else None
            if org is None:
                raise ValueError(f"Organization not found: {org_id}")
            for key, value in changes.items():
                setattr(org, key, value)
            org.updated_at = _naive_utc(datetime.now(timezone.utc))
            await session.commit()
            await session.refresh(org)
            logger.info("organization_updated", org_id=org_id, fields=sorted(changes))
            return org

    async def change_tier(self, org_id: str, tier: str) -> None:
        await self.update_organization(org_id, {"pricing_tier": tier})

    async def extend_trial(self, org_id: str, days: int) -> datetime:
        """Push the trial end out by ``days`` from its current end (or now).

        Returns:
            The new trial end.
        """
        oid = as_uuid(org_id)
        async for session in self._session_factory():
            org = await session.get(OrganizationModel, oid) if oid else None
            if org is None:
                raise ValueError(f"Organization not found: {org_id}")
            now = _naive_utc(datetime.now(timezone.utc))
            start = _naive_utc(org.trial_ends_at) if org.trial_ends_at else now
            org.trial_ends_at = start + timedelta(days=days)
            org.trial_extended_count = (org.trial_extended_count or 0) + 1
            org.updated_at = now
            await session.commit()
            logger.info("trial_extended", org_id=org_id, days=days)
            return org.trial_ends_at

    async def cancel_subscription(self, org_id: str) -> None:
        await self.update_organization(org_id, {"subscription_status": "canceled"})

    async def bulk_delete_organizations(self, org_ids: list[str]) -> int:
        ids = [oid for oid in (as_uuid(o) for o in org_ids) if oid is not None]
        if not ids:
            return 0
        async for session in self._session_factory():
            result = await session.execute(
                delete(OrganizationModel).where(OrganizationModel.id.in_(ids))
            )
            await session.commit()
            logger.info("organizations_deleted", count=result.rowcount)
            return result.rowcount

    # ── Churn ───────────────────────────────────────────────────────────────

    async def log_churn_reason(
        self, org_id: str, reason: str, details: str | None, health_score: int | None
    ) -> ChurnRecord:
        async for session in self._session_factory():
            model = ChurnReasonModel(
                organization_id=as_uuid(org_id),
                reason=reason,
                details=details or None,
                health_score_at_churn=health_score,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("churn_reason_logged", org_id=org_id, reason=reason)
            return ChurnRecord(
                id=str(model.id),
                org_id=org_id,
                reason=model.reason,
                details=model.details,
                health_score_at_churn=model.health_score_at_churn,
                created_at=model.created_at,
            )

    async def list_recent_churns(self, limit: int = 20) -> list[ChurnRecord]:
        async for session in self._session_factory():
            rows = (
                await session.execute(
                    select(ChurnReasonModel)
                    .order_by(ChurnReasonModel.created_at.desc())
                    .limit(limit)
                )
            ).scalars().all()
            org_ids = list({r.organization_id for r in rows})
            orgs = {}
            if org_ids:
                orgs = {
                    o.id: o
                    for o in (
                        await session.execute(
                            select(OrganizationModel).where(OrganizationModel.id.in_(org_ids))
                        )
                    ).scalars().all()
                }
            records = []
            for r in rows:
                org = orgs.get(r.organization_id)
                records.append(
                    ChurnRecord(
                        id=str(r.id),
                        org_id=str(r.organization_id),
                        org_name=org.name if org else "Unknown",
                        slug=org.slug if org else "",
                        reason=r.reason,
                        details=r.details,
                        health_score_at_churn=r.health_score_at_churn,
                        created_at=r.created_at,
                    )
                )
            return records

    async def churn_reasons(self) -> list[str]:
        """Reason of every logged churn."""
        async for session in self._session_factory():
            rows = await session.execute(select(ChurnReasonModel.reason))
            return [reason for (reason,) in rows.all()]

    # ── Snapshots for scoring ───────────────────────────────────────────────

    async def get_snapshots(
        self,
        statuses: tuple[str, ...] | None = None,
        org_ids: list[str] | None = None,
        now: datetime | None = None,
    ) -> list[OrgSnapshot]:
        """Activity snapshots for organizations by status or by id."""
        now = now or datetime.now(timezone.utc)
        since = _naive_utc(now - timedelta(days=30))
        stmt = select(OrganizationModel)
        if statuses is not None:
            stmt = stmt.where(OrganizationModel.subscription_status.in_(statuses))
        if org_ids is not None:
            ids = [oid for oid in (as_uuid(o) for o in org_ids) if oid is not None]
            stmt = stmt.where(OrganizationModel.id.in_(ids))

        async for session in self._session_factory():
            orgs = (await session.execute(stmt)).scalars().all()
            if not orgs:
                return []
            ids = [o.id for o in orgs]

            prop_rows = (
                await session.execute(
                    select(PropertyModel.id, PropertyModel.organization_id).where(
                        PropertyModel.organization_id.in_(ids)
                    )
                )
            ).all()
            props_by_org: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
            for prop_id, org_id in prop_rows:
                props_by_org[org_id].append(prop_id)
            prop_ids = [prop_id for prop_id, _ in prop_rows]

            async def properties_with(model) -> set[uuid.UUID]:
                if not prop_ids:
                    return set()
                rows = await session.execute(
                    select(model.property_id).where(model.property_id.in_(prop_ids)).distinct()
                )
                return {pid for (pid,) in rows.all()}

            with_faqs = await properties_with(FaqModel)
            with_content = await properties_with(ContentSectionModel)
            with_tokens = await properties_with(AccessTokenModel)

            units = await self._unit_counts(session, ids)
            owners = await self._owners(session, ids)

            usage = {
                org_id: used or 0
                for org_id, used in (
                    await session.execute(
                        select(AiUsageModel.organization_id, AiUsageModel.messages_used).where(
                            AiUsageModel.organization_id.in_(ids),
                            AiUsageModel.month == current_month(now),
                        )
                    )
                ).all()
            }

            chat_join = (
                select(PropertyModel.organization_id)
                .select_from(ChatSessionModel)
                .join(PropertyModel, ChatSessionModel.property_id == PropertyModel.id)
                .where(PropertyModel.organization_id.in_(ids))
                .group_by(PropertyModel.organization_id)
            )
            sessions_30d = dict(
                (
                    await session.execute(
                        chat_join.add_columns(func.count()).where(
                            ChatSessionModel.started_at >= since
                        )
                    )
                ).all()
            )
            last_chat = dict(
                (
                    await session.execute(
                        chat_join.add_columns(func.max(ChatSessionModel.started_at))
                    )
                ).all()
            )

            ticket_rows = (
                await session.execute(
                    select(PropertyModel.organization_id, TicketModel.status, TicketModel.priority)
                    .select_from(TicketModel)
                    .join(PropertyModel, TicketModel.property_id == PropertyModel.id)
                    .where(PropertyModel.organization_id.in_(ids))
                )
            ).all()
            tickets: dict[uuid.UUID, TicketCounts] = defaultdict(TicketCounts)
            for org_id, status, priority in ticket_rows:
                counts = tickets[org_id]
                counts.total += 1
                if status in OPEN_TICKET_STATUSES:
                    counts.open += 1
                    if priority in HIGH_TICKET_PRIORITIES:
                        counts.open_high_priority += 1
                elif status in RESOLVED_TICKET_STATUSES:
                    counts.resolved += 1

            return [
                OrgSnapshot(
                    org_id=str(o.id),
                    org_name=o.name,
                    slug=o.slug,
                    pricing_tier=o.pricing_tier,
                    subscription_status=o.subscription_status,
                    billing_period=o.billing_period,
                    stripe_subscription_id=o.stripe_subscription_id,
                    created_at=o.created_at,
                    trial_started_at=o.trial_started_at,
                    trial_ends_at=o.trial_ends_at,
                    onboarding_completed_at=o.onboarding_completed_at,
                    owner=owners.get(o.id),
                    properties=[
                        PropertySetup(
                            has_faqs=pid in with_faqs,
                            has_content=pid in with_content,
                            has_tokens=pid in with_tokens,
                        )
                        for pid in props_by_org.get(o.id, [])
                    ],
                    unit_count=units.get(o.id, 0),
                    messages_used=usage.get(o.id, 0),
                    chat_sessions_30d=sessions_30d.get(o.id, 0),
                    last_chat_at=last_chat.get(o.id),
                    tickets=tickets.get(o.id, TicketCounts()),
                )
                for o in orgs
            ]

    async def get_billing_inputs(self) -> tuple[list[BillingInput], dict[str, str | None]]:
        """Billing fields of every organization and the active CRM add-ons.

        Returns:
            (organizations, {org_id: crm billing period}) for active add-ons.
        """
        async for session in self._session_factory():
            orgs = (await session.execute(select(OrganizationModel))).scalars().all()
            ids = [o.id for o in orgs]
            units = await self._unit_counts(session, ids) if ids else {}
            crm = await self._active_crm(session)
            inputs = [
                BillingInput(
                    id=str(o.id),
                    pricing_tier=o.pricing_tier,
                    subscription_status=o.subscription_status,
                    billing_period=o.billing_period,
                    extra_properties_count=o.extra_properties_count or 0,
                    extra_units_count=o.extra_units_count or 0,
                    created_at=o.created_at,
                    unit_count=units.get(o.id, 0),
                )
                for o in orgs
            ]
            return inputs, {str(org_id): period for org_id, period in crm.items()}
