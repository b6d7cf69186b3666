"""Trial onboarding progress."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from src.app.admin.constants import as_utc
from src.app.admin.schemas import OrgSnapshot, TrialCustomer, TrialMilestones, TrialStats

STALLED_AFTER_DAYS = 7
URGENT_DAYS_LEFT = 7
URGENT_MAX_MILESTONES = 3


def trial_milestones(snapshot: OrgSnapshot) -> TrialMilestones:
    return TrialMilestones(
        has_property=snapshot.property_count > 0,
        has_faq=any(p.has_faqs for p in snapshot.properties),
        has_content_section=any(p.has_content for p in snapshot.properties),
        has_first_chat=snapshot.last_chat_at is not None,
        onboarding_completed=snapshot.onboarding_completed_at is not None,
    )


def build_trial(snapshot: OrgSnapshot, now: datetime | None = None) -> TrialCustomer:
    now = now or datetime.now(timezone.utc)
    trial_end = as_utc(snapshot.trial_ends_at) if snapshot.trial_ends_at else now
    trial_start = as_utc(snapshot.trial_started_at) if snapshot.trial_started_at else now
    day = 86400

    milestones = trial_milestones(snapshot)
    last_activity = None
    if snapshot.last_chat_at is not None:
        last_activity = math.floor((now - as_utc(snapshot.last_chat_at)).total_seconds() / day)

    return TrialCustomer(
        org_id=snapshot.org_id,
        org_name=snapshot.org_name,
        slug=snapshot.slug,
        pricing_tier=snapshot.pricing_tier,
        trial_started_at=snapshot.trial_started_at,
        trial_ends_at=snapshot.trial_ends_at,
        days_remaining=max(0, math.ceil((trial_end - now).total_seconds() / day)),
        days_elapsed=max(0, math.floor((now - trial_start).total_seconds() / day)),
        onboarding_completed_at=snapshot.onboarding_completed_at,
        milestones=milestones,
        milestones_completed=milestones.completed,
        last_activity_days_ago=last_activity,
        owner=snapshot.owner,
    )


def build_trials(snapshots: list[OrgSnapshot], now: datetime | None = None) -> list[TrialCustomer]:
    """Trials sorted by days remaining, most urgent first."""
    trials = [build_trial(s, now) for s in snapshots]
    trials.sort(key=lambda t: t.days_remaining)
    return trials


def compute_trial_stats(trials: list[TrialCustomer]) -> TrialStats:
    if not trials:
        return TrialStats()
    avg = sum(t.milestones_completed for t in trials) / len(trials)
    return TrialStats(
        active_trials=len(trials),
        stalled_count=sum(
            1
            for t in trials
            if t.last_activity_days_ago is None or t.last_activity_days_ago >= STALLED_AFTER_DAYS
        ),
        avg_milestones=round(avg, 1),
        urgent_count=sum(
            1
            for t in trials
            if t.days_remaining <= URGENT_DAYS_LEFT
            and t.milestones_completed < URGENT_MAX_MILESTONES
        ),
    )
