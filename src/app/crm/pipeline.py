"""Deal pipeline rules and dashboard metrics.

Pure functions over already-loaded deals:
- apply_stage_transition(): side effects of moving a deal between stages
- reopen_changes(): field changes that put a closed deal back in the pipeline
- compute_pipeline_metrics(): dashboard counts, values and conversion rates
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from src.app.crm.constants import (
    ACTIVE_STAGES,
    CLOSED_STAGES,
    DEMO_OR_LATER_STAGES,
    STAGE_PROBABILITY,
)
from src.app.crm.schemas import DealRead


def apply_stage_transition(
    deal: DealRead,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Return ``changes`` extended with stage-transition side effects.

    Closing a deal that has no ``closed_at`` yet stamps ``closed_at`` and
    forces probability to 100 (won) or 0 (lost), also when the deal was
    created closed and the stage is re-sent unchanged. When the deal leaves
    an open stage for a closed one, that open stage is kept in
    ``last_stage`` unless the caller already supplied it.
    """
    result = dict(changes)
    new_stage = result.get("stage")
    if new_stage not in CLOSED_STAGES:
        return result

    if deal.closed_at is None:
        result["closed_at"] = now or datetime.now(timezone.utc)
        result["probability"] = STAGE_PROBABILITY[new_stage]
    if deal.stage not in CLOSED_STAGES and "last_stage" not in result:
        result["last_stage"] = deal.stage
    return result


def reopen_changes(deal: DealRead) -> dict[str, Any]:
    """Field changes that re-open a closed deal.

    Raises:
        ValueError: If the deal is not in a closed stage.
    """
    if deal.stage not in CLOSED_STAGES:
        raise ValueError("Deal is not closed")
    return {
        "stage": deal.last_stage or "lead",
        "closed_at": None,
        "lost_reason": None,
        "last_stage": None,
        "probability": 10,
    }


class PipelineMetrics(BaseModel):
    """Dashboard metrics over the whole deal set."""

    total_deals: int = 0
    active_deals: int = 0
    won_deals: int = 0
    lost_deals: int = 0
    total_pipeline_value: float = 0.0
    weighted_pipeline_value: float = 0.0
    won_value: float = 0.0
    win_rate: int = 0
    demo_to_close_rate: int = 0
    avg_deal_value: float = 0.0
    stage_counts: dict[str, int] = Field(default_factory=dict)
    stage_values: dict[str, float] = Field(default_factory=dict)
    lost_reason_counts: dict[str, int] = Field(default_factory=dict)


def _percent(part: int, whole: int) -> int:
    """Whole percentage, halves rounded up; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def compute_pipeline_metrics(deals: Iterable[DealRead]) -> PipelineMetrics:
    """Aggregate pipeline metrics.

    Win rate is won / (won + lost). Demo-to-close rate is won deals over
    every deal that reached demo_scheduled or a later stage. Both are whole
    percentages; all values are rounded to cents.
    """
    deals = list(deals)
    active = [d for d in deals if d.stage not in CLOSED_STAGES]
    won = [d for d in deals if d.stage == "closed_won"]
    lost = [d for d in deals if d.stage == "closed_lost"]

    total_pipeline = sum(d.value or 0 for d in active)
    weighted = sum((d.value or 0) * (d.probability or 0) / 100 for d in active)
    won_value = sum(d.value or 0 for d in won)

    closed_count = len(won) + len(lost)
    win_rate = _percent(len(won), closed_count)

    demo_count = sum(1 for d in deals if d.stage in DEMO_OR_LATER_STAGES)
    demo_to_close = _percent(len(won), demo_count)

    stage_counts = {stage: 0 for stage in ACTIVE_STAGES}
    stage_values = {stage: 0.0 for stage in ACTIVE_STAGES}
    for d in active:
        stage_counts[d.stage] = stage_counts.get(d.stage, 0) + 1
        stage_values[d.stage] = round(stage_values.get(d.stage, 0.0) + (d.value or 0), 2)

    lost_reasons = Counter(d.lost_reason or "unknown" for d in lost)

    return PipelineMetrics(
        total_deals=len(deals),
        active_deals=len(active),
        won_deals=len(won),
        lost_deals=len(lost),
        total_pipeline_value=round(total_pipeline, 2),
        weighted_pipeline_value=round(weighted, 2),
        won_value=round(won_value, 2),
        win_rate=win_rate,
        demo_to_close_rate=demo_to_close,
        avg_deal_value=round(won_value / len(won), 2) if won else 0.0,
        stage_counts=stage_counts,
        stage_values=stage_values,
        lost_reason_counts=dict(lost_reasons.most_common()),
    )
