"""Tests for deal stage transitions and pipeline metrics."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.app.crm.constants import get_tier_value
from src.app.crm.pipeline import (
    apply_stage_transition,
    compute_pipeline_metrics,
    reopen_changes,
)
from src.app.crm.schemas import DealRead

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _deal(deal_id: str = "d1", **fields) -> DealRead:
    fields.setdefault("title", f"Deal {deal_id}")
    return DealRead(id=deal_id, **fields)


# ── Stage transitions ────────────────────────────────────────────────────────


class TestStageTransition:
    def test_no_stage_change_is_untouched(self):
        deal = _deal(stage="proposal", probability=40)
        changes = {"notes": "Sent pricing", "stage": "proposal"}
        assert apply_stage_transition(deal, changes, now=NOW) == changes

    def test_closing_won_stamps_closed_at_and_probability(self):
        deal = _deal(stage="negotiation", probability=80)
        result = apply_stage_transition(deal, {"stage": "closed_won", "probability": 55}, now=NOW)
        assert result["closed_at"] == NOW
        assert result["probability"] == 100
        assert result["last_stage"] == "negotiation"

    def test_closing_lost_sets_zero_probability(self):
        result = apply_stage_transition(_deal(stage="qualified"), {"stage": "closed_lost"}, now=NOW)
        assert result["probability"] == 0
        assert result["last_stage"] == "qualified"

    def test_caller_supplied_last_stage_is_kept(self):
        result = apply_stage_transition(
            _deal(stage="proposal"),
            {"stage": "closed_lost", "last_stage": "demo_scheduled"},
            now=NOW,
        )
        assert result["last_stage"] == "demo_scheduled"

    def test_switching_between_closed_stages_keeps_closed_at(self):
        deal = _deal(stage="closed_won", closed_at=NOW, last_stage="proposal")
        result = apply_stage_transition(deal, {"stage": "closed_lost"})
        assert "closed_at" not in result
        assert "probability" not in result
        assert "last_stage" not in result

    def test_created_closed_deal_stamped_on_unchanged_stage(self):
        deal = _deal(stage="closed_won", probability=10)
        result = apply_stage_transition(deal, {"stage": "closed_won"}, now=NOW)
        assert result["closed_at"] == NOW
        assert result["probability"] == 100
        assert "last_stage" not in result

    def test_moving_between_open_stages(self):
        result = apply_stage_transition(_deal(stage="lead"), {"stage": "qualified"}, now=NOW)
        assert result == {"stage": "qualified"}

    def test_input_changes_not_mutated(self):
        changes = {"stage": "closed_won"}
        apply_stage_transition(_deal(stage="lead"), changes, now=NOW)
        assert changes == {"stage": "closed_won"}


class TestReopen:
    def test_reopen_returns_to_last_stage(self):
        deal = _deal(stage="closed_lost", last_stage="proposal", lost_reason="price", closed_at=NOW)
        assert reopen_changes(deal) == {
            "stage": "proposal",
            "closed_at": None,
            "lost_reason": None,
            "last_stage": None,
            "probability": 10,
        }

    def test_reopen_without_last_stage_goes_to_lead(self):
        assert reopen_changes(_deal(stage="closed_won"))["stage"] == "lead"

    def test_open_deal_cannot_reopen(self):
        with pytest.raises(ValueError, match="Deal is not closed"):
            reopen_changes(_deal(stage="demo_scheduled"))


# ── Metrics ──────────────────────────────────────────────────────────────────


class TestPipelineMetrics:
    def test_empty_pipeline(self):
        metrics = compute_pipeline_metrics([])
        assert metrics.total_deals == 0
        assert metrics.win_rate == 0
        assert metrics.demo_to_close_rate == 0
        assert metrics.avg_deal_value == 0
        assert metrics.stage_counts == {
            "lead": 0,
            "qualified": 0,
            "demo_scheduled": 0,
            "proposal": 0,
            "negotiation": 0,
        }

    def test_counts_values_and_rates(self):
        deals = [
            _deal("a", stage="lead", value=100, probability=10),
            _deal("b", stage="proposal", value=200.5, probability=65),
            _deal("c", stage="closed_won", value=59),
            _deal("d", stage="closed_lost", value=30, lost_reason="price"),
            _deal("e", stage="closed_lost", lost_reason=None),
            _deal("f", stage="demo_scheduled", value=None, probability=50),
        ]

        metrics = compute_pipeline_metrics(deals)

        assert metrics.total_deals == 6
        assert metrics.active_deals == 3
        assert metrics.won_deals == 1
        assert metrics.lost_deals == 2
        assert metrics.total_pipeline_value == 300.5
        assert metrics.weighted_pipeline_value == pytest.approx(10 + 130.33, abs=0.01)
        assert metrics.won_value == 59
        assert metrics.avg_deal_value == 59
        # 1 won of 3 closed
        assert metrics.win_rate == 33
        # demo_scheduled, proposal and the three closed deals reached a demo
        assert metrics.demo_to_close_rate == 20
        assert metrics.stage_counts["proposal"] == 1
        assert metrics.stage_values["proposal"] == 200.5
        assert metrics.lost_reason_counts == {"price": 1, "unknown": 1}

    def test_rates_round_half_up(self):
        deals = [
            _deal("a", stage="closed_won"),
            _deal("b", stage="closed_won"),
            _deal("c", stage="closed_lost"),
        ]
        assert compute_pipeline_metrics(deals).win_rate == 67

        deals = [_deal("w", stage="closed_won")] + [
            _deal(f"l{i}", stage="closed_lost") for i in range(7)
        ]
        # 1/8 = 12.5%
        assert compute_pipeline_metrics(deals).win_rate == 13


def test_tier_value_lookup():
    assert get_tier_value("sapphire") == 59
    assert get_tier_value("diamond", "annual") == 4990
    assert get_tier_value("gold") == 0
    assert get_tier_value(None) == 0
