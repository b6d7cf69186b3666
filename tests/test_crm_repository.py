"""Unit tests for CrmRepository id handling against a recording session.

Tests cover:
- _prepare_changes blank, malformed and valid *_id values
- list_activities / list_reminders return nothing for malformed filter ids
- valid filter ids compile to equality predicates, never IS NULL
- create_deal stores a blank contact id as NULL
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.app.crm.repository import CrmRepository, _prepare_changes
from src.app.crm.schemas import DealCreate, ReminderFilter


class _RecordingSession:
    """Stands in for AsyncSession, keeping every executed statement."""

    def __init__(self) -> None:
        self.statements: list = []
        self.added: list = []

    async def execute(self, stmt):
        self.statements.append(stmt)
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        return result

    def add(self, model) -> None:
        self.added.append(model)

    async def commit(self) -> None:
        return None

    async def refresh(self, model) -> None:
        model.id = uuid.uuid4()
        model.created_at = datetime.now(timezone.utc)


@pytest.fixture
def session():
    return _RecordingSession()


@pytest.fixture
def repo(session):
    async def session_factory():
        yield session

    return CrmRepository(session_factory=session_factory)


def _sql(stmt) -> str:
    return str(stmt.compile())


# ── Change Preparation ───────────────────────────────────────────────────────


class TestPrepareChanges:
    def test_blank_id_clears_reference(self):
        assert _prepare_changes({"contact_id": "", "deal_id": "  "}) == {
            "contact_id": None,
            "deal_id": None,
        }

    def test_malformed_id_raises(self):
        with pytest.raises(ValueError, match="Invalid contact_id"):
            _prepare_changes({"contact_id": "not-a-uuid"})

    def test_valid_id_parsed_and_other_fields_untouched(self):
        cid = uuid.uuid4()
        prepared = _prepare_changes({"contact_id": str(cid), "title": ""})
        assert prepared == {"contact_id": cid, "title": ""}


# ── Filtered Listing ─────────────────────────────────────────────────────────


class TestListFilters:
    @pytest.mark.asyncio
    async def test_activities_malformed_deal_id_matches_nothing(self, repo, session):
        assert await repo.list_activities(deal_id="not-a-uuid") == []
        assert session.statements == []

    @pytest.mark.asyncio
    async def test_activities_malformed_contact_id_matches_nothing(self, repo, session):
        assert await repo.list_activities(contact_id="42") == []
        assert session.statements == []

    @pytest.mark.asyncio
    async def test_activities_valid_deal_id_filters_by_equality(self, repo, session):
        await repo.list_activities(deal_id=str(uuid.uuid4()))
        sql = _sql(session.statements[0])
        assert "activities.deal_id = " in sql
        assert "IS NULL" not in sql

    @pytest.mark.asyncio
    async def test_activities_unfiltered_has_no_id_predicate(self, repo, session):
        await repo.list_activities()
        sql = _sql(session.statements[0])
        assert "activities.deal_id" not in sql.split("FROM", 1)[1]

    @pytest.mark.asyncio
    async def test_reminders_malformed_deal_id_matches_nothing(self, repo, session):
        assert await repo.list_reminders(ReminderFilter(deal_id="bogus")) == []
        assert session.statements == []

    @pytest.mark.asyncio
    async def test_reminders_valid_contact_id_filters_by_equality(self, repo, session):
        await repo.list_reminders(ReminderFilter(contact_id=str(uuid.uuid4())))
        sql = _sql(session.statements[0])
        assert "reminders.contact_id = " in sql
        assert "IS NULL" not in sql


# ── Deal Creation ────────────────────────────────────────────────────────────


class TestCreateDeal:
    @pytest.mark.asyncio
    async def test_blank_contact_id_stored_as_null(self, repo, session):
        deal = await repo.create_deal(DealCreate.model_validate({"title": "X", "contactId": ""}))
        assert session.added[0].contact_id is None
        assert deal.contact_id is None
        assert deal.title == "X"

    @pytest.mark.asyncio
    async def test_malformed_contact_id_raises(self, repo, session):
        with pytest.raises(ValueError, match="Invalid contact_id"):
            await repo.create_deal(DealCreate(title="X", contact_id="not-a-uuid"))
        assert session.added == []
