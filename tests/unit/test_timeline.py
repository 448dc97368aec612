"""Tests for the event timeline and its typed payloads."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from millesbtp.db.models import WorksiteEventModel, WorksiteModel
from millesbtp.errors import ValidationError
from millesbtp.timeline import (
    AmendmentDecisionPayload,
    BudgetUpdatedPayload,
    CostAddedPayload,
    CreationPayload,
    EventTimeline,
    StatusChangedPayload,
    parse_event_payload,
)
from millesbtp.timeline.models import GenericPayload, dump_payload

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest_asyncio.fixture()
async def worksite(db_session, owner_id) -> WorksiteModel:
    worksite = WorksiteModel(owner_id=owner_id, name="Garage Leroy", address="8 avenue Foch")
    db_session.add(worksite)
    await db_session.flush()
    return worksite


@pytest.fixture
def timeline(db_session, owner_id) -> EventTimeline:
    return EventTimeline(db_session, owner_id)


class TestPayloads:
    def test_dump_keeps_type_out_of_metadata(self):
        payload = CostAddedPayload(amount=Decimal("150.00"), category="labor", type="committed")

        assert dump_payload(payload) == {
            "amount": "150.00",
            "category": "labor",
            "type": "committed",
        }

    def test_parse_known_type(self):
        payload = parse_event_payload(
            "status_changed", {"previous_status": "active", "new_status": "completed"}
        )

        assert isinstance(payload, StatusChangedPayload)
        assert payload.new_status == "completed"

    def test_decision_payload_covers_both_outcomes(self):
        amendment_id = str(uuid4())
        approved = parse_event_payload("amendment_approved", {"amendment_id": amendment_id})
        rejected = parse_event_payload("amendment_rejected", {"amendment_id": amendment_id})

        assert isinstance(approved, AmendmentDecisionPayload)
        assert approved.event_type == "amendment_approved"
        assert rejected.event_type == "amendment_rejected"

    def test_unknown_type_falls_back_to_generic(self):
        payload = parse_event_payload("site_visit", {"inspector": "J. Martin"})

        assert isinstance(payload, GenericPayload)
        assert payload.event_type == "site_visit"
        assert payload.model_extra == {"inspector": "J. Martin"}

    def test_incomplete_metadata_falls_back_to_generic(self):
        # Rows written before the payload model gained required fields
        payload = parse_event_payload("budget_updated", {"new_budget": "5000"})

        assert isinstance(payload, GenericPayload)
        assert payload.event_type == "budget_updated"

    def test_missing_metadata(self):
        payload = parse_event_payload("creation", None)

        assert isinstance(payload, CreationPayload)
        assert payload.budget_initial == Decimal("0")


@pytest.mark.asyncio
async def test_record_and_read_back(timeline, worksite):
    await timeline.record(
        worksite.id,
        BudgetUpdatedPayload(previous_budget=Decimal("1000"), new_budget=Decimal("1500")),
        title="Budget updated",
        description="From 1,000.00 EUR to 1,500.00 EUR",
        event_date=NOW,
    )

    entries = await timeline.list(worksite.id)

    assert len(entries) == 1
    entry = entries[0]
    assert entry.event_type == "budget_updated"
    assert entry.title == "Budget updated"
    assert isinstance(entry.payload, BudgetUpdatedPayload)
    assert entry.payload.new_budget == Decimal("1500")


@pytest.mark.asyncio
async def test_record_requires_title(timeline, worksite):
    with pytest.raises(ValidationError):
        await timeline.record(worksite.id, CreationPayload(), title="  ")


@pytest.mark.asyncio
async def test_most_recent_first_with_insertion_tie_break(timeline, worksite):
    await timeline.record(worksite.id, CreationPayload(), title="Created", event_date=NOW)
    await timeline.record(
        worksite.id,
        StatusChangedPayload(previous_status="active", new_status="completed"),
        title="Same instant, later insert",
        event_date=NOW + timedelta(hours=1),
    )
    await timeline.record(
        worksite.id,
        StatusChangedPayload(previous_status="completed", new_status="active"),
        title="Same instant, last insert",
        event_date=NOW + timedelta(hours=1),
    )

    titles = [entry.title for entry in await timeline.list(worksite.id)]

    assert titles == ["Same instant, last insert", "Same instant, later insert", "Created"]


@pytest.mark.asyncio
async def test_unknown_rows_are_still_listed(db_session, timeline, worksite, owner_id):
    db_session.add(
        WorksiteEventModel(
            worksite_id=worksite.id,
            owner_id=owner_id,
            event_type="site_visit",
            title="Site visit",
            payload={"inspector": "J. Martin"},
            event_date=NOW,
        )
    )
    await db_session.flush()

    entries = await timeline.list(worksite.id)

    assert isinstance(entries[0].payload, GenericPayload)


@pytest.mark.asyncio
async def test_other_owner_sees_nothing(db_session, timeline, worksite):
    await timeline.record(worksite.id, CreationPayload(), title="Created", event_date=NOW)

    assert await EventTimeline(db_session, "someone-else").list(worksite.id) == []
