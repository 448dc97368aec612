"""Shared fixtures for route tests: a mocked WorksiteService and record stand-ins."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from millesbtp.web.dependencies import get_sessions, get_worksite_service
from millesbtp.web.errors import register_exception_handlers
from millesbtp.web.routes import amendments, clients, costs, dashboard, worksites

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def worksite_record():
    return SimpleNamespace(
        id=uuid4(),
        client_id=None,
        name="Maison Dupont",
        code="CH-2024-001",
        address="12 rue des Lilas",
        type="Renovation",
        description=None,
        manager_name=None,
        start_date=None,
        planned_end_date=None,
        actual_end_date=None,
        budget_initial=Decimal("10000.00"),
        costs_committed=Decimal("9500.00"),
        costs_estimated=Decimal("0.00"),
        margin_estimated=Decimal("500.00"),
        margin_percentage=Decimal("5.00"),
        profitability_status="watch",
        has_budget_alert=True,
        has_amendment_alert=False,
        has_admin_alert=False,
        status="active",
        version=2,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.fixture
def cost_record(worksite_record):
    return SimpleNamespace(
        id=uuid4(),
        worksite_id=worksite_record.id,
        category="labor",
        amount=Decimal("9500.00"),
        type="committed",
        description="Masonry team",
        reference=None,
        cost_date=NOW,
    )


@pytest.fixture
def amendment_record(worksite_record):
    return SimpleNamespace(
        id=uuid4(),
        worksite_id=worksite_record.id,
        title="Extra window",
        description="Second kitchen window",
        cost_impact=Decimal("2000.00"),
        time_impact_hours=6,
        status="pending",
        requested_at=NOW,
        decided_at=None,
        decision_notes=None,
    )


@pytest.fixture
def event_record():
    return SimpleNamespace(
        id=7,
        event_type="cost_added",
        title="Cost added: Labor",
        description="Masonry team",
        event_date=NOW,
    )


@pytest.fixture
def mock_service():
    """WorksiteService stand-in; every coroutine method is an AsyncMock."""
    service = MagicMock()
    for name in (
        "create_client",
        "list_clients",
        "create_worksite",
        "update_worksite",
        "change_status",
        "recalculate",
        "list_worksites",
        "get_overview",
        "add_cost",
        "update_cost",
        "delete_cost",
        "preview_cost",
        "create_amendment",
        "approve_amendment",
        "reject_amendment",
        "list_amendments",
        "list_costs",
        "timeline",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def app(mock_service):
    """Test FastAPI app with every API router and the core error handlers."""
    test_app = FastAPI()
    register_exception_handlers(test_app)
    for module in (clients, worksites, costs, amendments, dashboard):
        test_app.include_router(module.router)
    test_app.dependency_overrides[get_worksite_service] = lambda: mock_service
    test_app.dependency_overrides[get_sessions] = lambda: MagicMock()
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)
