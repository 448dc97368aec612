"""Tests for millesbtp.web.routes.dashboard and the health check."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from millesbtp.db.connection import get_db
from millesbtp.models import WorksiteAlert
from millesbtp.reporting import DashboardRow, DashboardSummary
from millesbtp.web.routes import health

HEADERS = {"X-User-Id": "user-1"}


def _summary(worksite_record):
    return DashboardSummary(
        total=1,
        profitable=0,
        watch=1,
        at_risk=0,
        total_budget=Decimal("10000.00"),
        total_committed=Decimal("9500.00"),
        total_margin=Decimal("500.00"),
        currency="EUR",
        alerts=[
            WorksiteAlert(
                worksite_id=worksite_record.id,
                worksite_name=worksite_record.name,
                client_name="M. Dupont",
                alert_type="budget",
                message="95% of budget consumed",
            )
        ],
        worksites=[DashboardRow(worksite=worksite_record, client_name="M. Dupont")],
        computed_at=datetime(2024, 6, 1, 12, 0, 0),
    )


class TestDashboard:
    def test_requires_actor(self, client):
        response = client.get("/api/dashboard")

        assert response.status_code == 401

    @patch("millesbtp.web.routes.dashboard.load_dashboard", new_callable=AsyncMock)
    def test_summary(self, mock_load, client, worksite_record):
        mock_load.return_value = _summary(worksite_record)

        response = client.get("/api/dashboard?status=watch&q=dupont", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert (body["total"], body["watch"]) == (1, 1)
        assert body["total_margin"] == "500.00"
        assert body["alerts"][0]["message"] == "95% of budget consumed"
        assert body["worksites"][0]["client_name"] == "M. Dupont"

        _, actor = mock_load.await_args.args
        assert actor == "user-1"
        assert mock_load.await_args.kwargs == {"status_filter": "watch", "search": "dupont"}

    def test_unknown_status_is_rejected(self, client):
        response = client.get("/api/dashboard?status=great", headers=HEADERS)

        assert response.status_code == 422


class TestHealth:
    def _client(self, session):
        app = FastAPI()
        app.include_router(health.router)

        async def override():
            yield session

        app.dependency_overrides[get_db] = override
        return TestClient(app)

    def test_ok(self):
        session = MagicMock()
        session.execute = AsyncMock(return_value=SimpleNamespace())

        response = self._client(session).get("/health")

        assert response.json() == {"status": "ok", "database": "connected"}

    def test_database_down(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("gone")))

        response = self._client(session).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["database"] == "disconnected"
