"""Tests for millesbtp.web.routes.costs - worksite cost ledger routes."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from millesbtp.errors import NotFound, TransientStorageError, ValidationError
from millesbtp.finance.engine import preview_cost_impact
from millesbtp.worksites import MutationResult

HEADERS = {"X-User-Id": "user-1"}


def test_list_costs(client, mock_service, worksite_record, cost_record):
    mock_service.list_costs.return_value = [cost_record]

    response = client.get(f"/api/worksites/{worksite_record.id}/costs", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()[0]["amount"] == "9500.00"


def test_add_cost(client, mock_service, worksite_record, cost_record, event_record):
    mock_service.add_cost.return_value = MutationResult(
        worksite=worksite_record, record=cost_record, event=event_record
    )

    response = client.post(
        f"/api/worksites/{worksite_record.id}/costs",
        json={"category": "labor", "amount": "9500", "description": "Masonry team"},
        headers=HEADERS,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["worksite"]["profitability_status"] == "watch"
    assert body["cost"]["category"] == "labor"
    assert body["event"]["title"] == "Cost added: Labor"

    worksite_id, data = mock_service.add_cost.await_args.args
    assert worksite_id == worksite_record.id
    assert data.amount == Decimal("9500")
    assert data.type == "committed"


def test_add_cost_unknown_category_rejected_by_schema(client, mock_service, worksite_record):
    response = client.post(
        f"/api/worksites/{worksite_record.id}/costs",
        json={"category": "plumbing", "amount": "10"},
        headers=HEADERS,
    )

    assert response.status_code == 422
    mock_service.add_cost.assert_not_awaited()


def test_add_cost_non_positive_amount(client, mock_service, worksite_record):
    mock_service.add_cost.side_effect = ValidationError(
        "Amount must be greater than 0", field="amount"
    )

    response = client.post(
        f"/api/worksites/{worksite_record.id}/costs",
        json={"category": "labor", "amount": "0"},
        headers=HEADERS,
    )

    assert response.status_code == 422
    assert response.json()["field"] == "amount"


def test_preview(client, mock_service, worksite_record):
    mock_service.preview_cost.return_value = preview_cost_impact(
        Decimal("10000"), Decimal("8000"), Decimal("1500")
    )

    response = client.post(
        f"/api/worksites/{worksite_record.id}/costs/preview",
        json={"category": "materials", "amount": "1500"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["current"]["profitability_status"] == "profitable"
    assert body["projected"]["profitability_status"] == "watch"
    assert body["status_changes"] is True


def test_update_noop_has_no_event(client, mock_service, worksite_record, cost_record):
    mock_service.update_cost.return_value = MutationResult(
        worksite=worksite_record, record=cost_record
    )

    response = client.patch(
        f"/api/worksites/{worksite_record.id}/costs/{cost_record.id}",
        json={"amount": "9500"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["event"] is None


def test_delete_unknown_cost(client, mock_service, worksite_record):
    cost_id = uuid4()
    mock_service.delete_cost.side_effect = NotFound("Cost entry", cost_id)

    response = client.delete(
        f"/api/worksites/{worksite_record.id}/costs/{cost_id}", headers=HEADERS
    )

    assert response.status_code == 404
    assert str(cost_id) in response.json()["detail"]


def test_storage_outage_is_service_unavailable(client, mock_service, worksite_record):
    mock_service.list_costs.side_effect = TransientStorageError("connection refused")

    response = client.get(f"/api/worksites/{worksite_record.id}/costs", headers=HEADERS)

    assert response.status_code == 503
    assert response.json()["error"] == "TransientStorageError"
