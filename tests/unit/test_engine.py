"""Unit tests for the financial derivation engine.

Margin, percentage, three-tier classification, alert flags and the
dashboard alert messages.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from millesbtp.config import ProfitabilityConfig
from millesbtp.finance.engine import (
    classify_profitability,
    derive_financials,
    describe_alerts,
    evaluate_alerts,
    has_admin_alert,
    has_amendment_alert,
    has_budget_alert,
    margin_percentage,
    preview_cost_impact,
    to_amount,
)
from millesbtp.models import CostType, ProfitabilityStatus

NOW = datetime(2024, 6, 1, 12, 0, 0)


class TestDeriveFinancials:
    """Worked examples for margin, percentage and status."""

    def test_watch_with_budget_alert(self):
        snapshot = derive_financials(Decimal("10000"), Decimal("9500"))

        assert snapshot.margin_estimated == Decimal("500.00")
        assert snapshot.margin_percentage == Decimal("5.00")
        assert snapshot.profitability_status == ProfitabilityStatus.WATCH
        assert snapshot.has_budget_alert is True

    def test_over_budget_is_at_risk(self):
        snapshot = derive_financials(Decimal("10000"), Decimal("11000"))

        assert snapshot.margin_estimated == Decimal("-1000.00")
        assert snapshot.margin_percentage == Decimal("-10.00")
        assert snapshot.profitability_status == ProfitabilityStatus.AT_RISK
        assert snapshot.has_budget_alert is True

    def test_half_consumed_is_profitable(self):
        snapshot = derive_financials(Decimal("10000"), Decimal("5000"))

        assert snapshot.margin_percentage == Decimal("50.00")
        assert snapshot.profitability_status == ProfitabilityStatus.PROFITABLE
        assert snapshot.has_budget_alert is False

    def test_zero_budget_zero_costs_is_profitable(self):
        snapshot = derive_financials(0, 0)

        assert snapshot.margin_estimated == Decimal("0.00")
        assert snapshot.margin_percentage == Decimal("0.00")
        assert snapshot.profitability_status == ProfitabilityStatus.PROFITABLE
        assert snapshot.has_budget_alert is False

    def test_zero_budget_with_costs_is_at_risk(self):
        snapshot = derive_financials(0, Decimal("100"))

        assert snapshot.margin_percentage == Decimal("0.00")
        assert snapshot.profitability_status == ProfitabilityStatus.AT_RISK
        assert snapshot.has_budget_alert is True

    def test_estimated_costs_never_affect_margin(self):
        snapshot = derive_financials(Decimal("10000"), Decimal("1000"), Decimal("50000"))

        assert snapshot.costs_estimated == Decimal("50000.00")
        assert snapshot.margin_estimated == Decimal("9000.00")
        assert snapshot.has_budget_alert is False

    def test_accepts_strings_and_floats(self):
        snapshot = derive_financials("1000", 250.5)

        assert snapshot.budget_initial == Decimal("1000.00")
        assert snapshot.costs_committed == Decimal("250.50")
        assert snapshot.margin_estimated == Decimal("749.50")

    @pytest.mark.parametrize(
        ("budget", "committed", "expected"),
        [
            (Decimal("100"), Decimal("95"), ProfitabilityStatus.WATCH),  # exactly 5%
            (Decimal("100"), Decimal("85"), ProfitabilityStatus.PROFITABLE),  # exactly 15%
            (Decimal("100"), Decimal("95.01"), ProfitabilityStatus.AT_RISK),
            (Decimal("100"), Decimal("85.01"), ProfitabilityStatus.WATCH),
            (Decimal("100"), Decimal("100"), ProfitabilityStatus.AT_RISK),
            (Decimal("10000"), Decimal("9500.40"), ProfitabilityStatus.AT_RISK),  # 4.996%
            (Decimal("10000"), Decimal("8500.40"), ProfitabilityStatus.WATCH),  # 14.996%
        ],
    )
    def test_threshold_tie_breaks(self, budget, committed, expected):
        assert derive_financials(budget, committed).profitability_status == expected

    def test_status_uses_exact_ratio_but_stores_rounded_percentage(self):
        snapshot = derive_financials(Decimal("10000"), Decimal("9500.40"))

        assert snapshot.margin_percentage == Decimal("5.00")
        assert snapshot.profitability_status == ProfitabilityStatus.AT_RISK


class TestPercentage:
    def test_rounds_half_up(self):
        # 1/3 of margin -> 33.333... -> 33.33 ; 2/3 -> 66.666... -> 66.67
        assert margin_percentage(Decimal("3"), Decimal("1")) == Decimal("33.33")
        assert margin_percentage(Decimal("3"), Decimal("2")) == Decimal("66.67")

    def test_zero_budget_is_zero(self):
        assert margin_percentage(Decimal("0"), Decimal("0")) == Decimal("0.00")

    def test_to_amount_quantizes(self):
        assert to_amount("12.345") == Decimal("12.35")
        assert to_amount(None) == Decimal("0.00")


class TestClassification:
    def test_negative_margin_wins_over_percentage(self):
        status = classify_profitability(Decimal("-1"), Decimal("50"), Decimal("100"))
        assert status == ProfitabilityStatus.AT_RISK

    def test_custom_thresholds(self):
        thresholds = ProfitabilityConfig(
            at_risk_below_pct=Decimal("10"), watch_below_pct=Decimal("20")
        )
        status = classify_profitability(
            Decimal("8"), Decimal("8"), Decimal("100"), thresholds=thresholds
        )
        assert status == ProfitabilityStatus.AT_RISK


class TestBudgetAlert:
    @pytest.mark.parametrize(
        ("committed", "expected"),
        [
            (Decimal("9000"), False),  # exactly 90% is not above
            (Decimal("9000.01"), True),
            (Decimal("10000"), True),
            (Decimal("12000"), True),
            (Decimal("0"), False),
        ],
    )
    def test_ratio(self, committed, expected):
        assert has_budget_alert(Decimal("10000"), committed) is expected


class TestAmendmentAlert:
    def test_pending_for_eight_days_alerts(self):
        assert has_amendment_alert([NOW - timedelta(days=8)], now=NOW) is True

    def test_pending_for_three_days_does_not_alert(self):
        assert has_amendment_alert([NOW - timedelta(days=3)], now=NOW) is False

    def test_exactly_seven_days_does_not_alert(self):
        assert has_amendment_alert([NOW - timedelta(days=7)], now=NOW) is False

    def test_no_pending_amendments(self):
        assert has_amendment_alert([], now=NOW) is False

    def test_any_old_amendment_is_enough(self):
        requested = [NOW - timedelta(days=1), NOW - timedelta(days=30)]
        assert has_amendment_alert(requested, now=NOW) is True


class TestAdminAlert:
    def test_planned_end_yesterday(self):
        assert has_admin_alert("active", None, NOW - timedelta(days=1), now=NOW) is True

    def test_planned_end_next_month(self):
        assert has_admin_alert("active", None, NOW + timedelta(days=30), now=NOW) is False

    def test_only_active_worksites(self):
        assert has_admin_alert("completed", None, NOW - timedelta(days=1), now=NOW) is False
        assert has_admin_alert("archived", None, NOW - timedelta(days=1), now=NOW) is False

    def test_no_end_date_started_long_ago(self):
        start = NOW - timedelta(days=200)
        assert has_admin_alert("active", start, None, now=NOW) is True

    def test_no_end_date_recent_start(self):
        start = NOW - timedelta(days=100)
        assert has_admin_alert("active", start, None, now=NOW) is False

    def test_planned_end_takes_precedence_over_start(self):
        start = NOW - timedelta(days=400)
        assert has_admin_alert("active", start, NOW + timedelta(days=5), now=NOW) is False

    def test_no_dates(self):
        assert has_admin_alert("active", None, None, now=NOW) is False


class TestEvaluateAlerts:
    def test_all_flags(self):
        flags = evaluate_alerts(
            budget=Decimal("1000"),
            committed=Decimal("950"),
            status="active",
            start_date=None,
            planned_end_date=NOW - timedelta(days=1),
            pending_requested_at=[NOW - timedelta(days=10)],
            now=NOW,
        )

        assert flags.has_budget_alert
        assert flags.has_amendment_alert
        assert flags.has_admin_alert

    def test_quiet_worksite(self):
        flags = evaluate_alerts(
            budget=Decimal("1000"),
            committed=Decimal("100"),
            status="active",
            start_date=NOW - timedelta(days=10),
            planned_end_date=None,
            pending_requested_at=[],
            now=NOW,
        )

        assert not (flags.has_budget_alert or flags.has_amendment_alert or flags.has_admin_alert)


class TestPreviewCostImpact:
    def test_committed_cost_changes_status(self):
        preview = preview_cost_impact(Decimal("10000"), Decimal("8000"), Decimal("1500"))

        assert preview.current.profitability_status == ProfitabilityStatus.PROFITABLE
        assert preview.projected.costs_committed == Decimal("9500.00")
        assert preview.projected.profitability_status == ProfitabilityStatus.WATCH
        assert preview.status_changes is True

    def test_estimated_cost_leaves_margin_alone(self):
        preview = preview_cost_impact(
            Decimal("10000"), Decimal("8000"), Decimal("1500"), CostType.ESTIMATED
        )

        assert preview.projected.costs_estimated == Decimal("1500.00")
        assert preview.projected.margin_estimated == preview.current.margin_estimated
        assert preview.status_changes is False


class TestDescribeAlerts:
    def _worksite(self, **overrides):
        worksite = {
            "id": uuid4(),
            "name": "Maison Dupont",
            "client_name": "M. Dupont",
            "budget_initial": Decimal("10000"),
            "costs_committed": Decimal("9500"),
            "planned_end_date": None,
            "has_budget_alert": False,
            "has_amendment_alert": False,
            "has_admin_alert": False,
        }
        worksite.update(overrides)
        return worksite

    def test_budget_consumed_message(self):
        alerts = describe_alerts(self._worksite(has_budget_alert=True), now=NOW)

        assert len(alerts) == 1
        assert alerts[0].alert_type == "budget"
        assert alerts[0].message == "95% of budget consumed"
        assert alerts[0].client_name == "M. Dupont"

    def test_budget_exceeded_message(self):
        worksite = self._worksite(has_budget_alert=True, costs_committed=Decimal("11000"))
        alerts = describe_alerts(worksite, now=NOW, currency="EUR")

        assert alerts[0].message == "Budget exceeded by 1,000.00 EUR"

    def test_admin_messages(self):
        overdue = self._worksite(has_admin_alert=True, planned_end_date=NOW - timedelta(days=2))
        too_long = self._worksite(has_admin_alert=True)

        assert describe_alerts(overdue, now=NOW)[0].message == "Planned end date passed"
        assert describe_alerts(too_long, now=NOW)[0].message == (
            "Worksite active for more than 6 months"
        )

    def test_amendment_message(self):
        alerts = describe_alerts(self._worksite(has_amendment_alert=True), now=NOW)
        assert alerts[0].message == "Amendment(s) pending for more than 7 days"

    def test_no_flags_no_alerts(self):
        assert describe_alerts(self._worksite(), now=NOW) == []
