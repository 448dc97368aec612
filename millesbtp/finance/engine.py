"""Financial derivation engine for worksites.

Pure functions: budget and committed costs in, margin / profitability /
alert flags out. No I/O, safe to re-run on reconciliation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from millesbtp.config import ProfitabilityConfig, get_config
from millesbtp.models import (
    AlertFlags,
    CostImpactPreview,
    CostType,
    FinancialSnapshot,
    ProfitabilityStatus,
    WorksiteAlert,
    WorksiteStatus,
)
from millesbtp.utils.clock import to_naive_utc, utcnow

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
# Largest single amount accepted from users; leaves headroom in Numeric(12, 2) sums
MAX_AMOUNT = Decimal("99999999.99")


def to_amount(value: Any) -> Decimal:
    """Coerce a stored or user-supplied amount to a 2-decimal Decimal."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _exact_percentage(budget: Decimal, margin: Decimal) -> Decimal:
    if budget == ZERO:
        return ZERO
    return margin / budget * HUNDRED


def margin_percentage(budget: Decimal, margin: Decimal) -> Decimal:
    """margin / budget * 100 rounded to 0.01, defined as 0 when there is no budget."""
    return _exact_percentage(budget, margin).quantize(CENT, rounding=ROUND_HALF_UP)


def classify_profitability(
    margin: Decimal,
    percentage: Decimal,
    budget: Decimal,
    thresholds: ProfitabilityConfig | None = None,
) -> ProfitabilityStatus:
    """at_risk < 5% (or negative margin) <= watch < 15% <= profitable."""
    thresholds = thresholds or get_config().profitability

    if margin < ZERO:
        return ProfitabilityStatus.AT_RISK
    # Without a budget the percentage is meaningless; a non-negative margin is fine
    if budget == ZERO:
        return ProfitabilityStatus.PROFITABLE
    if percentage < thresholds.at_risk_below_pct:
        return ProfitabilityStatus.AT_RISK
    if percentage < thresholds.watch_below_pct:
        return ProfitabilityStatus.WATCH
    return ProfitabilityStatus.PROFITABLE


def has_budget_alert(
    budget: Decimal,
    committed: Decimal,
    thresholds: ProfitabilityConfig | None = None,
) -> bool:
    """Committed costs above 90% of budget, or over budget. Estimated costs never count."""
    thresholds = thresholds or get_config().profitability
    return committed > budget * thresholds.budget_alert_ratio or committed > budget


def derive_financials(
    budget: Any,
    committed: Any,
    estimated: Any = ZERO,
    thresholds: ProfitabilityConfig | None = None,
) -> FinancialSnapshot:
    """Compute margin, percentage, profitability status and budget alert."""
    thresholds = thresholds or get_config().profitability

    budget = to_amount(budget)
    committed = to_amount(committed)
    estimated = to_amount(estimated)

    margin = budget - committed
    # Classify on the exact ratio; only the stored value is rounded
    exact = _exact_percentage(budget, margin)

    return FinancialSnapshot(
        budget_initial=budget,
        costs_committed=committed,
        costs_estimated=estimated,
        margin_estimated=margin,
        margin_percentage=margin_percentage(budget, margin),
        profitability_status=classify_profitability(margin, exact, budget, thresholds),
        has_budget_alert=has_budget_alert(budget, committed, thresholds),
    )


def has_amendment_alert(
    pending_requested_at: Iterable[datetime],
    now: datetime | None = None,
    thresholds: ProfitabilityConfig | None = None,
) -> bool:
    """True if any pending amendment has waited more than the allowed days."""
    thresholds = thresholds or get_config().profitability
    now = to_naive_utc(now) or utcnow()
    limit = timedelta(days=thresholds.amendment_alert_days)
    return any(now - to_naive_utc(requested) > limit for requested in pending_requested_at)


def has_admin_alert(
    status: str,
    start_date: datetime | None,
    planned_end_date: datetime | None,
    now: datetime | None = None,
    thresholds: ProfitabilityConfig | None = None,
) -> bool:
    """Active worksite past its planned end, or running too long without one."""
    thresholds = thresholds or get_config().profitability
    now = to_naive_utc(now) or utcnow()

    if _status_value(status) != WorksiteStatus.ACTIVE.value:
        return False
    if planned_end_date is not None:
        return to_naive_utc(planned_end_date) < now
    if start_date is not None:
        return now - to_naive_utc(start_date) > timedelta(days=thresholds.admin_alert_days)
    return False


def evaluate_alerts(
    budget: Any,
    committed: Any,
    status: str,
    start_date: datetime | None,
    planned_end_date: datetime | None,
    pending_requested_at: Iterable[datetime],
    now: datetime | None = None,
    thresholds: ProfitabilityConfig | None = None,
) -> AlertFlags:
    thresholds = thresholds or get_config().profitability
    return AlertFlags(
        has_budget_alert=has_budget_alert(to_amount(budget), to_amount(committed), thresholds),
        has_amendment_alert=has_amendment_alert(pending_requested_at, now, thresholds),
        has_admin_alert=has_admin_alert(status, start_date, planned_end_date, now, thresholds),
    )


def preview_cost_impact(
    budget: Any,
    committed: Any,
    amount: Any,
    cost_type: CostType | str = CostType.COMMITTED,
    estimated: Any = ZERO,
    thresholds: ProfitabilityConfig | None = None,
) -> CostImpactPreview:
    """Snapshot before and after adding a cost, without touching anything."""
    thresholds = thresholds or get_config().profitability
    current = derive_financials(budget, committed, estimated, thresholds)

    amount = to_amount(amount)
    committed_after, estimated_after = current.costs_committed, current.costs_estimated
    if CostType(cost_type) == CostType.COMMITTED:
        committed_after += amount
    else:
        estimated_after += amount
    projected = derive_financials(budget, committed_after, estimated_after, thresholds)

    return CostImpactPreview(
        current=current,
        projected=projected,
        status_changes=current.profitability_status != projected.profitability_status,
    )


def describe_alerts(
    worksite: Any,
    now: datetime | None = None,
    currency: str | None = None,
) -> list[WorksiteAlert]:
    """Turn a worksite's alert flags into dashboard messages.

    Args:
        worksite: WorksiteModel, dict, or object with matching attributes
        now: Reference time for the admin message
        currency: Currency code used in amounts (defaults to config)
    """
    currency = currency or get_config().currency
    now = to_naive_utc(now) or utcnow()

    worksite_id = _get(worksite, "id")
    name = _get(worksite, "name")
    client_name = _get(worksite, "client_name")
    alerts: list[WorksiteAlert] = []

    def alert(alert_type: str, message: str) -> None:
        alerts.append(
            WorksiteAlert(
                worksite_id=worksite_id,
                worksite_name=name,
                client_name=client_name,
                alert_type=alert_type,
                message=message,
            )
        )

    if _get(worksite, "has_budget_alert"):
        budget = to_amount(_get(worksite, "budget_initial"))
        costs = to_amount(_get(worksite, "costs_committed"))
        if costs > budget:
            alert("budget", f"Budget exceeded by {_format_amount(costs - budget)} {currency}")
        else:
            consumed = (costs / budget * HUNDRED) if budget > ZERO else ZERO
            percent = consumed.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            alert("budget", f"{percent}% of budget consumed")

    if _get(worksite, "has_amendment_alert"):
        days = get_config().profitability.amendment_alert_days
        alert("amendment", f"Amendment(s) pending for more than {days} days")

    if _get(worksite, "has_admin_alert"):
        planned_end = to_naive_utc(_get(worksite, "planned_end_date"))
        if planned_end is not None and planned_end < now:
            alert("admin", "Planned end date passed")
        else:
            alert("admin", "Worksite active for more than 6 months")

    return alerts


def _get(source: Any, key: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def _status_value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


def _format_amount(value: Decimal) -> str:
    return f"{value:,.2f}"
