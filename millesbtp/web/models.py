"""Request/response models for the MillesBTP JSON API.

Input bodies reuse millesbtp.models (WorksiteCreate, CostEntryCreate, ...);
this module holds what only the HTTP surface needs.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from millesbtp.models import (
    CategoryBreakdown,
    CostCategory,
    ProfitabilityStatus,
    WorksiteAlert,
    WorksiteStatus,
)
from millesbtp.timeline.models import TimelineEntry


# ============================================================================
# Requests
# ============================================================================


class StatusChangeRequest(BaseModel):
    status: WorksiteStatus


class DecisionRequest(BaseModel):
    """Body of approve/reject calls."""

    notes: str | None = None


# ============================================================================
# Records
# ============================================================================


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: datetime


class WorksiteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID | None = None
    name: str
    code: str | None = None
    address: str
    type: str | None = None
    description: str | None = None
    manager_name: str | None = None
    start_date: datetime | None = None
    planned_end_date: datetime | None = None
    actual_end_date: datetime | None = None

    budget_initial: Decimal
    costs_committed: Decimal
    costs_estimated: Decimal
    margin_estimated: Decimal
    margin_percentage: Decimal
    profitability_status: ProfitabilityStatus

    has_budget_alert: bool
    has_amendment_alert: bool
    has_admin_alert: bool

    status: WorksiteStatus
    version: int
    created_at: datetime
    updated_at: datetime


class CostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    worksite_id: UUID
    category: CostCategory
    amount: Decimal
    type: str
    description: str | None = None
    reference: str | None = None
    cost_date: datetime


class AmendmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    worksite_id: UUID
    title: str
    description: str
    cost_impact: Decimal
    time_impact_hours: int | None = None
    status: str
    requested_at: datetime
    decided_at: datetime | None = None
    decision_notes: str | None = None


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    title: str
    description: str | None = None
    event_date: datetime


# ============================================================================
# Composite responses
# ============================================================================


class CostMutationResponse(BaseModel):
    worksite: WorksiteOut
    cost: CostOut | None = None
    event: EventOut | None = None


class AmendmentMutationResponse(BaseModel):
    worksite: WorksiteOut
    amendment: AmendmentOut
    event: EventOut | None = None


class RecalculationResponse(BaseModel):
    worksite: WorksiteOut
    changed_fields: list[str]


class WorksiteOverviewResponse(BaseModel):
    worksite: WorksiteOut
    client: ClientOut | None = None
    costs: list[CostOut]
    breakdown: list[CategoryBreakdown]
    amendments: list[AmendmentOut]
    timeline: list[TimelineEntry]


class DashboardWorksite(BaseModel):
    worksite: WorksiteOut
    client_name: str | None = None


class DashboardResponse(BaseModel):
    total: int
    profitable: int
    watch: int
    at_risk: int
    total_budget: Decimal
    total_committed: Decimal
    total_margin: Decimal
    currency: str
    alerts: list[WorksiteAlert]
    worksites: list[DashboardWorksite]
    computed_at: datetime
