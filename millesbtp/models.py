"""MillesBTP Pydantic models for type-safe data validation.

Input models carry the shape of user actions. Business invariants
(positive amounts, date ordering, state transitions) are enforced by the
services and raise millesbtp.errors exceptions.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ProfitabilityStatus(str, Enum):
    """Three-tier classification derived from the margin percentage."""

    PROFITABLE = "profitable"
    WATCH = "watch"
    AT_RISK = "at_risk"


class WorksiteStatus(str, Enum):
    """Lifecycle status, independent of profitability."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class CostCategory(str, Enum):
    LABOR = "labor"
    MATERIALS = "materials"
    SUBCONTRACTING = "subcontracting"
    OTHER = "other"


class CostType(str, Enum):
    """Estimated (projected) vs committed (incurred) cost."""

    ESTIMATED = "estimated"
    COMMITTED = "committed"


class AmendmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventType(str, Enum):
    """Known timeline event types. Stored as plain text, so the set is open."""

    CREATION = "creation"
    COST_ADDED = "cost_added"
    COST_UPDATED = "cost_updated"
    COST_DELETED = "cost_deleted"
    AMENDMENT_CREATED = "amendment_created"
    AMENDMENT_APPROVED = "amendment_approved"
    AMENDMENT_REJECTED = "amendment_rejected"
    STATUS_CHANGED = "status_changed"
    BUDGET_UPDATED = "budget_updated"


COST_CATEGORY_LABELS = {
    CostCategory.LABOR: "Labor",
    CostCategory.MATERIALS: "Materials",
    CostCategory.SUBCONTRACTING: "Subcontracting",
    CostCategory.OTHER: "Other",
}


class ClientCreate(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class WorksiteCreate(BaseModel):
    """Fields accepted by the worksite creation form."""

    name: str
    address: str
    client_id: UUID | None = None
    code: str | None = None
    type: str | None = None  # "Construction", "Renovation", ...
    description: str | None = None
    manager_name: str | None = None
    start_date: datetime | None = None
    planned_end_date: datetime | None = None
    budget_initial: Decimal = Decimal("0")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Maison Dupont",
                "address": "12 rue des Lilas, Lyon",
                "code": "CH-2024-001",
                "type": "Renovation",
                "manager_name": "J. Martin",
                "start_date": "2024-03-01T00:00:00",
                "planned_end_date": "2024-09-30T00:00:00",
                "budget_initial": "85000.00",
            }
        }
    )


class WorksiteUpdate(BaseModel):
    """Direct edit of a worksite. Derived financial fields are not editable."""

    name: str | None = None
    address: str | None = None
    client_id: UUID | None = None
    code: str | None = None
    type: str | None = None
    description: str | None = None
    manager_name: str | None = None
    start_date: datetime | None = None
    planned_end_date: datetime | None = None
    actual_end_date: datetime | None = None
    budget_initial: Decimal | None = None


class CostEntryCreate(BaseModel):
    category: CostCategory
    amount: Decimal
    type: CostType = CostType.COMMITTED
    cost_date: datetime | None = None
    description: str | None = None
    reference: str | None = None  # Invoice, purchase order, ...


class CostEntryUpdate(BaseModel):
    category: CostCategory | None = None
    amount: Decimal | None = None
    type: CostType | None = None
    cost_date: datetime | None = None
    description: str | None = None
    reference: str | None = None


class AmendmentCreate(BaseModel):
    title: str
    description: str
    cost_impact: Decimal = Decimal("0")  # May be negative
    time_impact_hours: int | None = None


class FinancialSnapshot(BaseModel):
    """Output of the derivation engine for one worksite."""

    budget_initial: Decimal
    costs_committed: Decimal
    costs_estimated: Decimal = Decimal("0")
    margin_estimated: Decimal
    margin_percentage: Decimal
    profitability_status: ProfitabilityStatus
    has_budget_alert: bool


class AlertFlags(BaseModel):
    has_budget_alert: bool = False
    has_amendment_alert: bool = False
    has_admin_alert: bool = False


class WorksiteAlert(BaseModel):
    """A single alert line as displayed on the dashboard."""

    worksite_id: UUID
    worksite_name: str
    client_name: str | None = None
    alert_type: str  # "budget" | "amendment" | "admin"
    message: str


class CategoryBreakdown(BaseModel):
    category: CostCategory
    committed: Decimal = Decimal("0")
    estimated: Decimal = Decimal("0")

    @computed_field
    @property
    def total(self) -> Decimal:
        return self.committed + self.estimated


class CostImpactPreview(BaseModel):
    """What-if result shown before a cost is confirmed."""

    current: FinancialSnapshot
    projected: FinancialSnapshot
    status_changes: bool = Field(default=False)
