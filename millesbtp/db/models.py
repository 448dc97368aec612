"""SQLAlchemy async database models for MillesBTP.

Worksite financial columns are a cache maintained by recalculation; the
`version` column guards that cache against lost updates.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from millesbtp.utils.clock import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ClientModel(Base):
    """Customer of the contracting firm."""

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class WorksiteModel(Base):
    """Worksite (chantier): the root aggregate."""

    __tablename__ = "worksites"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    client_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), index=True
    )

    # General information
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    manager_name: Mapped[str | None] = mapped_column(Text)

    # Schedule
    start_date: Mapped[datetime | None] = mapped_column(DateTime)
    planned_end_date: Mapped[datetime | None] = mapped_column(DateTime)
    actual_end_date: Mapped[datetime | None] = mapped_column(DateTime)

    # Financials: budget is authoritative, the rest is derived
    budget_initial: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    costs_estimated: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    costs_committed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    margin_estimated: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    margin_percentage: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    profitability_status: Mapped[str] = mapped_column(
        Text, nullable=False, default="profitable"
    )

    # Alerts (recomputed, never user-set)
    has_budget_alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_amendment_alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_admin_alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", index=True)

    # Optimistic concurrency counter for the derived cache
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("budget_initial >= 0", name="check_budget_non_negative"),
        Index("idx_worksites_owner_created", "owner_id", "created_at"),
    )


class WorksiteCostModel(Base):
    """Itemized cost entry (ledger line) for a worksite."""

    __tablename__ = "worksite_costs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    worksite_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("worksites.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    category: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="committed")
    description: Mapped[str | None] = mapped_column(Text)
    reference: Mapped[str | None] = mapped_column(Text)
    cost_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_cost_amount_positive"),
        Index("idx_costs_worksite_type", "worksite_id", "type"),
    )


class AmendmentModel(Base):
    """Change order (avenant) awaiting or having received a decision."""

    __tablename__ = "amendments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    worksite_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("worksites.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    time_impact_hours: Mapped[int | None] = mapped_column(Integer)
    cost_impact: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime)
    decision_notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_amendments_worksite_status", "worksite_id", "status"),
    )


class WorksiteEventModel(Base):
    """Append-only timeline entry.

    The integer primary key doubles as insertion sequence for same-instant ties.
    """

    __tablename__ = "worksite_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    worksite_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("worksites.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # "metadata" is reserved on declarative classes
    payload: Mapped[dict | None] = mapped_column("metadata", JSON)

    event_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_events_worksite_date", "worksite_id", "event_date"),
    )
