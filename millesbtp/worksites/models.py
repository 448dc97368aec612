"""Read models returned by the worksite service."""

from __future__ import annotations

from dataclasses import dataclass, field

from millesbtp.db.models import (
    AmendmentModel,
    ClientModel,
    WorksiteCostModel,
    WorksiteEventModel,
    WorksiteModel,
)
from millesbtp.models import CategoryBreakdown, CostCategory
from millesbtp.timeline.models import TimelineEntry


@dataclass(slots=True)
class WorksiteOverview:
    """Everything the worksite detail view re-reads after a mutation."""

    worksite: WorksiteModel
    client: ClientModel | None
    costs: list[WorksiteCostModel]
    breakdown: dict[CostCategory, CategoryBreakdown]
    amendments: list[AmendmentModel]
    timeline: list[TimelineEntry] = field(default_factory=list)


@dataclass(slots=True)
class MutationResult:
    """Outcome of a cost or amendment mutation: the touched record, the
    refreshed worksite and the event written for it (None for no-op edits)."""

    worksite: WorksiteModel
    record: WorksiteCostModel | AmendmentModel | None = None
    event: WorksiteEventModel | None = None
