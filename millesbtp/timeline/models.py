"""Typed event metadata.

Each event type has its own payload model, discriminated on `event_type`.
The discriminator lives in the event row's `event_type` column; the JSON
`metadata` column stores the remaining fields. Rows with an unrecognized
type (or metadata that no longer fits its model) load as GenericPayload.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PayloadValidationError


class CreationPayload(BaseModel):
    event_type: Literal["creation"] = "creation"
    budget_initial: Decimal = Decimal("0")


class CostAddedPayload(BaseModel):
    event_type: Literal["cost_added"] = "cost_added"
    cost_id: UUID | None = None
    amount: Decimal
    category: str
    type: str


class CostUpdatedPayload(BaseModel):
    event_type: Literal["cost_updated"] = "cost_updated"
    cost_id: UUID
    changed_fields: list[str] = Field(default_factory=list)


class CostDeletedPayload(BaseModel):
    event_type: Literal["cost_deleted"] = "cost_deleted"
    cost_id: UUID
    amount: Decimal | None = None
    category: str | None = None
    type: str | None = None


class AmendmentCreatedPayload(BaseModel):
    event_type: Literal["amendment_created"] = "amendment_created"
    amendment_id: UUID | None = None
    cost_impact: Decimal = Decimal("0")
    time_impact_hours: int | None = None


class AmendmentDecisionPayload(BaseModel):
    """Shared by approvals and rejections."""

    event_type: Literal["amendment_approved", "amendment_rejected"]
    amendment_id: UUID
    cost_impact: Decimal | None = None


class StatusChangedPayload(BaseModel):
    event_type: Literal["status_changed"] = "status_changed"
    previous_status: str
    new_status: str


class BudgetUpdatedPayload(BaseModel):
    event_type: Literal["budget_updated"] = "budget_updated"
    previous_budget: Decimal
    new_budget: Decimal


class GenericPayload(BaseModel):
    """Fallback for event types this version does not know about."""

    model_config = ConfigDict(extra="allow")

    event_type: str


KnownPayload = Annotated[
    Union[
        CreationPayload,
        CostAddedPayload,
        CostUpdatedPayload,
        CostDeletedPayload,
        AmendmentCreatedPayload,
        AmendmentDecisionPayload,
        StatusChangedPayload,
        BudgetUpdatedPayload,
    ],
    Field(discriminator="event_type"),
]

EventPayload = Union[KnownPayload, GenericPayload]

logger = logging.getLogger(__name__)

_PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "creation": CreationPayload,
    "cost_added": CostAddedPayload,
    "cost_updated": CostUpdatedPayload,
    "cost_deleted": CostDeletedPayload,
    "amendment_created": AmendmentCreatedPayload,
    "amendment_approved": AmendmentDecisionPayload,
    "amendment_rejected": AmendmentDecisionPayload,
    "status_changed": StatusChangedPayload,
    "budget_updated": BudgetUpdatedPayload,
}


def dump_payload(payload: BaseModel) -> dict[str, Any]:
    """JSON-safe metadata for storage (the type goes in its own column)."""
    return payload.model_dump(mode="json", exclude={"event_type"}, exclude_none=True)


def parse_event_payload(event_type: str, metadata: dict[str, Any] | None) -> EventPayload:
    data = dict(metadata or {})
    data["event_type"] = event_type

    model = _PAYLOAD_MODELS.get(event_type)
    if model is not None:
        try:
            return model.model_validate(data)
        except PayloadValidationError as exc:
            # Older rows may carry less metadata than the current model needs
            logger.debug(
                "Unreadable %s metadata (%d errors), using generic payload",
                event_type,
                exc.error_count(),
            )
    return GenericPayload.model_validate(data)


class TimelineEntry(BaseModel):
    """One event as read back from the timeline."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    worksite_id: UUID
    event_type: str
    title: str
    description: str | None = None
    payload: EventPayload
    event_date: datetime

    @classmethod
    def from_model(cls, event: Any) -> TimelineEntry:
        return cls(
            id=event.id,
            worksite_id=event.worksite_id,
            event_type=event.event_type,
            title=event.title,
            description=event.description,
            payload=parse_event_payload(event.event_type, event.payload),
            event_date=event.event_date,
        )
