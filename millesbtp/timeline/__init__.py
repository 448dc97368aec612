"""Worksite event timeline."""

from millesbtp.timeline.models import (
    AmendmentCreatedPayload,
    AmendmentDecisionPayload,
    BudgetUpdatedPayload,
    CostAddedPayload,
    CostDeletedPayload,
    CostUpdatedPayload,
    CreationPayload,
    EventPayload,
    GenericPayload,
    StatusChangedPayload,
    TimelineEntry,
    parse_event_payload,
)
from millesbtp.timeline.service import EventTimeline

__all__ = [
    "AmendmentCreatedPayload",
    "AmendmentDecisionPayload",
    "BudgetUpdatedPayload",
    "CostAddedPayload",
    "CostDeletedPayload",
    "CostUpdatedPayload",
    "CreationPayload",
    "EventPayload",
    "EventTimeline",
    "GenericPayload",
    "StatusChangedPayload",
    "TimelineEntry",
    "parse_event_payload",
]
