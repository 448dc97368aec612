"""Append-only worksite event log."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from millesbtp.db import repository
from millesbtp.db.models import WorksiteEventModel
from millesbtp.errors import ValidationError
from millesbtp.timeline.models import TimelineEntry, dump_payload
from millesbtp.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class EventTimeline:
    """Record and read events for one actor.

    Events are inserted on the caller's session, so they commit or roll
    back together with the mutation they describe. There is no update or
    delete.
    """

    def __init__(self, session: AsyncSession, owner_id: str):
        self.session = session
        self.owner_id = owner_id
        self.events = repository.events(session)

    async def record(
        self,
        worksite_id: UUID,
        payload: BaseModel,
        title: str,
        description: str | None = None,
        event_date: datetime | None = None,
    ) -> WorksiteEventModel:
        if not title or not title.strip():
            raise ValidationError("Event title is required", field="title")

        event = WorksiteEventModel(
            worksite_id=worksite_id,
            owner_id=self.owner_id,
            event_type=payload.event_type,
            title=title.strip(),
            description=description,
            payload=dump_payload(payload),
            event_date=to_naive_utc(event_date) or utcnow(),
        )
        await self.events.insert(event)

        logger.debug("Recorded %s event %s on worksite %s", event.event_type, event.id, worksite_id)
        return event

    async def list(self, worksite_id: UUID) -> list[TimelineEntry]:
        """Most recent first; same-instant events by reverse insertion order."""
        rows = await self.events.list(
            self.owner_id,
            WorksiteEventModel.worksite_id == worksite_id,
            order_by=(WorksiteEventModel.event_date.desc(), WorksiteEventModel.id.desc()),
        )
        return [TimelineEntry.from_model(row) for row in rows]
