from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.types import DomainEventRecord
from community_lifecycle.db.models.domain_events import DomainEvent


def _to_record(event: DomainEvent) -> DomainEventRecord:
    return DomainEventRecord(
        id=event.id,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        event_type=event.event_type,
        payload=dict(event.payload),
        performed_by=event.performed_by,
        created_at=event.created_at,
    )


class DomainEventsRepo:
    @staticmethod
    async def record(
        session: AsyncSession,
        *,
        entity_type: str,
        entity_id: str,
        event_type: str,
        payload: dict[str, object],
        performed_by: int | None,
        created_at: datetime,
    ) -> DomainEventRecord:
        event = DomainEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            payload=payload,
            performed_by=performed_by,
            created_at=created_at,
        )
        session.add(event)
        await session.flush()
        return _to_record(event)

    @staticmethod
    async def list_for_entity(
        session: AsyncSession,
        *,
        entity_type: str,
        entity_id: str,
    ) -> list[DomainEventRecord]:
        stmt = (
            select(DomainEvent)
            .where(
                DomainEvent.entity_type == entity_type,
                DomainEvent.entity_id == entity_id,
            )
            .order_by(DomainEvent.created_at.asc(), DomainEvent.id.asc())
        )
        result = await session.execute(stmt)
        return [_to_record(event) for event in result.scalars().all()]
