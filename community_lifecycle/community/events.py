from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.types import DomainEventRecord

logger = structlog.get_logger(__name__)


async def record_domain_event(
    session: Any,
    *,
    stores: CommunityStores,
    entity_type: str,
    entity_id: str,
    event_type: str,
    payload: dict[str, object],
    performed_by: int | None,
    happened_at: datetime,
) -> DomainEventRecord:
    event = await stores.events.record(
        session,
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        payload=payload,
        performed_by=performed_by,
        created_at=happened_at,
    )
    logger.info(
        "domain_event_recorded",
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        performed_by=performed_by,
    )
    return event
