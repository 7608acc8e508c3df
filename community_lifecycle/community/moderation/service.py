from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from typing import Any

import structlog

from community_lifecycle.community.access import require_community_role
from community_lifecycle.community.errors import ModerationCaseNotFoundError
from community_lifecycle.community.events import record_domain_event
from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.types import (
    MODERATION_CASE_ENTITY,
    MODERATION_ROLES,
    CaseStatus,
    ModerationCaseRecord,
)
from community_lifecycle.db.repo import SQL_STORES
from community_lifecycle.db.transaction import transaction

logger = structlog.get_logger(__name__)


def _operations(metadata: dict[str, object]) -> dict[str, object]:
    operations = metadata.get("operations")
    if not isinstance(operations, dict):
        operations = {}
        metadata["operations"] = operations
    return operations


async def _require_case(
    session: Any,
    *,
    community_id: int,
    case_public_id: str,
    stores: CommunityStores,
) -> ModerationCaseRecord:
    case = await stores.moderation_cases.get_by_public_id(session, case_public_id, for_update=True)
    if case is None or case.community_id != community_id:
        raise ModerationCaseNotFoundError(f"moderation case {case_public_id!r} not found")
    return case


async def acknowledge_escalation(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    case_public_id: str,
    note: str | None = None,
    now_utc: datetime,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> ModerationCaseRecord:
    async with transaction(session):
        access = await require_community_role(
            session,
            community,
            actor_id=actor_id,
            allowed_roles=MODERATION_ROLES,
            actor_role=actor_role,
            stores=stores,
        )
        community_id = access.community.id
        case = await _require_case(
            session,
            community_id=community_id,
            case_public_id=case_public_id,
            stores=stores,
        )
        metadata = deepcopy(case.metadata)
        operations = _operations(metadata)
        acknowledgements = operations.get("acknowledgements")
        if not isinstance(acknowledgements, list):
            acknowledgements = []
        operations["acknowledgements"] = [
            *acknowledgements,
            {
                "acknowledged_by": actor_id,
                "acknowledged_at": now_utc.isoformat(),
                "note": note,
            },
        ]

        status = CaseStatus.IN_REVIEW if case.status == CaseStatus.PENDING else case.status
        updated = await stores.moderation_cases.apply_transition(
            session,
            case_id=case.id,
            status=status,
            metadata=metadata,
            escalated_at=case.escalated_at or now_utc,
            resolved_at=case.resolved_at,
            resolved_by=case.resolved_by,
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=MODERATION_CASE_ENTITY,
            entity_id=updated.public_id,
            event_type="community.escalation.acknowledged",
            payload={
                "community_id": community_id,
                "case_id": updated.public_id,
                "status": updated.status.value,
            },
            performed_by=actor_id,
            happened_at=now_utc,
        )

    return updated


async def resolve_incident(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    case_public_id: str,
    resolution_summary: str | None = None,
    follow_up: str | None = None,
    now_utc: datetime,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> ModerationCaseRecord:
    async with transaction(session):
        access = await require_community_role(
            session,
            community,
            actor_id=actor_id,
            allowed_roles=MODERATION_ROLES,
            actor_role=actor_role,
            stores=stores,
        )
        community_id = access.community.id
        case = await _require_case(
            session,
            community_id=community_id,
            case_public_id=case_public_id,
            stores=stores,
        )
        metadata = deepcopy(case.metadata)
        _operations(metadata)["resolution"] = {
            "summary": resolution_summary,
            "follow_up": follow_up,
            "resolved_by": actor_id,
            "resolved_at": now_utc.isoformat(),
        }
        updated = await stores.moderation_cases.apply_transition(
            session,
            case_id=case.id,
            status=CaseStatus.RESOLVED,
            metadata=metadata,
            escalated_at=case.escalated_at,
            resolved_at=now_utc,
            resolved_by=actor_id,
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=MODERATION_CASE_ENTITY,
            entity_id=updated.public_id,
            event_type="community.safety.resolved",
            payload={"community_id": community_id, "case_id": updated.public_id},
            performed_by=actor_id,
            happened_at=now_utc,
        )

    logger.info("moderation_case_resolved", community_id=community_id, case_id=updated.public_id)
    return updated


class CommunityModerationService:
    acknowledge_escalation = staticmethod(acknowledge_escalation)
    resolve_incident = staticmethod(resolve_incident)
