from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.errors import ModerationCaseNotFoundError
from community_lifecycle.community.types import CaseStatus, ModerationCaseRecord
from community_lifecycle.db.models.moderation_cases import ModerationCase


def _to_record(case: ModerationCase) -> ModerationCaseRecord:
    return ModerationCaseRecord(
        id=case.id,
        public_id=case.public_id,
        community_id=case.community_id,
        status=CaseStatus(case.status),
        metadata=dict(case.metadata_),
        escalated_at=case.escalated_at,
        resolved_at=case.resolved_at,
        resolved_by=case.resolved_by,
    )


class ModerationCasesRepo:
    @staticmethod
    async def get_by_public_id(
        session: AsyncSession,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> ModerationCaseRecord | None:
        stmt = select(ModerationCase).where(ModerationCase.public_id == public_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        case = result.scalar_one_or_none()
        return _to_record(case) if case is not None else None

    @staticmethod
    async def apply_transition(
        session: AsyncSession,
        *,
        case_id: int,
        status: CaseStatus,
        metadata: dict[str, object],
        escalated_at: datetime | None,
        resolved_at: datetime | None,
        resolved_by: int | None,
        now_utc: datetime,
    ) -> ModerationCaseRecord:
        stmt = select(ModerationCase).where(ModerationCase.id == case_id).with_for_update()
        result = await session.execute(stmt)
        case = result.scalar_one_or_none()
        if case is None:
            raise ModerationCaseNotFoundError(f"moderation case {case_id} not found")

        case.status = status.value
        case.metadata_ = dict(metadata)
        case.escalated_at = escalated_at
        case.resolved_at = resolved_at
        case.resolved_by = resolved_by
        case.updated_at = now_utc
        await session.flush()
        return _to_record(case)
