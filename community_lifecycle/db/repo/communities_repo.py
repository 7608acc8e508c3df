from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.types import CommunityRecord
from community_lifecycle.db.models.communities import Community


def _to_record(community: Community) -> CommunityRecord:
    return CommunityRecord(id=community.id, slug=community.slug, name=community.name)


class CommunitiesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, community_id: int) -> CommunityRecord | None:
        community = await session.get(Community, community_id)
        return _to_record(community) if community is not None else None

    @staticmethod
    async def get_by_slug(session: AsyncSession, slug: str) -> CommunityRecord | None:
        stmt = select(Community).where(Community.slug == slug)
        result = await session.execute(stmt)
        community = result.scalar_one_or_none()
        return _to_record(community) if community is not None else None
