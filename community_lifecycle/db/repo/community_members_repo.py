from __future__ import annotations

from datetime import datetime

from sqlalchemy import Text, cast, func, literal_column, or_, select
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.errors import MembershipNotFoundError
from community_lifecycle.community.members.listing import MemberListQuery
from community_lifecycle.community.metadata import MemberMetadata
from community_lifecycle.community.types import (
    MemberOrderColumn,
    MemberPage,
    MemberRole,
    MemberStatus,
    MembershipRecord,
    SortOrder,
)
from community_lifecycle.db.models.community_members import CommunityMember


def _to_record(member: CommunityMember) -> MembershipRecord:
    return MembershipRecord(
        id=member.id,
        community_id=member.community_id,
        user_id=member.user_id,
        role=MemberRole(member.role),
        status=MemberStatus(member.status),
        joined_at=member.joined_at,
        updated_at=member.updated_at,
        left_at=member.left_at,
        metadata=MemberMetadata.from_dict(member.metadata_),
    )


def _left_at_for(status: MemberStatus, now_utc: datetime) -> datetime | None:
    return None if status == MemberStatus.ACTIVE else now_utc


def _search_clause(term: str):
    metadata_value = func.jsonb_path_query(
        CommunityMember.metadata_,
        literal_column("'lax $.*[*]'::jsonpath"),
        type_=JSONB,
    ).column_valued("metadata_value")
    rendered = metadata_value.op("#>>", return_type=Text)(literal_column("'{}'"))
    return or_(
        select(metadata_value).where(rendered.icontains(term, autoescape=True)).exists(),
        cast(CommunityMember.user_id, Text).contains(term, autoescape=True),
    )


def _list_conditions(community_id: int, query: MemberListQuery) -> list:
    conditions = [CommunityMember.community_id == community_id]
    if query.statuses is not None:
        conditions.append(CommunityMember.status.in_([status.value for status in query.statuses]))
    if query.roles is not None:
        conditions.append(CommunityMember.role.in_([role.value for role in query.roles]))
    if query.joined_after is not None:
        conditions.append(CommunityMember.joined_at >= query.joined_after)
    if query.joined_before is not None:
        conditions.append(CommunityMember.joined_at <= query.joined_before)
    if query.search is not None:
        conditions.append(_search_clause(query.search))
    return conditions


_ORDER_COLUMNS = {
    MemberOrderColumn.JOINED_AT: CommunityMember.joined_at,
    MemberOrderColumn.UPDATED_AT: CommunityMember.updated_at,
    MemberOrderColumn.LEFT_AT: CommunityMember.left_at,
}


class CommunityMembersRepo:
    @staticmethod
    async def _get_for_update(session: AsyncSession, *, community_id: int, user_id: int) -> CommunityMember:
        stmt = (
            select(CommunityMember)
            .where(
                CommunityMember.community_id == community_id,
                CommunityMember.user_id == user_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        member = result.scalar_one_or_none()
        if member is None:
            raise MembershipNotFoundError(f"membership {community_id}:{user_id} not found")
        return member

    @staticmethod
    async def find_membership(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        for_update: bool = False,
    ) -> MembershipRecord | None:
        stmt = select(CommunityMember).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        member = result.scalar_one_or_none()
        return _to_record(member) if member is not None else None

    @staticmethod
    async def ensure_membership(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        status: MemberStatus,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord:
        stmt = (
            insert(CommunityMember)
            .values(
                community_id=community_id,
                user_id=user_id,
                role=role.value,
                status=status.value,
                metadata_=metadata.to_dict(),
                joined_at=now_utc,
                updated_at=now_utc,
                left_at=_left_at_for(status, now_utc),
            )
            .on_conflict_do_nothing(index_elements=[CommunityMember.community_id, CommunityMember.user_id])
        )
        await session.execute(stmt)
        member = await CommunityMembersRepo._get_for_update(
            session,
            community_id=community_id,
            user_id=user_id,
        )
        return _to_record(member)

    @staticmethod
    async def update_role(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = await CommunityMembersRepo._get_for_update(session, community_id=community_id, user_id=user_id)
        member.role = role.value
        member.updated_at = now_utc
        await session.flush()
        return _to_record(member)

    @staticmethod
    async def update_status(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        status: MemberStatus,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = await CommunityMembersRepo._get_for_update(session, community_id=community_id, user_id=user_id)
        if member.status != status.value:
            member.status = status.value
            member.left_at = _left_at_for(status, now_utc)
        member.updated_at = now_utc
        await session.flush()
        return _to_record(member)

    @staticmethod
    async def update_metadata(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = await CommunityMembersRepo._get_for_update(session, community_id=community_id, user_id=user_id)
        member.metadata_ = metadata.to_dict()
        member.updated_at = now_utc
        await session.flush()
        return _to_record(member)

    @staticmethod
    async def mark_left(
        session: AsyncSession,
        *,
        community_id: int,
        user_id: int,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = await CommunityMembersRepo._get_for_update(session, community_id=community_id, user_id=user_id)
        member.status = MemberStatus.PENDING.value
        member.left_at = now_utc
        member.updated_at = now_utc
        await session.flush()
        return _to_record(member)

    @staticmethod
    async def list_by_community(
        session: AsyncSession,
        *,
        community_id: int,
        query: MemberListQuery,
    ) -> MemberPage:
        conditions = _list_conditions(community_id, query)

        count_stmt = select(func.count(CommunityMember.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)

        order_column = _ORDER_COLUMNS[query.order_by]
        if query.order == SortOrder.DESC:
            ordering = (order_column.desc().nulls_last(), CommunityMember.id.desc())
        else:
            ordering = (order_column.asc().nulls_last(), CommunityMember.id.asc())

        stmt = select(CommunityMember).where(*conditions).order_by(*ordering).offset(query.offset)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        result = await session.execute(stmt)
        return MemberPage(
            items=[_to_record(member) for member in result.scalars().all()],
            total=total,
            limit=query.limit,
            offset=query.offset,
        )
