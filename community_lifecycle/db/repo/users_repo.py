from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.types import UserRecord
from community_lifecycle.db.models.users import User


def _to_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
    )


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: int) -> UserRecord | None:
        user = await session.get(User, user_id)
        return _to_record(user) if user is not None else None

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> UserRecord | None:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await session.execute(stmt)
        user = result.scalar_one_or_none()
        return _to_record(user) if user is not None else None

    @staticmethod
    async def list_by_ids(session: AsyncSession, user_ids: Sequence[int]) -> list[UserRecord]:
        ids = tuple({int(user_id) for user_id in user_ids})
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(ids))
        result = await session.execute(stmt)
        return [_to_record(user) for user in result.scalars().all()]
