from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.errors import InvalidOperationError, NotFoundError
from community_lifecycle.community.types import AffiliateRecord, AffiliateStatus
from community_lifecycle.db.models.community_affiliates import CommunityAffiliate


def _to_record(affiliate: CommunityAffiliate) -> AffiliateRecord:
    return AffiliateRecord(
        id=affiliate.id,
        community_id=affiliate.community_id,
        user_id=affiliate.user_id,
        status=AffiliateStatus(affiliate.status),
        commission_rate_bps=affiliate.commission_rate_bps,
        amount_earned_cents=affiliate.amount_earned_cents,
        amount_paid_cents=affiliate.amount_paid_cents,
    )


class CommunityAffiliatesRepo:
    @staticmethod
    async def get_by_id(
        session: AsyncSession,
        affiliate_id: int,
        *,
        for_update: bool = False,
    ) -> AffiliateRecord | None:
        stmt = select(CommunityAffiliate).where(CommunityAffiliate.id == affiliate_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        affiliate = result.scalar_one_or_none()
        return _to_record(affiliate) if affiliate is not None else None

    @staticmethod
    async def increment_earnings(
        session: AsyncSession,
        *,
        affiliate_id: int,
        amount_earned_cents: int,
        amount_paid_cents: int,
        now_utc: datetime,
    ) -> AffiliateRecord:
        if amount_earned_cents < 0 or amount_paid_cents < 0:
            raise InvalidOperationError("affiliate earnings can only grow")

        stmt = (
            update(CommunityAffiliate)
            .where(CommunityAffiliate.id == affiliate_id)
            .values(
                amount_earned_cents=CommunityAffiliate.amount_earned_cents + amount_earned_cents,
                amount_paid_cents=CommunityAffiliate.amount_paid_cents + amount_paid_cents,
                updated_at=now_utc,
            )
            .returning(CommunityAffiliate)
            .execution_options(synchronize_session="fetch")
        )
        result = await session.execute(stmt)
        affiliate = result.scalar_one_or_none()
        if affiliate is None:
            raise NotFoundError(f"affiliate {affiliate_id} not found")
        return _to_record(affiliate)
