from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.errors import NotFoundError
from community_lifecycle.community.metadata import SubscriptionMetadata
from community_lifecycle.community.types import SubscriptionRecord, SubscriptionStatus
from community_lifecycle.db.models.community_subscriptions import CommunitySubscription


def _to_record(subscription: CommunitySubscription) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=subscription.id,
        public_id=subscription.public_id,
        community_id=subscription.community_id,
        user_id=subscription.user_id,
        tier_id=subscription.tier_id,
        status=SubscriptionStatus(subscription.status),
        affiliate_id=subscription.affiliate_id,
        provider_status=subscription.provider_status,
        started_at=subscription.started_at,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        latest_payment_intent_id=subscription.latest_payment_intent_id,
        metadata=SubscriptionMetadata.from_dict(subscription.metadata_),
    )


class CommunitySubscriptionsRepo:
    @staticmethod
    async def _get_by_id_for_update(session: AsyncSession, subscription_id: int) -> CommunitySubscription:
        stmt = select(CommunitySubscription).where(CommunitySubscription.id == subscription_id).with_for_update()
        result = await session.execute(stmt)
        subscription = result.scalar_one_or_none()
        if subscription is None:
            raise NotFoundError(f"subscription {subscription_id} not found")
        return subscription

    @staticmethod
    async def get_by_public_id(
        session: AsyncSession,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> SubscriptionRecord | None:
        stmt = select(CommunitySubscription).where(CommunitySubscription.public_id == public_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        subscription = result.scalar_one_or_none()
        return _to_record(subscription) if subscription is not None else None

    @staticmethod
    async def mark_active(
        session: AsyncSession,
        *,
        subscription_id: int,
        started_at: datetime,
        current_period_start: datetime,
        current_period_end: datetime | None,
        latest_payment_intent_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = await CommunitySubscriptionsRepo._get_by_id_for_update(session, subscription_id)
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.provider_status = "active"
        subscription.started_at = started_at
        subscription.current_period_start = current_period_start
        subscription.current_period_end = current_period_end
        subscription.cancel_at_period_end = False
        subscription.latest_payment_intent_id = latest_payment_intent_id
        subscription.metadata_ = metadata.to_dict()
        subscription.updated_at = now_utc
        await session.flush()
        return _to_record(subscription)

    @staticmethod
    async def mark_past_due(
        session: AsyncSession,
        *,
        subscription_id: int,
        provider_status: str,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = await CommunitySubscriptionsRepo._get_by_id_for_update(session, subscription_id)
        subscription.status = SubscriptionStatus.PAST_DUE.value
        subscription.provider_status = provider_status
        subscription.metadata_ = metadata.to_dict()
        subscription.updated_at = now_utc
        await session.flush()
        return _to_record(subscription)

    @staticmethod
    async def update_metadata(
        session: AsyncSession,
        *,
        subscription_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = await CommunitySubscriptionsRepo._get_by_id_for_update(session, subscription_id)
        subscription.metadata_ = metadata.to_dict()
        subscription.updated_at = now_utc
        await session.flush()
        return _to_record(subscription)
