from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from community_lifecycle.community.types import BillingInterval, TierRecord
from community_lifecycle.db.models.paywall_tiers import PaywallTier


class PaywallTiersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, tier_id: int) -> TierRecord | None:
        tier = await session.get(PaywallTier, tier_id)
        if tier is None:
            return None
        return TierRecord(
            id=tier.id,
            community_id=tier.community_id,
            billing_interval=BillingInterval(tier.billing_interval),
            price_cents=tier.price_cents,
            currency=tier.currency,
        )
