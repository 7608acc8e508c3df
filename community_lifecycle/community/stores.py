"""Repository contracts consumed by the lifecycle services.

Every method takes the transaction handle as its first argument. The SQL
implementations in ``community_lifecycle.db.repo`` receive an ``AsyncSession``;
the in-memory ones in ``community_lifecycle.db.memory`` receive an
``InMemoryDatabase``. Services never look at which one they were given.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from community_lifecycle.community.commission import CommissionConfig
from community_lifecycle.community.members.listing import MemberListQuery
from community_lifecycle.community.metadata import MemberMetadata, SubscriptionMetadata
from community_lifecycle.community.types import (
    AffiliateRecord,
    CaseStatus,
    CommunityRecord,
    DomainEventRecord,
    MemberPage,
    MemberRole,
    MemberStatus,
    MembershipRecord,
    ModerationCaseRecord,
    SubscriptionRecord,
    TierRecord,
    UserRecord,
)


class CommunityRepository(Protocol):
    async def get_by_id(self, session: Any, community_id: int) -> CommunityRecord | None: ...

    async def get_by_slug(self, session: Any, slug: str) -> CommunityRecord | None: ...


class UserRepository(Protocol):
    async def get_by_id(self, session: Any, user_id: int) -> UserRecord | None: ...

    async def get_by_email(self, session: Any, email: str) -> UserRecord | None: ...

    async def list_by_ids(self, session: Any, user_ids: Sequence[int]) -> list[UserRecord]: ...


class MembershipRepository(Protocol):
    async def find_membership(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        for_update: bool = False,
    ) -> MembershipRecord | None: ...

    async def ensure_membership(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        status: MemberStatus,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord: ...

    async def update_role(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        now_utc: datetime,
    ) -> MembershipRecord: ...

    async def update_status(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        status: MemberStatus,
        now_utc: datetime,
    ) -> MembershipRecord: ...

    async def update_metadata(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord: ...

    async def mark_left(
        self,
        session: Any,
        *,
        community_id: int,
        user_id: int,
        now_utc: datetime,
    ) -> MembershipRecord: ...

    async def list_by_community(
        self,
        session: Any,
        *,
        community_id: int,
        query: MemberListQuery,
    ) -> MemberPage: ...


class TierRepository(Protocol):
    async def get_by_id(self, session: Any, tier_id: int) -> TierRecord | None: ...


class SubscriptionRepository(Protocol):
    async def get_by_public_id(
        self,
        session: Any,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> SubscriptionRecord | None: ...

    async def mark_active(
        self,
        session: Any,
        *,
        subscription_id: int,
        started_at: datetime,
        current_period_start: datetime,
        current_period_end: datetime | None,
        latest_payment_intent_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord: ...

    async def mark_past_due(
        self,
        session: Any,
        *,
        subscription_id: int,
        provider_status: str,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord: ...

    async def update_metadata(
        self,
        session: Any,
        *,
        subscription_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord: ...


class AffiliateRepository(Protocol):
    async def get_by_id(
        self,
        session: Any,
        affiliate_id: int,
        *,
        for_update: bool = False,
    ) -> AffiliateRecord | None: ...

    async def increment_earnings(
        self,
        session: Any,
        *,
        affiliate_id: int,
        amount_earned_cents: int,
        amount_paid_cents: int,
        now_utc: datetime,
    ) -> AffiliateRecord: ...


class DomainEventRepository(Protocol):
    async def record(
        self,
        session: Any,
        *,
        entity_type: str,
        entity_id: str,
        event_type: str,
        payload: dict[str, object],
        performed_by: int | None,
        created_at: datetime,
    ) -> DomainEventRecord: ...


class ModerationCaseRepository(Protocol):
    async def get_by_public_id(
        self,
        session: Any,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> ModerationCaseRecord | None: ...

    async def apply_transition(
        self,
        session: Any,
        *,
        case_id: int,
        status: CaseStatus,
        metadata: dict[str, object],
        escalated_at: datetime | None,
        resolved_at: datetime | None,
        resolved_by: int | None,
        now_utc: datetime,
    ) -> ModerationCaseRecord: ...


class MonetizationSettingsRepository(Protocol):
    async def get_commission_config(self, session: Any) -> CommissionConfig: ...


@dataclass(frozen=True, slots=True)
class CommunityStores:
    communities: CommunityRepository
    users: UserRepository
    members: MembershipRepository
    tiers: TierRepository
    subscriptions: SubscriptionRepository
    affiliates: AffiliateRepository
    events: DomainEventRepository
    moderation_cases: ModerationCaseRepository
    settings: MonetizationSettingsRepository
