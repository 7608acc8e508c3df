"""In-process implementation of the repository contracts.

``InMemoryDatabase`` stands in for the ``AsyncSession``: it exposes the same
``in_transaction``/``begin``/``begin_nested`` trio so ``transaction()`` works
unchanged, and it snapshots every table on entry so a failed operation leaves
no partial writes behind. Rows are the frozen record types themselves.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import replace
from datetime import datetime, timezone

from community_lifecycle.community.commission import CommissionConfig
from community_lifecycle.community.errors import (
    InvalidOperationError,
    MembershipNotFoundError,
    ModerationCaseNotFoundError,
    NotFoundError,
)
from community_lifecycle.community.members.listing import MemberListQuery, apply_member_list_query
from community_lifecycle.community.metadata import MemberMetadata, SubscriptionMetadata
from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.types import (
    AffiliateRecord,
    AffiliateStatus,
    BillingInterval,
    CaseStatus,
    CommunityRecord,
    DomainEventRecord,
    MemberPage,
    MemberRole,
    MemberStatus,
    MembershipRecord,
    ModerationCaseRecord,
    SubscriptionRecord,
    SubscriptionStatus,
    TierRecord,
    UserRecord,
)
from community_lifecycle.core.config import get_settings

_TABLES = (
    "communities",
    "users",
    "members",
    "tiers",
    "subscriptions",
    "affiliates",
    "events",
    "moderation_cases",
    "settings",
)


class InMemoryDatabase:
    def __init__(self) -> None:
        self.communities: dict[int, CommunityRecord] = {}
        self.users: dict[int, UserRecord] = {}
        self.members: dict[int, MembershipRecord] = {}
        self.tiers: dict[int, TierRecord] = {}
        self.subscriptions: dict[int, SubscriptionRecord] = {}
        self.affiliates: dict[int, AffiliateRecord] = {}
        self.events: list[DomainEventRecord] = []
        self.moderation_cases: dict[int, ModerationCaseRecord] = {}
        self.settings: dict[str, dict[str, object]] = {}
        self._ids = itertools.count(1)
        self._depth = 0

    def next_id(self) -> int:
        return next(self._ids)

    def in_transaction(self) -> bool:
        return self._depth > 0

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[InMemoryDatabase]:
        snapshot = {name: deepcopy(getattr(self, name)) for name in _TABLES}
        self._depth += 1
        try:
            yield self
        except BaseException:
            for name, table in snapshot.items():
                setattr(self, name, table)
            raise
        finally:
            self._depth -= 1

    begin_nested = begin

    def add_community(self, *, slug: str, name: str | None = None) -> CommunityRecord:
        community = CommunityRecord(id=self.next_id(), slug=slug, name=name or slug.title())
        self.communities[community.id] = community
        return community

    def add_user(
        self,
        *,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        user = UserRecord(id=self.next_id(), email=email, first_name=first_name, last_name=last_name)
        self.users[user.id] = user
        return user

    def add_member(
        self,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole = MemberRole.MEMBER,
        status: MemberStatus = MemberStatus.ACTIVE,
        metadata: MemberMetadata | None = None,
        joined_at: datetime | None = None,
    ) -> MembershipRecord:
        joined_at = joined_at or datetime.now(timezone.utc)
        member = MembershipRecord(
            id=self.next_id(),
            community_id=community_id,
            user_id=user_id,
            role=role,
            status=status,
            joined_at=joined_at,
            updated_at=joined_at,
            left_at=None if status == MemberStatus.ACTIVE else joined_at,
            metadata=metadata or MemberMetadata(),
        )
        self.members[member.id] = member
        return member

    def add_tier(
        self,
        *,
        community_id: int,
        billing_interval: BillingInterval = BillingInterval.MONTHLY,
        price_cents: int = 0,
        currency: str = "USD",
    ) -> TierRecord:
        tier = TierRecord(
            id=self.next_id(),
            community_id=community_id,
            billing_interval=billing_interval,
            price_cents=price_cents,
            currency=currency,
        )
        self.tiers[tier.id] = tier
        return tier

    def add_affiliate(
        self,
        *,
        community_id: int,
        user_id: int,
        status: AffiliateStatus = AffiliateStatus.APPROVED,
        commission_rate_bps: int = 250,
    ) -> AffiliateRecord:
        affiliate = AffiliateRecord(
            id=self.next_id(),
            community_id=community_id,
            user_id=user_id,
            status=status,
            commission_rate_bps=commission_rate_bps,
            amount_earned_cents=0,
            amount_paid_cents=0,
        )
        self.affiliates[affiliate.id] = affiliate
        return affiliate

    def add_subscription(
        self,
        *,
        public_id: str,
        community_id: int,
        user_id: int,
        tier_id: int,
        status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE,
        affiliate_id: int | None = None,
        current_period_end: datetime | None = None,
        metadata: SubscriptionMetadata | None = None,
    ) -> SubscriptionRecord:
        subscription = SubscriptionRecord(
            id=self.next_id(),
            public_id=public_id,
            community_id=community_id,
            user_id=user_id,
            tier_id=tier_id,
            status=status,
            affiliate_id=affiliate_id,
            current_period_end=current_period_end,
            metadata=metadata or SubscriptionMetadata(),
        )
        self.subscriptions[subscription.id] = subscription
        return subscription

    def add_case(
        self,
        *,
        public_id: str,
        community_id: int,
        status: CaseStatus = CaseStatus.PENDING,
        metadata: dict[str, object] | None = None,
    ) -> ModerationCaseRecord:
        case = ModerationCaseRecord(
            id=self.next_id(),
            public_id=public_id,
            community_id=community_id,
            status=status,
            metadata=dict(metadata or {}),
        )
        self.moderation_cases[case.id] = case
        return case

    def set_setting(self, key: str, value: dict[str, object]) -> None:
        self.settings[key] = deepcopy(value)

    def events_for(self, entity_type: str, entity_id: str) -> list[DomainEventRecord]:
        return [
            event
            for event in self.events
            if event.entity_type == entity_type and event.entity_id == entity_id
        ]


class InMemoryCommunitiesRepo:
    @staticmethod
    async def get_by_id(db: InMemoryDatabase, community_id: int) -> CommunityRecord | None:
        return db.communities.get(community_id)

    @staticmethod
    async def get_by_slug(db: InMemoryDatabase, slug: str) -> CommunityRecord | None:
        return next((community for community in db.communities.values() if community.slug == slug), None)


class InMemoryUsersRepo:
    @staticmethod
    async def get_by_id(db: InMemoryDatabase, user_id: int) -> UserRecord | None:
        return db.users.get(user_id)

    @staticmethod
    async def get_by_email(db: InMemoryDatabase, email: str) -> UserRecord | None:
        normalized = email.strip().lower()
        return next((user for user in db.users.values() if user.email.lower() == normalized), None)

    @staticmethod
    async def list_by_ids(db: InMemoryDatabase, user_ids: Sequence[int]) -> list[UserRecord]:
        return [db.users[user_id] for user_id in dict.fromkeys(user_ids) if user_id in db.users]


def _find_member(db: InMemoryDatabase, community_id: int, user_id: int) -> MembershipRecord | None:
    return next(
        (
            member
            for member in db.members.values()
            if member.community_id == community_id and member.user_id == user_id
        ),
        None,
    )


def _require_member(db: InMemoryDatabase, community_id: int, user_id: int) -> MembershipRecord:
    member = _find_member(db, community_id, user_id)
    if member is None:
        raise MembershipNotFoundError(f"membership {community_id}:{user_id} not found")
    return member


def _save(table: dict, record):
    table[record.id] = record
    return record


class InMemoryMembersRepo:
    @staticmethod
    async def find_membership(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        for_update: bool = False,
    ) -> MembershipRecord | None:
        return _find_member(db, community_id, user_id)

    @staticmethod
    async def ensure_membership(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        status: MemberStatus,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord:
        existing = _find_member(db, community_id, user_id)
        if existing is not None:
            return existing
        member = MembershipRecord(
            id=db.next_id(),
            community_id=community_id,
            user_id=user_id,
            role=role,
            status=status,
            joined_at=now_utc,
            updated_at=now_utc,
            left_at=None if status == MemberStatus.ACTIVE else now_utc,
            metadata=metadata,
        )
        return _save(db.members, member)

    @staticmethod
    async def update_role(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        role: MemberRole,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = _require_member(db, community_id, user_id)
        return _save(db.members, replace(member, role=role, updated_at=now_utc))

    @staticmethod
    async def update_status(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        status: MemberStatus,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = _require_member(db, community_id, user_id)
        left_at = member.left_at
        if member.status != status:
            left_at = None if status == MemberStatus.ACTIVE else now_utc
        return _save(db.members, replace(member, status=status, left_at=left_at, updated_at=now_utc))

    @staticmethod
    async def update_metadata(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        metadata: MemberMetadata,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = _require_member(db, community_id, user_id)
        return _save(db.members, replace(member, metadata=metadata, updated_at=now_utc))

    @staticmethod
    async def mark_left(
        db: InMemoryDatabase,
        *,
        community_id: int,
        user_id: int,
        now_utc: datetime,
    ) -> MembershipRecord:
        member = _require_member(db, community_id, user_id)
        return _save(
            db.members,
            replace(member, status=MemberStatus.PENDING, left_at=now_utc, updated_at=now_utc),
        )

    @staticmethod
    async def list_by_community(
        db: InMemoryDatabase,
        *,
        community_id: int,
        query: MemberListQuery,
    ) -> MemberPage:
        members = [member for member in db.members.values() if member.community_id == community_id]
        return apply_member_list_query(members, query)


class InMemoryTiersRepo:
    @staticmethod
    async def get_by_id(db: InMemoryDatabase, tier_id: int) -> TierRecord | None:
        return db.tiers.get(tier_id)


def _require_subscription(db: InMemoryDatabase, subscription_id: int) -> SubscriptionRecord:
    subscription = db.subscriptions.get(subscription_id)
    if subscription is None:
        raise NotFoundError(f"subscription {subscription_id} not found")
    return subscription


class InMemorySubscriptionsRepo:
    @staticmethod
    async def get_by_public_id(
        db: InMemoryDatabase,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> SubscriptionRecord | None:
        return next(
            (subscription for subscription in db.subscriptions.values() if subscription.public_id == public_id),
            None,
        )

    @staticmethod
    async def mark_active(
        db: InMemoryDatabase,
        *,
        subscription_id: int,
        started_at: datetime,
        current_period_start: datetime,
        current_period_end: datetime | None,
        latest_payment_intent_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = _require_subscription(db, subscription_id)
        return _save(
            db.subscriptions,
            replace(
                subscription,
                status=SubscriptionStatus.ACTIVE,
                provider_status="active",
                started_at=started_at,
                current_period_start=current_period_start,
                current_period_end=current_period_end,
                cancel_at_period_end=False,
                latest_payment_intent_id=latest_payment_intent_id,
                metadata=metadata,
            ),
        )

    @staticmethod
    async def mark_past_due(
        db: InMemoryDatabase,
        *,
        subscription_id: int,
        provider_status: str,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = _require_subscription(db, subscription_id)
        return _save(
            db.subscriptions,
            replace(
                subscription,
                status=SubscriptionStatus.PAST_DUE,
                provider_status=provider_status,
                metadata=metadata,
            ),
        )

    @staticmethod
    async def update_metadata(
        db: InMemoryDatabase,
        *,
        subscription_id: int,
        metadata: SubscriptionMetadata,
        now_utc: datetime,
    ) -> SubscriptionRecord:
        subscription = _require_subscription(db, subscription_id)
        return _save(db.subscriptions, replace(subscription, metadata=metadata))


class InMemoryAffiliatesRepo:
    @staticmethod
    async def get_by_id(
        db: InMemoryDatabase,
        affiliate_id: int,
        *,
        for_update: bool = False,
    ) -> AffiliateRecord | None:
        return db.affiliates.get(affiliate_id)

    @staticmethod
    async def increment_earnings(
        db: InMemoryDatabase,
        *,
        affiliate_id: int,
        amount_earned_cents: int,
        amount_paid_cents: int,
        now_utc: datetime,
    ) -> AffiliateRecord:
        if amount_earned_cents < 0 or amount_paid_cents < 0:
            raise InvalidOperationError("affiliate earnings can only grow")
        affiliate = db.affiliates.get(affiliate_id)
        if affiliate is None:
            raise NotFoundError(f"affiliate {affiliate_id} not found")
        return _save(
            db.affiliates,
            replace(
                affiliate,
                amount_earned_cents=affiliate.amount_earned_cents + amount_earned_cents,
                amount_paid_cents=affiliate.amount_paid_cents + amount_paid_cents,
            ),
        )


class InMemoryDomainEventsRepo:
    @staticmethod
    async def record(
        db: InMemoryDatabase,
        *,
        entity_type: str,
        entity_id: str,
        event_type: str,
        payload: dict[str, object],
        performed_by: int | None,
        created_at: datetime,
    ) -> DomainEventRecord:
        event = DomainEventRecord(
            id=db.next_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            payload=deepcopy(payload),
            performed_by=performed_by,
            created_at=created_at,
        )
        db.events.append(event)
        return event


class InMemoryModerationCasesRepo:
    @staticmethod
    async def get_by_public_id(
        db: InMemoryDatabase,
        public_id: str,
        *,
        for_update: bool = False,
    ) -> ModerationCaseRecord | None:
        return next((case for case in db.moderation_cases.values() if case.public_id == public_id), None)

    @staticmethod
    async def apply_transition(
        db: InMemoryDatabase,
        *,
        case_id: int,
        status: CaseStatus,
        metadata: dict[str, object],
        escalated_at: datetime | None,
        resolved_at: datetime | None,
        resolved_by: int | None,
        now_utc: datetime,
    ) -> ModerationCaseRecord:
        case = db.moderation_cases.get(case_id)
        if case is None:
            raise ModerationCaseNotFoundError(f"moderation case {case_id} not found")
        return _save(
            db.moderation_cases,
            replace(
                case,
                status=status,
                metadata=deepcopy(metadata),
                escalated_at=escalated_at,
                resolved_at=resolved_at,
                resolved_by=resolved_by,
            ),
        )


class InMemorySettingsRepo:
    @staticmethod
    async def get_commission_config(db: InMemoryDatabase) -> CommissionConfig:
        return CommissionConfig.from_monetization_value(
            db.settings.get("monetization"),
            defaults=CommissionConfig.from_settings(get_settings()),
        )


MEMORY_STORES = CommunityStores(
    communities=InMemoryCommunitiesRepo,
    users=InMemoryUsersRepo,
    members=InMemoryMembersRepo,
    tiers=InMemoryTiersRepo,
    subscriptions=InMemorySubscriptionsRepo,
    affiliates=InMemoryAffiliatesRepo,
    events=InMemoryDomainEventsRepo,
    moderation_cases=InMemoryModerationCasesRepo,
    settings=InMemorySettingsRepo,
)
