from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TypeVar

from community_lifecycle.community.errors import InvalidEnumValueError
from community_lifecycle.community.metadata import MemberMetadata, SubscriptionMetadata

PLATFORM_ADMIN_ROLE = "admin"
COMMUNITY_SUBSCRIPTION_ENTITY = "community_subscription"
COMMUNITY_MEMBER_ENTITY = "community_member"
COMMUNITY_AFFILIATE_ENTITY = "community_affiliate"
MODERATION_CASE_ENTITY = "community_moderation_case"


class MemberRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    BANNED = "banned"


class SubscriptionStatus(str, Enum):
    INCOMPLETE = "incomplete"
    TRIALING = "trialing"
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"


class AffiliateStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    LIFETIME = "lifetime"


class CaseStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class MemberOrderColumn(str, Enum):
    JOINED_AT = "joined_at"
    UPDATED_AT = "updated_at"
    LEFT_AT = "left_at"


MANAGER_ROLES = frozenset({MemberRole.OWNER, MemberRole.ADMIN})
MODERATION_ROLES = frozenset({MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MODERATOR})

E = TypeVar("E", bound=Enum)


def normalize_enum(enum_cls: type[E], value: object) -> E:
    if isinstance(value, enum_cls):
        return value
    normalized = str(value or "").strip().lower()
    try:
        return enum_cls(normalized)
    except ValueError as exc:
        raise InvalidEnumValueError(f"unsupported {enum_cls.__name__}: {value!r}") from exc


def normalize_role(value: object) -> MemberRole:
    return normalize_enum(MemberRole, value)


def normalize_status(value: object) -> MemberStatus:
    return normalize_enum(MemberStatus, value)


def normalize_enum_filter(enum_cls: type[E], value: object) -> tuple[E, ...] | None:
    """Accept one value or an iterable of values; ``None`` and empty mean no filter."""
    if value is None:
        return None
    if isinstance(value, (str, Enum)):
        candidates: Iterable[object] = (value,)
    elif isinstance(value, Iterable):
        candidates = value
    else:
        candidates = (value,)
    normalized = tuple(dict.fromkeys(normalize_enum(enum_cls, item) for item in candidates))
    return normalized or None


@dataclass(frozen=True, slots=True)
class CommunityRecord:
    id: int
    slug: str
    name: str


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or self.email


@dataclass(frozen=True, slots=True)
class UserSummary:
    id: int
    email: str
    name: str

    @classmethod
    def from_user(cls, user: UserRecord) -> UserSummary:
        return cls(id=user.id, email=user.email, name=user.display_name)


@dataclass(frozen=True, slots=True)
class MembershipRecord:
    id: int
    community_id: int
    user_id: int
    role: MemberRole
    status: MemberStatus
    joined_at: datetime
    updated_at: datetime
    left_at: datetime | None
    metadata: MemberMetadata = field(default_factory=MemberMetadata)

    @property
    def entity_id(self) -> str:
        return f"{self.community_id}:{self.user_id}"


@dataclass(frozen=True, slots=True)
class HydratedMembership:
    membership: MembershipRecord
    user: UserSummary | None


@dataclass(frozen=True, slots=True)
class MemberPage:
    items: list[MembershipRecord]
    total: int
    limit: int | None
    offset: int


@dataclass(frozen=True, slots=True)
class HydratedMemberPage:
    items: list[HydratedMembership]
    total: int
    limit: int | None
    offset: int


@dataclass(frozen=True, slots=True)
class TierRecord:
    id: int
    community_id: int
    billing_interval: BillingInterval
    price_cents: int
    currency: str


@dataclass(frozen=True, slots=True)
class SubscriptionRecord:
    id: int
    public_id: str
    community_id: int
    user_id: int
    tier_id: int
    status: SubscriptionStatus
    affiliate_id: int | None = None
    provider_status: str | None = None
    started_at: datetime | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    latest_payment_intent_id: int | None = None
    metadata: SubscriptionMetadata = field(default_factory=SubscriptionMetadata)


@dataclass(frozen=True, slots=True)
class AffiliateRecord:
    """An affiliate and its running totals.

    ``commission_rate_bps`` is the rate agreed with the affiliate and is kept for
    display only. Earnings are split with the community-wide ``CommissionConfig``.
    """

    id: int
    community_id: int
    user_id: int
    status: AffiliateStatus
    commission_rate_bps: int
    amount_earned_cents: int
    amount_paid_cents: int


@dataclass(frozen=True, slots=True)
class ModerationCaseRecord:
    id: int
    public_id: str
    community_id: int
    status: CaseStatus
    metadata: dict[str, object]
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: int | None = None


@dataclass(frozen=True, slots=True)
class DomainEventRecord:
    id: int
    entity_type: str
    entity_id: str
    event_type: str
    payload: dict[str, object]
    performed_by: int | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PaymentIntentSnapshot:
    entity_type: str
    entity_id: str
    public_id: str
    id: int
    amount_total: int
    status: str
    failure_code: str | None = None
    failure_message: str | None = None
