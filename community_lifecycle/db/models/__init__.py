from community_lifecycle.db.models.communities import Community
from community_lifecycle.db.models.community_affiliates import CommunityAffiliate
from community_lifecycle.db.models.community_members import CommunityMember
from community_lifecycle.db.models.community_subscriptions import CommunitySubscription
from community_lifecycle.db.models.domain_events import DomainEvent
from community_lifecycle.db.models.moderation_cases import ModerationCase
from community_lifecycle.db.models.paywall_tiers import PaywallTier
from community_lifecycle.db.models.platform_settings import PlatformSetting
from community_lifecycle.db.models.users import User

__all__ = [
    "Community",
    "CommunityAffiliate",
    "CommunityMember",
    "CommunitySubscription",
    "DomainEvent",
    "ModerationCase",
    "PaywallTier",
    "PlatformSetting",
    "User",
]
