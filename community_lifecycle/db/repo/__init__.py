from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.db.repo.communities_repo import CommunitiesRepo
from community_lifecycle.db.repo.community_affiliates_repo import CommunityAffiliatesRepo
from community_lifecycle.db.repo.community_members_repo import CommunityMembersRepo
from community_lifecycle.db.repo.community_subscriptions_repo import CommunitySubscriptionsRepo
from community_lifecycle.db.repo.domain_events_repo import DomainEventsRepo
from community_lifecycle.db.repo.moderation_cases_repo import ModerationCasesRepo
from community_lifecycle.db.repo.paywall_tiers_repo import PaywallTiersRepo
from community_lifecycle.db.repo.platform_settings_repo import PlatformSettingsRepo
from community_lifecycle.db.repo.users_repo import UsersRepo

SQL_STORES = CommunityStores(
    communities=CommunitiesRepo,
    users=UsersRepo,
    members=CommunityMembersRepo,
    tiers=PaywallTiersRepo,
    subscriptions=CommunitySubscriptionsRepo,
    affiliates=CommunityAffiliatesRepo,
    events=DomainEventsRepo,
    moderation_cases=ModerationCasesRepo,
    settings=PlatformSettingsRepo,
)

__all__ = [
    "CommunitiesRepo",
    "CommunityAffiliatesRepo",
    "CommunityMembersRepo",
    "CommunitySubscriptionsRepo",
    "DomainEventsRepo",
    "ModerationCasesRepo",
    "PaywallTiersRepo",
    "PlatformSettingsRepo",
    "SQL_STORES",
    "UsersRepo",
]
