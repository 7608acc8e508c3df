from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from typing import Any

import structlog

from community_lifecycle.community.errors import (
    CommunityNotFoundError,
    ForbiddenError,
    MembershipNotFoundError,
    ValidationError,
)
from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.types import (
    PLATFORM_ADMIN_ROLE,
    CommunityRecord,
    MemberRole,
    MemberStatus,
    MembershipRecord,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CommunityAccess:
    community: CommunityRecord
    membership: MembershipRecord | None


async def resolve_community(
    session: Any,
    identifier: int | str | None,
    *,
    stores: CommunityStores,
) -> CommunityRecord:
    if identifier is None or str(identifier).strip() == "":
        raise ValidationError("community not specified")

    raw = str(identifier).strip()
    if raw.isdigit():
        community = await stores.communities.get_by_id(session, int(raw))
    else:
        community = await stores.communities.get_by_slug(session, raw)
    if community is None:
        raise CommunityNotFoundError(f"community {raw!r} not found")
    return community


async def require_community_role(
    session: Any,
    identifier: int | str | None,
    *,
    actor_id: int,
    allowed_roles: Collection[MemberRole],
    actor_role: str | None = None,
    stores: CommunityStores,
) -> CommunityAccess:
    """Resolve the community and check the actor may act on it.

    Platform admins pass regardless of membership. Everyone else needs an
    active membership with one of ``allowed_roles``; no membership at all is
    reported as not found.
    """
    community = await resolve_community(session, identifier, stores=stores)
    membership = await stores.members.find_membership(
        session,
        community_id=community.id,
        user_id=actor_id,
    )
    if actor_role == PLATFORM_ADMIN_ROLE:
        return CommunityAccess(community=community, membership=membership)

    if membership is None:
        raise MembershipNotFoundError("actor is not a member of this community")
    if membership.status != MemberStatus.ACTIVE or membership.role not in allowed_roles:
        logger.warning(
            "community_access_denied",
            community_id=community.id,
            actor_id=actor_id,
            role=membership.role.value,
            status=membership.status.value,
        )
        raise ForbiddenError("actor lacks the required community role")
    return CommunityAccess(community=community, membership=membership)
