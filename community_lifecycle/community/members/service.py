from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

import structlog

from community_lifecycle.community.access import require_community_role
from community_lifecycle.community.errors import (
    MembershipNotFoundError,
    OwnerRemovalError,
    UserNotFoundError,
    ValidationError,
)
from community_lifecycle.community.events import record_domain_event
from community_lifecycle.community.members.listing import build_member_list_query, membership_matches_search
from community_lifecycle.community.metadata import MemberMetadata
from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.types import (
    COMMUNITY_MEMBER_ENTITY,
    MANAGER_ROLES,
    HydratedMemberPage,
    HydratedMembership,
    MemberRole,
    MemberStatus,
    MembershipRecord,
    UserRecord,
    UserSummary,
    normalize_role,
    normalize_status,
)
from community_lifecycle.db.repo import SQL_STORES
from community_lifecycle.db.transaction import transaction

logger = structlog.get_logger(__name__)


async def hydrate_members(
    session: Any,
    memberships: Sequence[MembershipRecord],
    *,
    stores: CommunityStores = SQL_STORES,
) -> list[HydratedMembership]:
    if not memberships:
        return []
    users = await stores.users.list_by_ids(session, [membership.user_id for membership in memberships])
    directory = {user.id: UserSummary.from_user(user) for user in users}
    return [
        HydratedMembership(membership=membership, user=directory.get(membership.user_id))
        for membership in memberships
    ]


def _hydrated_matches(member: HydratedMembership, term: str) -> bool:
    if membership_matches_search(member.membership, term):
        return True
    if member.user is None:
        return False
    return any(term in value.lower() for value in (member.user.email, member.user.name) if value)


async def _resolve_user(
    session: Any,
    payload: Mapping[str, object],
    *,
    stores: CommunityStores,
) -> UserRecord:
    raw_user_id = payload.get("user_id")
    raw_email = payload.get("email")
    if not raw_user_id and not raw_email:
        raise ValidationError("user_id or email is required")

    if raw_user_id:
        try:
            user_id = int(str(raw_user_id).strip())
        except ValueError as exc:
            raise ValidationError(f"invalid user_id: {raw_user_id!r}") from exc
        user = await stores.users.get_by_id(session, user_id)
        if user is not None:
            return user
    if raw_email:
        user = await stores.users.get_by_email(session, str(raw_email))
        if user is not None:
            return user
    raise UserNotFoundError("user not found")


async def list_members(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    filters: Mapping[str, object] | None = None,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> HydratedMemberPage:
    """Members of a community with a user summary attached.

    ``search`` also matches the user's email and display name. It is applied
    after hydration, so ``total`` counts the searched result and
    ``limit``/``offset`` page through it.
    """
    access = await require_community_role(
        session,
        community,
        actor_id=actor_id,
        allowed_roles=MANAGER_ROLES,
        actor_role=actor_role,
        stores=stores,
    )
    query = build_member_list_query(filters)
    page = await stores.members.list_by_community(
        session,
        community_id=access.community.id,
        query=replace(query, search=None, limit=None, offset=0),
    )
    members = await hydrate_members(session, page.items, stores=stores)
    if query.search is not None:
        members = [member for member in members if _hydrated_matches(member, query.search)]

    end = None if query.limit is None else query.offset + query.limit
    return HydratedMemberPage(
        items=members[query.offset:end],
        total=len(members),
        limit=query.limit,
        offset=query.offset,
    )


async def create_member(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    payload: Mapping[str, object],
    now_utc: datetime,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> HydratedMembership:
    async with transaction(session):
        access = await require_community_role(
            session,
            community,
            actor_id=actor_id,
            allowed_roles=MANAGER_ROLES,
            actor_role=actor_role,
            stores=stores,
        )
        user = await _resolve_user(session, payload, stores=stores)
        role = normalize_role(payload.get("role") or MemberRole.MEMBER)
        status = normalize_status(payload.get("status") or MemberStatus.ACTIVE)
        metadata = MemberMetadata().merge_admin_fields(payload)
        community_id = access.community.id

        existing = await stores.members.ensure_membership(
            session,
            community_id=community_id,
            user_id=user.id,
            role=role,
            status=status,
            metadata=metadata,
            now_utc=now_utc,
        )
        if existing.role != role:
            await stores.members.update_role(
                session,
                community_id=community_id,
                user_id=user.id,
                role=role,
                now_utc=now_utc,
            )
        if existing.status != status:
            await stores.members.update_status(
                session,
                community_id=community_id,
                user_id=user.id,
                status=status,
                now_utc=now_utc,
            )
        membership = await stores.members.update_metadata(
            session,
            community_id=community_id,
            user_id=user.id,
            metadata=metadata.with_lifecycle_from(existing.metadata),
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_MEMBER_ENTITY,
            entity_id=membership.entity_id,
            event_type="community.member.invited",
            payload={"community_id": community_id, "role": role.value, "status": status.value},
            performed_by=actor_id,
            happened_at=now_utc,
        )
        hydrated = await hydrate_members(session, [membership], stores=stores)

    logger.info(
        "community_member_invited",
        community_id=community_id,
        user_id=user.id,
        role=role.value,
        status=status.value,
    )
    return hydrated[0]


async def _lock_target(
    session: Any,
    *,
    community_id: int,
    target_user_id: int | str,
    stores: CommunityStores,
) -> MembershipRecord:
    try:
        user_id = int(str(target_user_id).strip())
    except ValueError as exc:
        raise ValidationError(f"invalid user id: {target_user_id!r}") from exc
    membership = await stores.members.find_membership(
        session,
        community_id=community_id,
        user_id=user_id,
        for_update=True,
    )
    if membership is None:
        raise MembershipNotFoundError(f"membership {community_id}:{user_id} not found")
    return membership


async def update_member(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    target_user_id: int | str,
    updates: Mapping[str, object],
    now_utc: datetime,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> HydratedMembership:
    role_update = normalize_role(updates["role"]) if updates.get("role") else None
    status_update = normalize_status(updates["status"]) if updates.get("status") else None

    async with transaction(session):
        access = await require_community_role(
            session,
            community,
            actor_id=actor_id,
            allowed_roles=MANAGER_ROLES,
            actor_role=actor_role,
            stores=stores,
        )
        community_id = access.community.id
        target = await _lock_target(
            session,
            community_id=community_id,
            target_user_id=target_user_id,
            stores=stores,
        )
        if role_update is not None and role_update != target.role:
            await stores.members.update_role(
                session,
                community_id=community_id,
                user_id=target.user_id,
                role=role_update,
                now_utc=now_utc,
            )
        if status_update is not None and status_update != target.status:
            await stores.members.update_status(
                session,
                community_id=community_id,
                user_id=target.user_id,
                status=status_update,
                now_utc=now_utc,
            )
        membership = await stores.members.update_metadata(
            session,
            community_id=community_id,
            user_id=target.user_id,
            metadata=target.metadata.merge_admin_fields(updates),
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_MEMBER_ENTITY,
            entity_id=membership.entity_id,
            event_type="community.member.updated",
            payload={
                "community_id": community_id,
                "role": membership.role.value,
                "status": membership.status.value,
            },
            performed_by=actor_id,
            happened_at=now_utc,
        )
        hydrated = await hydrate_members(session, [membership], stores=stores)

    return hydrated[0]


async def remove_member(
    session: Any,
    *,
    community: int | str,
    actor_id: int,
    target_user_id: int | str,
    now_utc: datetime,
    actor_role: str | None = None,
    stores: CommunityStores = SQL_STORES,
) -> HydratedMembership:
    async with transaction(session):
        access = await require_community_role(
            session,
            community,
            actor_id=actor_id,
            allowed_roles=MANAGER_ROLES,
            actor_role=actor_role,
            stores=stores,
        )
        community_id = access.community.id
        target = await _lock_target(
            session,
            community_id=community_id,
            target_user_id=target_user_id,
            stores=stores,
        )
        if target.role == MemberRole.OWNER:
            raise OwnerRemovalError("community owners cannot be removed")

        membership = await stores.members.mark_left(
            session,
            community_id=community_id,
            user_id=target.user_id,
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_MEMBER_ENTITY,
            entity_id=membership.entity_id,
            event_type="community.member.removed",
            payload={"community_id": community_id},
            performed_by=actor_id,
            happened_at=now_utc,
        )
        hydrated = await hydrate_members(session, [membership], stores=stores)

    logger.info("community_member_removed", community_id=community_id, user_id=target.user_id)
    return hydrated[0]


class CommunityMemberService:
    hydrate_members = staticmethod(hydrate_members)
    list_members = staticmethod(list_members)
    create_member = staticmethod(create_member)
    update_member = staticmethod(update_member)
    remove_member = staticmethod(remove_member)
