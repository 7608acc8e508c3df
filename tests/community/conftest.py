from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from community_lifecycle.community.types import CommunityRecord, MemberRole, UserRecord
from community_lifecycle.db.memory import InMemoryCommunitiesRepo, InMemoryDatabase, InMemoryMembersRepo

UTC = timezone.utc


@dataclass(slots=True)
class SeededCommunity:
    db: InMemoryDatabase
    community: CommunityRecord
    owner: UserRecord
    admin: UserRecord
    moderator: UserRecord
    outsider: UserRecord


@pytest.fixture
def now_utc() -> datetime:
    return datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def seeded(db: InMemoryDatabase) -> SeededCommunity:
    community = db.add_community(slug="growth-guild", name="Growth Guild")
    owner = db.add_user(email="owner@example.com", first_name="Olivia", last_name="Owner")
    admin = db.add_user(email="admin@example.com", first_name="Adam")
    moderator = db.add_user(email="mod@example.com")
    outsider = db.add_user(email="outsider@example.com")
    joined_at = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
    db.add_member(community_id=community.id, user_id=owner.id, role=MemberRole.OWNER, joined_at=joined_at)
    db.add_member(community_id=community.id, user_id=admin.id, role=MemberRole.ADMIN, joined_at=joined_at)
    db.add_member(
        community_id=community.id,
        user_id=moderator.id,
        role=MemberRole.MODERATOR,
        joined_at=joined_at,
    )
    return SeededCommunity(
        db=db,
        community=community,
        owner=owner,
        admin=admin,
        moderator=moderator,
        outsider=outsider,
    )


@pytest.fixture
def read_scopes(monkeypatch) -> list[tuple[str, bool]]:
    """Record, for each community and membership read, whether a transaction was open."""
    scopes: list[tuple[str, bool]] = []

    def _tracked(name: str, original):
        async def _wrapper(db, *args, **kwargs):
            scopes.append((name, db.in_transaction()))
            return await original(db, *args, **kwargs)

        return staticmethod(_wrapper)

    for repo, name in (
        (InMemoryCommunitiesRepo, "get_by_id"),
        (InMemoryCommunitiesRepo, "get_by_slug"),
        (InMemoryMembersRepo, "find_membership"),
    ):
        monkeypatch.setattr(repo, name, _tracked(f"{repo.__name__}.{name}", getattr(repo, name)))
    return scopes
