from __future__ import annotations

from datetime import timedelta

import pytest

from community_lifecycle.community.errors import ForbiddenError, ModerationCaseNotFoundError
from community_lifecycle.community.moderation.service import CommunityModerationService
from community_lifecycle.community.types import MODERATION_CASE_ENTITY, CaseStatus, MemberRole
from community_lifecycle.db.memory import MEMORY_STORES, InMemoryDomainEventsRepo


@pytest.mark.asyncio
async def test_moderator_acknowledges_pending_case(seeded, now_utc) -> None:
    case = seeded.db.add_case(
        public_id="case_spam_1",
        community_id=seeded.community.id,
        metadata={"reason": "spam", "operations": {"acknowledgements": [{"acknowledged_by": 1}]}},
    )

    updated = await CommunityModerationService.acknowledge_escalation(
        seeded.db,
        community="growth-guild",
        actor_id=seeded.moderator.id,
        case_public_id="case_spam_1",
        note="Looking into it",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )

    assert updated.status == CaseStatus.IN_REVIEW
    assert updated.escalated_at == now_utc
    assert updated.metadata["reason"] == "spam"
    acknowledgements = updated.metadata["operations"]["acknowledgements"]
    assert acknowledgements[0] == {"acknowledged_by": 1}
    assert acknowledgements[1] == {
        "acknowledged_by": seeded.moderator.id,
        "acknowledged_at": now_utc.isoformat(),
        "note": "Looking into it",
    }
    assert case.metadata["operations"]["acknowledgements"] == [{"acknowledged_by": 1}]

    (event,) = seeded.db.events_for(MODERATION_CASE_ENTITY, "case_spam_1")
    assert event.event_type == "community.escalation.acknowledged"
    assert event.performed_by == seeded.moderator.id
    assert event.payload == {
        "community_id": seeded.community.id,
        "case_id": "case_spam_1",
        "status": "in_review",
    }


@pytest.mark.asyncio
async def test_acknowledge_keeps_non_pending_status_and_first_escalation(seeded, now_utc) -> None:
    seeded.db.add_case(public_id="case_esc", community_id=seeded.community.id, status=CaseStatus.ESCALATED)

    first = await CommunityModerationService.acknowledge_escalation(
        seeded.db,
        community=seeded.community.id,
        actor_id=seeded.admin.id,
        case_public_id="case_esc",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )
    second = await CommunityModerationService.acknowledge_escalation(
        seeded.db,
        community=seeded.community.id,
        actor_id=seeded.owner.id,
        case_public_id="case_esc",
        now_utc=now_utc + timedelta(hours=1),
        stores=MEMORY_STORES,
    )

    assert first.status == CaseStatus.ESCALATED
    assert second.status == CaseStatus.ESCALATED
    assert second.escalated_at == now_utc
    assert [item["acknowledged_by"] for item in second.metadata["operations"]["acknowledgements"]] == [
        seeded.admin.id,
        seeded.owner.id,
    ]


@pytest.mark.asyncio
async def test_resolve_incident_records_resolution(seeded, now_utc) -> None:
    seeded.db.add_case(public_id="case_abuse", community_id=seeded.community.id, status=CaseStatus.IN_REVIEW)

    resolved = await CommunityModerationService.resolve_incident(
        seeded.db,
        community="growth-guild",
        actor_id=seeded.moderator.id,
        case_public_id="case_abuse",
        resolution_summary="Warned the member",
        follow_up="Re-check in a week",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )

    assert resolved.status == CaseStatus.RESOLVED
    assert resolved.resolved_at == now_utc
    assert resolved.resolved_by == seeded.moderator.id
    assert resolved.metadata["operations"]["resolution"] == {
        "summary": "Warned the member",
        "follow_up": "Re-check in a week",
        "resolved_by": seeded.moderator.id,
        "resolved_at": now_utc.isoformat(),
    }
    (event,) = seeded.db.events_for(MODERATION_CASE_ENTITY, "case_abuse")
    assert event.event_type == "community.safety.resolved"
    assert event.payload == {"community_id": seeded.community.id, "case_id": "case_abuse"}


@pytest.mark.asyncio
async def test_plain_member_cannot_moderate(seeded, now_utc) -> None:
    member = seeded.db.add_user(email="member@example.com")
    seeded.db.add_member(community_id=seeded.community.id, user_id=member.id, role=MemberRole.MEMBER)
    case = seeded.db.add_case(public_id="case_1", community_id=seeded.community.id)

    with pytest.raises(ForbiddenError):
        await CommunityModerationService.resolve_incident(
            seeded.db,
            community="growth-guild",
            actor_id=member.id,
            case_public_id="case_1",
            now_utc=now_utc,
            stores=MEMORY_STORES,
        )

    assert seeded.db.moderation_cases[case.id] == case
    assert seeded.db.events == []


@pytest.mark.asyncio
async def test_platform_admin_moderates_without_membership(seeded, now_utc) -> None:
    seeded.db.add_case(public_id="case_2", community_id=seeded.community.id)

    resolved = await CommunityModerationService.resolve_incident(
        seeded.db,
        community="growth-guild",
        actor_id=seeded.outsider.id,
        actor_role="admin",
        case_public_id="case_2",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )

    assert resolved.status == CaseStatus.RESOLVED
    assert resolved.metadata["operations"]["resolution"]["summary"] is None


@pytest.mark.asyncio
async def test_case_from_another_community_is_not_found(seeded, now_utc) -> None:
    other = seeded.db.add_community(slug="other-guild")
    seeded.db.add_case(public_id="case_other", community_id=other.id)

    for case_public_id in ("case_other", "case_missing"):
        with pytest.raises(ModerationCaseNotFoundError):
            await CommunityModerationService.acknowledge_escalation(
                seeded.db,
                community="growth-guild",
                actor_id=seeded.owner.id,
                case_public_id=case_public_id,
                now_utc=now_utc,
                stores=MEMORY_STORES,
            )
    assert seeded.db.events == []


@pytest.mark.asyncio
async def test_moderation_event_failure_rolls_back_case(seeded, now_utc, monkeypatch) -> None:
    case = seeded.db.add_case(public_id="case_3", community_id=seeded.community.id)

    async def _failing_record(session, **kwargs):
        raise RuntimeError("event store unavailable")

    monkeypatch.setattr(InMemoryDomainEventsRepo, "record", _failing_record)

    with pytest.raises(RuntimeError):
        await CommunityModerationService.acknowledge_escalation(
            seeded.db,
            community="growth-guild",
            actor_id=seeded.owner.id,
            case_public_id="case_3",
            now_utc=now_utc,
            stores=MEMORY_STORES,
        )

    assert seeded.db.moderation_cases[case.id] == case


@pytest.mark.asyncio
async def test_moderation_reads_inside_its_transaction(seeded, now_utc, read_scopes) -> None:
    seeded.db.add_case(public_id="case_scoped", community_id=seeded.community.id)

    await CommunityModerationService.acknowledge_escalation(
        seeded.db,
        community="growth-guild",
        actor_id=seeded.moderator.id,
        case_public_id="case_scoped",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )
    await CommunityModerationService.resolve_incident(
        seeded.db,
        community=seeded.community.id,
        actor_id=seeded.moderator.id,
        case_public_id="case_scoped",
        now_utc=now_utc,
        stores=MEMORY_STORES,
    )

    assert len(read_scopes) == 4
    assert all(inside for _, inside in read_scopes)
