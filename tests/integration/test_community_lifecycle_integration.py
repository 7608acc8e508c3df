from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from community_lifecycle.community.members.listing import build_member_list_query
from community_lifecycle.community.members.service import CommunityMemberService
from community_lifecycle.community.moderation.service import CommunityModerationService
from community_lifecycle.community.subscriptions.service import CommunitySubscriptionService
from community_lifecycle.community.types import (
    COMMUNITY_SUBSCRIPTION_ENTITY,
    CaseStatus,
    MemberRole,
    MemberStatus,
    PaymentIntentSnapshot,
    SubscriptionStatus,
)
from community_lifecycle.db.models.domain_events import DomainEvent
from community_lifecycle.db.repo import (
    CommunityAffiliatesRepo,
    CommunityMembersRepo,
    CommunitySubscriptionsRepo,
    DomainEventsRepo,
    ModerationCasesRepo,
)
from community_lifecycle.db.session import SessionLocal
from tests.integration.lifecycle_fixtures import UTC, seed_case, seed_community

NOW = datetime(2024, 1, 31, 10, 0, tzinfo=UTC)


def _intent(subscription_public_id: str, *, public_id: str = "pi_int_1", intent_id: int = 501) -> PaymentIntentSnapshot:
    return PaymentIntentSnapshot(
        entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
        entity_id=subscription_public_id,
        public_id=public_id,
        id=intent_id,
        amount_total=4500,
        status="succeeded",
    )


@pytest.mark.asyncio
async def test_payment_success_activates_everything_in_one_commit() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))

    async with SessionLocal.begin() as session:
        activated = await CommunitySubscriptionService.on_payment_succeeded(
            session,
            _intent(ids.subscription_public_id),
            now_utc=NOW,
        )
    async with SessionLocal.begin() as session:
        replay = await CommunitySubscriptionService.on_payment_succeeded(
            session,
            _intent(ids.subscription_public_id),
            now_utc=NOW + timedelta(minutes=1),
        )

    assert activated.status == SubscriptionStatus.ACTIVE
    assert activated.current_period_end == datetime(2024, 2, 29, 10, 0, tzinfo=UTC)
    assert replay.metadata.completed_payments == ("pi_int_1",)

    async with SessionLocal.begin() as session:
        subscription = await CommunitySubscriptionsRepo.get_by_public_id(session, ids.subscription_public_id)
        membership = await CommunityMembersRepo.find_membership(
            session,
            community_id=ids.community_id,
            user_id=ids.subscriber_id,
        )
        affiliate = await CommunityAffiliatesRepo.get_by_id(session, ids.affiliate_id)
        events = await DomainEventsRepo.list_for_entity(
            session,
            entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
            entity_id=ids.subscription_public_id,
        )

    assert subscription.provider_status == "active"
    assert subscription.latest_payment_intent_id == 501
    assert membership.status == MemberStatus.ACTIVE
    assert membership.left_at is None
    assert membership.metadata.title == "Learner"
    assert membership.metadata.pending_subscription is None
    assert membership.metadata.active_subscription.subscription_id == ids.subscription_public_id
    assert affiliate.amount_earned_cents == 1125
    assert [event.event_type for event in events] == [
        "community.subscription.activated",
        "community.subscription.activated",
    ]


@pytest.mark.asyncio
async def test_payment_failure_keeps_period_end() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))

    async with SessionLocal.begin() as session:
        activated = await CommunitySubscriptionService.on_payment_succeeded(
            session,
            _intent(ids.subscription_public_id),
            now_utc=NOW,
        )
    failing = PaymentIntentSnapshot(
        entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
        entity_id=ids.subscription_public_id,
        public_id="pi_int_2",
        id=502,
        amount_total=4500,
        status="requires_payment_method",
        failure_code="card_declined",
    )
    async with SessionLocal.begin() as session:
        failed = await CommunitySubscriptionService.handle_payment_intent_outcome(
            session,
            "failed",
            failing,
            now_utc=NOW + timedelta(days=29),
        )

    assert failed.status == SubscriptionStatus.PAST_DUE
    assert failed.provider_status == "requires_payment_method"
    assert failed.current_period_end == activated.current_period_end
    assert failed.metadata.failure.code == "card_declined"


@pytest.mark.asyncio
async def test_invite_by_email_then_list_and_search() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))

    async with SessionLocal.begin() as session:
        invited = await CommunityMemberService.create_member(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            payload={
                "email": "REFERRER@example.com",
                "role": "moderator",
                "tags": ["compilers", "navy"],
            },
            now_utc=NOW,
        )
    async with SessionLocal.begin() as session:
        again = await CommunityMemberService.create_member(
            session,
            community=str(ids.community_id),
            actor_id=ids.owner_id,
            payload={"email": "referrer@example.com", "role": "moderator"},
            now_utc=NOW + timedelta(minutes=5),
        )

    assert invited.membership.role == MemberRole.MODERATOR
    assert invited.membership.status == MemberStatus.ACTIVE
    assert again.membership.id == invited.membership.id
    assert again.membership.joined_at == NOW
    assert again.membership.metadata.tags == ()

    async with SessionLocal.begin() as session:
        by_tag = await CommunityMemberService.list_members(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            filters={"search": "Compil"},
        )
        by_email = await CommunityMemberService.list_members(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            filters={"search": "learner@"},
        )
        pending_page = await CommunityMembersRepo.list_by_community(
            session,
            community_id=ids.community_id,
            query=build_member_list_query({"status": "pending", "limit": 10}),
        )
        invite_events = await session.scalar(
            select(func.count(DomainEvent.id)).where(DomainEvent.event_type == "community.member.invited")
        )

    assert by_tag.items == []
    assert by_tag.total == 0
    assert [member.user.id for member in by_email.items] == [ids.subscriber_id]
    assert pending_page.total == 1
    assert [member.user_id for member in pending_page.items] == [ids.subscriber_id]
    assert invite_events == 2


@pytest.mark.asyncio
async def test_member_search_reaches_metadata_arrays() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))

    async with SessionLocal.begin() as session:
        await CommunityMemberService.update_member(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            target_user_id=ids.subscriber_id,
            updates={"tags": ["Rust", "compilers"], "location": "Lisbon"},
            now_utc=NOW,
        )

    async with SessionLocal.begin() as session:
        page = await CommunityMembersRepo.list_by_community(
            session,
            community_id=ids.community_id,
            query=build_member_list_query({"search": "COMPILERS"}),
        )
        by_location = await CommunityMembersRepo.list_by_community(
            session,
            community_id=ids.community_id,
            query=build_member_list_query({"search": "lisb"}),
        )

    assert [member.user_id for member in page.items] == [ids.subscriber_id]
    assert [member.user_id for member in by_location.items] == [ids.subscriber_id]


@pytest.mark.asyncio
async def test_resolve_incident_persists_resolution() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))
    await seed_case(community_id=ids.community_id, public_id="case_int_1")

    async with SessionLocal.begin() as session:
        await CommunityModerationService.acknowledge_escalation(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            case_public_id="case_int_1",
            now_utc=NOW,
        )
        await CommunityModerationService.resolve_incident(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            case_public_id="case_int_1",
            resolution_summary="Handled",
            now_utc=NOW + timedelta(hours=1),
        )

    async with SessionLocal.begin() as session:
        case = await ModerationCasesRepo.get_by_public_id(session, "case_int_1")

    assert case.status == CaseStatus.RESOLVED
    assert case.escalated_at == NOW
    assert case.resolved_by == ids.owner_id
    assert len(case.metadata["operations"]["acknowledgements"]) == 1
    assert case.metadata["operations"]["resolution"]["summary"] == "Handled"


@pytest.mark.asyncio
async def test_member_writes_commit_on_a_session_without_begin() -> None:
    ids = await seed_community(joined_at=NOW - timedelta(days=3))

    async with SessionLocal() as session:
        created = await CommunityMemberService.create_member(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            payload={"email": "referrer@example.com", "role": "moderator"},
            now_utc=NOW,
        )
    async with SessionLocal() as session:
        await CommunityMemberService.remove_member(
            session,
            community="growth-guild",
            actor_id=ids.owner_id,
            target_user_id=created.user.id,
            now_utc=NOW + timedelta(minutes=5),
        )

    async with SessionLocal.begin() as session:
        membership = await CommunityMembersRepo.find_membership(
            session,
            community_id=ids.community_id,
            user_id=created.user.id,
        )
        event_types = (
            await session.scalars(
                select(DomainEvent.event_type)
                .where(DomainEvent.entity_id == membership.entity_id)
                .order_by(DomainEvent.id)
            )
        ).all()

    assert membership.role == MemberRole.MODERATOR
    assert membership.status == MemberStatus.PENDING
    assert membership.left_at == NOW + timedelta(minutes=5)
    assert event_types == ["community.member.invited", "community.member.removed"]
