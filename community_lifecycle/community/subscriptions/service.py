"""Subscription state driven by payment-intent outcomes.

Every handler resolves the subscription by the intent's ``entity_id`` and
returns ``None`` without touching anything when the intent belongs to another
entity type or the subscription does not exist. Otherwise all writes of the
handler, including domain events, share one transaction. A success delivered
twice for the same intent refreshes the period but credits the affiliate once.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from community_lifecycle.community.commission import (
    COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION,
    split_commission,
)
from community_lifecycle.community.errors import NotFoundError, ValidationError
from community_lifecycle.community.events import record_domain_event
from community_lifecycle.community.metadata import ActiveSubscription, PaymentFailure, RefundRecord
from community_lifecycle.community.stores import CommunityStores
from community_lifecycle.community.subscriptions.periods import add_interval
from community_lifecycle.community.types import (
    COMMUNITY_AFFILIATE_ENTITY,
    COMMUNITY_SUBSCRIPTION_ENTITY,
    AffiliateStatus,
    MemberStatus,
    PaymentIntentSnapshot,
    SubscriptionRecord,
)
from community_lifecycle.db.repo import SQL_STORES
from community_lifecycle.db.transaction import transaction

logger = structlog.get_logger(__name__)

PAYMENT_OUTCOME_SUCCEEDED = "succeeded"
PAYMENT_OUTCOME_FAILED = "failed"
PAYMENT_OUTCOME_REFUNDED = "refunded"


async def _resolve_subscription(
    session: Any,
    intent: PaymentIntentSnapshot,
    *,
    stores: CommunityStores,
) -> SubscriptionRecord | None:
    if intent.entity_type != COMMUNITY_SUBSCRIPTION_ENTITY:
        logger.info(
            "payment_intent_ignored",
            reason="foreign_entity_type",
            entity_type=intent.entity_type,
            payment_intent_id=intent.id,
        )
        return None

    subscription = await stores.subscriptions.get_by_public_id(session, intent.entity_id, for_update=True)
    if subscription is None:
        logger.info(
            "payment_intent_ignored",
            reason="subscription_not_found",
            subscription_public_id=intent.entity_id,
            payment_intent_id=intent.id,
        )
    return subscription


async def _activate_membership(
    session: Any,
    subscription: SubscriptionRecord,
    *,
    now_utc: datetime,
    stores: CommunityStores,
) -> None:
    membership = await stores.members.find_membership(
        session,
        community_id=subscription.community_id,
        user_id=subscription.user_id,
        for_update=True,
    )
    if membership is None:
        return

    active = ActiveSubscription(
        subscription_id=subscription.public_id,
        tier_id=subscription.tier_id,
        renewed_at=now_utc,
    )
    await stores.members.update_metadata(
        session,
        community_id=subscription.community_id,
        user_id=subscription.user_id,
        metadata=membership.metadata.with_active_subscription(active),
        now_utc=now_utc,
    )
    if membership.status != MemberStatus.ACTIVE:
        await stores.members.update_status(
            session,
            community_id=subscription.community_id,
            user_id=subscription.user_id,
            status=MemberStatus.ACTIVE,
            now_utc=now_utc,
        )


async def _record_affiliate_earning(
    session: Any,
    subscription: SubscriptionRecord,
    intent: PaymentIntentSnapshot,
    *,
    now_utc: datetime,
    stores: CommunityStores,
) -> int:
    if subscription.affiliate_id is None:
        return 0
    affiliate = await stores.affiliates.get_by_id(session, subscription.affiliate_id, for_update=True)
    if affiliate is None or affiliate.status != AffiliateStatus.APPROVED:
        return 0

    config = await stores.settings.get_commission_config(session)
    split = split_commission(
        intent.amount_total,
        config,
        category=COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION,
    )
    if split.affiliate_amount_cents <= 0:
        return 0

    await stores.affiliates.increment_earnings(
        session,
        affiliate_id=affiliate.id,
        amount_earned_cents=split.affiliate_amount_cents,
        amount_paid_cents=0,
        now_utc=now_utc,
    )
    await record_domain_event(
        session,
        stores=stores,
        entity_type=COMMUNITY_AFFILIATE_ENTITY,
        entity_id=str(affiliate.id),
        event_type="community.affiliate.earning-recorded",
        payload={
            "subscription_id": subscription.public_id,
            "payment_intent_id": intent.id,
            "amount_cents": split.affiliate_amount_cents,
            "platform_share_cents": split.platform_amount_cents,
            "commission_category": split.category,
        },
        performed_by=None,
        happened_at=now_utc,
    )
    return split.affiliate_amount_cents


async def on_payment_succeeded(
    session: Any,
    intent: PaymentIntentSnapshot,
    *,
    now_utc: datetime,
    stores: CommunityStores = SQL_STORES,
) -> SubscriptionRecord | None:
    async with transaction(session):
        subscription = await _resolve_subscription(session, intent, stores=stores)
        if subscription is None:
            return None

        tier = await stores.tiers.get_by_id(session, subscription.tier_id)
        if tier is None:
            raise NotFoundError(f"paywall tier {subscription.tier_id} not found")
        current_period_end = add_interval(now_utc, tier.billing_interval)

        replayed = intent.public_id in subscription.metadata.completed_payments
        metadata = subscription.metadata.with_completed_payment(
            intent.public_id,
            captured_total=intent.amount_total,
        )
        updated = await stores.subscriptions.mark_active(
            session,
            subscription_id=subscription.id,
            started_at=subscription.started_at or now_utc,
            current_period_start=now_utc,
            current_period_end=current_period_end,
            latest_payment_intent_id=intent.id,
            metadata=metadata,
            now_utc=now_utc,
        )
        await _activate_membership(session, updated, now_utc=now_utc, stores=stores)
        affiliate_amount = 0
        if not replayed:
            affiliate_amount = await _record_affiliate_earning(
                session,
                updated,
                intent,
                now_utc=now_utc,
                stores=stores,
            )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
            entity_id=updated.public_id,
            event_type="community.subscription.activated",
            payload={
                "community_id": updated.community_id,
                "tier_id": updated.tier_id,
                "payment_intent_id": intent.id,
                "current_period_end": current_period_end.isoformat() if current_period_end else None,
            },
            performed_by=updated.user_id,
            happened_at=now_utc,
        )

    logger.info(
        "community_subscription_activated",
        subscription_public_id=updated.public_id,
        payment_intent_id=intent.id,
        affiliate_amount_cents=affiliate_amount,
    )
    return updated


async def on_payment_failed(
    session: Any,
    intent: PaymentIntentSnapshot,
    *,
    now_utc: datetime,
    stores: CommunityStores = SQL_STORES,
) -> SubscriptionRecord | None:
    async with transaction(session):
        subscription = await _resolve_subscription(session, intent, stores=stores)
        if subscription is None:
            return None

        failure = PaymentFailure(
            code=intent.failure_code,
            message=intent.failure_message,
            occurred_at=now_utc,
        )
        updated = await stores.subscriptions.mark_past_due(
            session,
            subscription_id=subscription.id,
            provider_status=intent.status,
            metadata=subscription.metadata.with_failure(intent.public_id, failure),
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
            entity_id=updated.public_id,
            event_type="community.subscription.payment-failed",
            payload={
                "community_id": updated.community_id,
                "payment_intent_id": intent.id,
                "failure_code": intent.failure_code,
                "failure_message": intent.failure_message,
            },
            performed_by=None,
            happened_at=now_utc,
        )

    logger.warning(
        "community_subscription_payment_failed",
        subscription_public_id=updated.public_id,
        payment_intent_id=intent.id,
        failure_code=intent.failure_code,
    )
    return updated


async def on_payment_refunded(
    session: Any,
    intent: PaymentIntentSnapshot,
    amount: int,
    *,
    now_utc: datetime,
    stores: CommunityStores = SQL_STORES,
) -> SubscriptionRecord | None:
    # Refunds are recorded on the subscription only; status is left as is.
    async with transaction(session):
        subscription = await _resolve_subscription(session, intent, stores=stores)
        if subscription is None:
            return None

        refund = RefundRecord(amount=int(amount), processed_at=now_utc, payment_intent_id=intent.public_id)
        updated = await stores.subscriptions.update_metadata(
            session,
            subscription_id=subscription.id,
            metadata=subscription.metadata.with_refund(refund),
            now_utc=now_utc,
        )
        await record_domain_event(
            session,
            stores=stores,
            entity_type=COMMUNITY_SUBSCRIPTION_ENTITY,
            entity_id=updated.public_id,
            event_type="community.subscription.refunded",
            payload={
                "community_id": updated.community_id,
                "amount": refund.amount,
                "payment_intent_id": intent.id,
            },
            performed_by=None,
            happened_at=now_utc,
        )

    logger.info(
        "community_subscription_refunded",
        subscription_public_id=updated.public_id,
        payment_intent_id=intent.id,
        amount=refund.amount,
    )
    return updated


async def handle_payment_intent_outcome(
    session: Any,
    outcome: str,
    intent: PaymentIntentSnapshot,
    *,
    now_utc: datetime,
    refund_amount: int | None = None,
    stores: CommunityStores = SQL_STORES,
) -> SubscriptionRecord | None:
    normalized = str(outcome or "").strip().lower()
    if normalized == PAYMENT_OUTCOME_SUCCEEDED:
        return await on_payment_succeeded(session, intent, now_utc=now_utc, stores=stores)
    if normalized == PAYMENT_OUTCOME_FAILED:
        return await on_payment_failed(session, intent, now_utc=now_utc, stores=stores)
    if normalized == PAYMENT_OUTCOME_REFUNDED:
        amount = intent.amount_total if refund_amount is None else refund_amount
        return await on_payment_refunded(session, intent, amount, now_utc=now_utc, stores=stores)
    raise ValidationError(f"unsupported payment outcome: {outcome!r}")


class CommunitySubscriptionService:
    on_payment_succeeded = staticmethod(on_payment_succeeded)
    on_payment_failed = staticmethod(on_payment_failed)
    on_payment_refunded = staticmethod(on_payment_refunded)
    handle_payment_intent_outcome = staticmethod(handle_payment_intent_outcome)
