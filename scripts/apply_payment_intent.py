from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone

import structlog

from community_lifecycle.community.subscriptions.service import (
    PAYMENT_OUTCOME_FAILED,
    PAYMENT_OUTCOME_REFUNDED,
    PAYMENT_OUTCOME_SUCCEEDED,
    handle_payment_intent_outcome,
)
from community_lifecycle.community.types import COMMUNITY_SUBSCRIPTION_ENTITY, PaymentIntentSnapshot
from community_lifecycle.core.config import get_settings
from community_lifecycle.core.logging import configure_logging_from_settings
from community_lifecycle.db.session import SessionLocal, dispose_engine

logger = structlog.get_logger("scripts.apply_payment_intent")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay one payment-intent outcome against a community subscription")
    parser.add_argument(
        "--outcome",
        choices=(PAYMENT_OUTCOME_SUCCEEDED, PAYMENT_OUTCOME_FAILED, PAYMENT_OUTCOME_REFUNDED),
        required=True,
    )
    parser.add_argument("--subscription", required=True, help="Subscription public id")
    parser.add_argument("--intent-id", type=int, required=True)
    parser.add_argument("--intent-public-id", required=True)
    parser.add_argument("--amount-total", type=int, required=True, help="Captured amount in cents")
    parser.add_argument("--status", default=None, help="Provider status; defaults to the outcome")
    parser.add_argument("--failure-code")
    parser.add_argument("--failure-message")
    parser.add_argument("--refund-amount", type=int)
    parser.add_argument("--entity-type", default=COMMUNITY_SUBSCRIPTION_ENTITY)
    return parser.parse_args(argv)


def _build_intent(args: argparse.Namespace) -> PaymentIntentSnapshot:
    return PaymentIntentSnapshot(
        entity_type=args.entity_type,
        entity_id=args.subscription,
        public_id=args.intent_public_id,
        id=args.intent_id,
        amount_total=args.amount_total,
        status=args.status or args.outcome,
        failure_code=args.failure_code,
        failure_message=args.failure_message,
    )


async def _run(args: argparse.Namespace) -> int:
    intent = _build_intent(args)
    try:
        async with SessionLocal.begin() as session:
            subscription = await handle_payment_intent_outcome(
                session,
                args.outcome,
                intent,
                now_utc=datetime.now(timezone.utc),
                refund_amount=args.refund_amount,
            )
    finally:
        await dispose_engine()

    if subscription is None:
        logger.info("apply_payment_intent_noop", subscription_public_id=args.subscription)
        print(json.dumps({"applied": False}, separators=(",", ":")))
        return 0

    print(
        json.dumps(
            {
                "applied": True,
                "subscription": subscription.public_id,
                "status": subscription.status.value,
                "provider_status": subscription.provider_status,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )
    return 0


def main() -> int:
    configure_logging_from_settings(get_settings())
    return asyncio.run(_run(_parse_args()))


if __name__ == "__main__":
    raise SystemExit(main())
