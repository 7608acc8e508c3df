"""Structured metadata stored in the JSONB ``metadata`` columns.

Admin-editable member fields and lifecycle-owned keys live side by side in the
same JSON object; the value objects below keep them apart so a profile edit can
never clobber ``active_subscription`` and a payment can never clobber ``notes``.
Keys this module does not know about are preserved verbatim in ``extra``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime

MAX_MEMBER_TAGS = 20

MEMBER_ADMIN_FIELDS = ("title", "location", "tags", "notes")
_MEMBER_LIFECYCLE_FIELDS = ("active_subscription", "pending_subscription")
_SUBSCRIPTION_FIELDS = (
    "completed_payments",
    "last_captured_total",
    "last_failed_payment",
    "failure",
    "last_refund",
)


def normalize_tags(raw: object) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        candidates: list[object] = list(raw.split(","))
    elif isinstance(raw, (list, tuple, set, frozenset)):
        candidates = list(raw)
    else:
        candidates = [raw]
    tags = [str(tag).strip() for tag in candidates]
    return tuple(tag for tag in tags if tag)[:MAX_MEMBER_TAGS]


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_datetime(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def search_text(value: object) -> str | None:
    """Text form of a JSON value as PostgreSQL's ``#>> '{}'`` renders it."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(", ", ": "))
    return str(value)


def flatten_search_values(raw: Mapping[str, object]) -> list[str]:
    """Top-level values with arrays unwrapped one level (``lax $.*[*]``)."""
    values: list[str] = []
    for value in raw.values():
        items = value if isinstance(value, list) else [value]
        for item in items:
            rendered = search_text(item)
            if rendered is not None:
                values.append(rendered)
    return values


@dataclass(frozen=True, slots=True)
class ActiveSubscription:
    subscription_id: str
    tier_id: int
    renewed_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "subscription_id": self.subscription_id,
            "tier_id": self.tier_id,
            "renewed_at": self.renewed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: object) -> ActiveSubscription | None:
        if not isinstance(raw, Mapping):
            return None
        renewed_at = _parse_datetime(raw.get("renewed_at"))
        tier_id = _optional_int(raw.get("tier_id"))
        subscription_id = raw.get("subscription_id")
        if renewed_at is None or tier_id is None or subscription_id is None:
            return None
        return cls(subscription_id=str(subscription_id), tier_id=tier_id, renewed_at=renewed_at)


@dataclass(frozen=True, slots=True)
class MemberMetadata:
    title: str | None = None
    location: str | None = None
    tags: tuple[str, ...] = ()
    notes: str | None = None
    active_subscription: ActiveSubscription | None = None
    pending_subscription: str | None = None
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, object] | None) -> MemberMetadata:
        raw = raw or {}
        known = MEMBER_ADMIN_FIELDS + _MEMBER_LIFECYCLE_FIELDS
        return cls(
            title=_optional_text(raw.get("title")),
            location=_optional_text(raw.get("location")),
            tags=normalize_tags(raw.get("tags")),
            notes=_optional_text(raw.get("notes")),
            active_subscription=ActiveSubscription.from_dict(raw.get("active_subscription")),
            pending_subscription=_optional_text(raw.get("pending_subscription")),
            extra={key: value for key, value in raw.items() if key not in known},
        )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.extra)
        if self.title is not None:
            payload["title"] = self.title
        if self.location is not None:
            payload["location"] = self.location
        if self.tags:
            payload["tags"] = list(self.tags)
        if self.notes is not None:
            payload["notes"] = self.notes
        if self.active_subscription is not None:
            payload["active_subscription"] = self.active_subscription.to_dict()
        if self.pending_subscription is not None:
            payload["pending_subscription"] = self.pending_subscription
        return payload

    def merge_admin_fields(self, updates: Mapping[str, object]) -> MemberMetadata:
        """Apply only the admin fields explicitly present in ``updates``."""
        changes: dict[str, object] = {}
        for key in ("title", "location", "notes"):
            if key in updates:
                changes[key] = _optional_text(updates[key])
        if "tags" in updates:
            changes["tags"] = normalize_tags(updates["tags"])
        return replace(self, **changes) if changes else self

    def with_lifecycle_from(self, other: MemberMetadata) -> MemberMetadata:
        """Keep these admin fields but take lifecycle and unknown keys from ``other``."""
        return replace(
            self,
            active_subscription=other.active_subscription,
            pending_subscription=other.pending_subscription,
            extra=other.extra,
        )

    def with_active_subscription(self, active: ActiveSubscription) -> MemberMetadata:
        return replace(self, active_subscription=active, pending_subscription=None)

    def search_values(self) -> list[str]:
        return flatten_search_values(self.to_dict())


@dataclass(frozen=True, slots=True)
class PaymentFailure:
    code: str | None
    message: str | None
    occurred_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: object) -> PaymentFailure | None:
        if not isinstance(raw, Mapping):
            return None
        occurred_at = _parse_datetime(raw.get("occurred_at"))
        if occurred_at is None:
            return None
        return cls(
            code=_optional_text(raw.get("code")),
            message=_optional_text(raw.get("message")),
            occurred_at=occurred_at,
        )


@dataclass(frozen=True, slots=True)
class RefundRecord:
    amount: int
    processed_at: datetime
    payment_intent_id: str

    def to_dict(self) -> dict[str, object]:
        return {
            "amount": self.amount,
            "processed_at": self.processed_at.isoformat(),
            "payment_intent_id": self.payment_intent_id,
        }

    @classmethod
    def from_dict(cls, raw: object) -> RefundRecord | None:
        if not isinstance(raw, Mapping):
            return None
        processed_at = _parse_datetime(raw.get("processed_at"))
        amount = _optional_int(raw.get("amount"))
        payment_intent_id = raw.get("payment_intent_id")
        if processed_at is None or amount is None or payment_intent_id is None:
            return None
        return cls(amount=amount, processed_at=processed_at, payment_intent_id=str(payment_intent_id))


@dataclass(frozen=True, slots=True)
class SubscriptionMetadata:
    completed_payments: tuple[str, ...] = ()
    last_captured_total: int | None = None
    last_failed_payment: str | None = None
    failure: PaymentFailure | None = None
    last_refund: RefundRecord | None = None
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, object] | None) -> SubscriptionMetadata:
        raw = raw or {}
        completed = raw.get("completed_payments")
        completed_items = completed if isinstance(completed, list) else []
        return cls(
            completed_payments=tuple(dict.fromkeys(str(item) for item in completed_items)),
            last_captured_total=_optional_int(raw.get("last_captured_total")),
            last_failed_payment=_optional_text(raw.get("last_failed_payment")),
            failure=PaymentFailure.from_dict(raw.get("failure")),
            last_refund=RefundRecord.from_dict(raw.get("last_refund")),
            extra={key: value for key, value in raw.items() if key not in _SUBSCRIPTION_FIELDS},
        )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.extra)
        if self.completed_payments:
            payload["completed_payments"] = list(self.completed_payments)
        if self.last_captured_total is not None:
            payload["last_captured_total"] = self.last_captured_total
        if self.last_failed_payment is not None:
            payload["last_failed_payment"] = self.last_failed_payment
        if self.failure is not None:
            payload["failure"] = self.failure.to_dict()
        if self.last_refund is not None:
            payload["last_refund"] = self.last_refund.to_dict()
        return payload

    def with_completed_payment(self, payment_public_id: str, *, captured_total: int) -> SubscriptionMetadata:
        completed = tuple(dict.fromkeys((*self.completed_payments, payment_public_id)))
        return replace(self, completed_payments=completed, last_captured_total=captured_total)

    def with_failure(self, payment_public_id: str, failure: PaymentFailure) -> SubscriptionMetadata:
        return replace(self, last_failed_payment=payment_public_id, failure=failure)

    def with_refund(self, refund: RefundRecord) -> SubscriptionMetadata:
        return replace(self, last_refund=refund)


__all__ = [
    "ActiveSubscription",
    "MAX_MEMBER_TAGS",
    "MEMBER_ADMIN_FIELDS",
    "MemberMetadata",
    "PaymentFailure",
    "RefundRecord",
    "SubscriptionMetadata",
    "flatten_search_values",
    "normalize_tags",
    "search_text",
]
