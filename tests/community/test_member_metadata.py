from __future__ import annotations

from datetime import datetime, timezone

from community_lifecycle.community.metadata import (
    MAX_MEMBER_TAGS,
    ActiveSubscription,
    MemberMetadata,
    PaymentFailure,
    SubscriptionMetadata,
    flatten_search_values,
    normalize_tags,
)

UTC = timezone.utc


def test_normalize_tags_accepts_comma_string_and_lists() -> None:
    assert normalize_tags(" growth, ,ops ,") == ("growth", "ops")
    assert normalize_tags(["  a ", "", 3]) == ("a", "3")
    assert normalize_tags(None) == ()
    assert len(normalize_tags([f"tag-{index}" for index in range(30)])) == MAX_MEMBER_TAGS


def test_merge_admin_fields_touches_only_present_keys() -> None:
    metadata = MemberMetadata(title="Coach", notes="Keeps office hours", tags=("ops",))

    merged = metadata.merge_admin_fields({"title": "", "tags": "growth, mentoring"})

    assert merged.title is None
    assert merged.notes == "Keeps office hours"
    assert merged.tags == ("growth", "mentoring")
    assert metadata.merge_admin_fields({"unrelated": 1}) is metadata


def test_member_metadata_round_trips_unknown_keys() -> None:
    raw = {
        "title": "Mentor",
        "custom_badge": {"level": 3},
        "active_subscription": {
            "subscription_id": "sub_1",
            "tier_id": 4,
            "renewed_at": "2026-03-10T12:00:00+00:00",
        },
    }

    metadata = MemberMetadata.from_dict(raw)

    assert metadata.extra == {"custom_badge": {"level": 3}}
    assert metadata.active_subscription == ActiveSubscription(
        subscription_id="sub_1",
        tier_id=4,
        renewed_at=datetime(2026, 3, 10, 12, 0, tzinfo=UTC),
    )
    assert metadata.to_dict() == raw


def test_admin_merge_never_clobbers_lifecycle_fields() -> None:
    active = ActiveSubscription(subscription_id="sub_1", tier_id=4, renewed_at=datetime(2026, 3, 10, tzinfo=UTC))
    metadata = MemberMetadata(active_subscription=active, extra={"source": "import"})

    merged = metadata.merge_admin_fields({"title": "Lead", "notes": None})
    invited = MemberMetadata(title="Fresh").with_lifecycle_from(metadata)

    assert merged.active_subscription == active
    assert invited.title == "Fresh"
    assert invited.active_subscription == active
    assert invited.extra == {"source": "import"}


def test_with_active_subscription_clears_pending_marker() -> None:
    metadata = MemberMetadata(pending_subscription="sub_1")
    active = ActiveSubscription(subscription_id="sub_1", tier_id=4, renewed_at=datetime(2026, 3, 10, tzinfo=UTC))

    updated = metadata.with_active_subscription(active)

    assert updated.pending_subscription is None
    assert "pending_subscription" not in updated.to_dict()


def test_completed_payments_behave_as_a_set() -> None:
    metadata = SubscriptionMetadata.from_dict({"completed_payments": ["pi_a", "pi_a", "pi_b"]})
    assert metadata.completed_payments == ("pi_a", "pi_b")

    replayed = metadata.with_completed_payment("pi_b", captured_total=4500).with_completed_payment(
        "pi_c",
        captured_total=4500,
    )
    assert replayed.completed_payments == ("pi_a", "pi_b", "pi_c")
    assert replayed.last_captured_total == 4500


def test_subscription_metadata_serializes_failure() -> None:
    failure = PaymentFailure(code="card_declined", message="Declined", occurred_at=datetime(2026, 3, 10, tzinfo=UTC))

    payload = SubscriptionMetadata(extra={"checkout": "web"}).with_failure("pi_9", failure).to_dict()

    assert payload == {
        "checkout": "web",
        "last_failed_payment": "pi_9",
        "failure": {
            "code": "card_declined",
            "message": "Declined",
            "occurred_at": "2026-03-10T00:00:00+00:00",
        },
    }
    assert SubscriptionMetadata.from_dict(payload).failure == failure


def test_flatten_search_values_unwraps_arrays_once() -> None:
    values = flatten_search_values(
        {"tags": ["mentor", "ops"], "seats": 3, "verified": True, "missing": None, "nested": [["x"]]}
    )

    assert values == ["mentor", "ops", "3", "true", '["x"]']
