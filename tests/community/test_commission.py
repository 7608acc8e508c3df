from __future__ import annotations

import pydantic
import pytest

from community_lifecycle.community.commission import (
    COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION,
    CommissionConfig,
    clamp_int,
    split_commission,
)
from community_lifecycle.core.config import Settings


def test_split_commission_applies_configured_share() -> None:
    config = CommissionConfig(affiliate_share_bps=2500)

    split = split_commission(4500, config, category=COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION)

    assert split.affiliate_amount_cents == 1125
    assert split.platform_amount_cents == 3375
    assert split.platform_amount_cents + split.affiliate_amount_cents == 4500
    assert split.category == COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION


@pytest.mark.parametrize(
    ("gross", "expected_affiliate"),
    [
        (2, 0),
        (6, 1),
        (10, 2),
        (14, 3),
    ],
)
def test_split_commission_rounds_half_down(gross: int, expected_affiliate: int) -> None:
    split = split_commission(gross, CommissionConfig(affiliate_share_bps=2500), category="community_subscription")

    assert split.affiliate_amount_cents == expected_affiliate
    assert split.platform_amount_cents == gross - expected_affiliate


def test_split_commission_keeps_minimum_platform_fee() -> None:
    config = CommissionConfig(affiliate_share_bps=5000, minimum_platform_fee_cents=800)

    split = split_commission(1000, config, category="community_subscription")
    assert (split.platform_amount_cents, split.affiliate_amount_cents) == (800, 200)

    small = split_commission(500, config, category="community_subscription")
    assert (small.platform_amount_cents, small.affiliate_amount_cents) == (500, 0)


@pytest.mark.parametrize("gross", [0, -250])
def test_split_commission_zero_and_negative_gross(gross: int) -> None:
    split = split_commission(gross, CommissionConfig(), category="community_subscription")

    assert split.platform_amount_cents == 0
    assert split.affiliate_amount_cents == 0


def test_split_commission_disabled_keeps_everything_on_platform() -> None:
    split = split_commission(4500, CommissionConfig(enabled=False), category="community_subscription")

    assert (split.platform_amount_cents, split.affiliate_amount_cents) == (4500, 0)


def test_split_commission_uses_category_override() -> None:
    config = CommissionConfig(affiliate_share_bps=2500, category_share_bps={"community_subscription": 1000})

    assert split_commission(4500, config, category="community_subscription").affiliate_amount_cents == 450
    assert split_commission(4500, config, category="live_donation").affiliate_amount_cents == 1125


def test_commission_config_rejects_out_of_range_share() -> None:
    with pytest.raises(pydantic.ValidationError):
        CommissionConfig(affiliate_share_bps=9000)


def test_category_shares_are_normalized_and_clamped() -> None:
    config = CommissionConfig(category_share_bps={" Community_Subscription ": 7000, "tips": -5})

    assert config.category_share_bps == {"community_subscription": 5000, "tips": 0}


def test_from_monetization_value_clamps_and_falls_back() -> None:
    defaults = CommissionConfig(affiliate_share_bps=2500, minimum_platform_fee_cents=10)

    config = CommissionConfig.from_monetization_value(
        {"commissions": {"affiliate_share_bps": 9000, "minimum_platform_fee_cents": -3, "enabled": False}},
        defaults=defaults,
    )
    assert config.affiliate_share_bps == 5000
    assert config.minimum_platform_fee_cents == 0
    assert config.enabled is False

    partial = CommissionConfig.from_monetization_value({"commissions": {}}, defaults=defaults)
    assert partial.affiliate_share_bps == 2500
    assert partial.minimum_platform_fee_cents == 10

    assert CommissionConfig.from_monetization_value(None, defaults=defaults) is defaults
    assert CommissionConfig.from_monetization_value({"commissions": "off"}, defaults=defaults) is defaults


@pytest.mark.parametrize(
    ("stored", "default_enabled", "expected"),
    [
        ("false", True, False),
        ("0", True, False),
        ("off", True, False),
        ("TRUE", False, True),
        (1, False, True),
        ("maybe", False, False),
        ("maybe", True, True),
        (None, False, False),
    ],
)
def test_stored_enabled_flag_is_parsed_not_truthy(stored, default_enabled, expected) -> None:
    defaults = CommissionConfig(enabled=default_enabled)

    config = CommissionConfig.from_monetization_value({"commissions": {"enabled": stored}}, defaults=defaults)

    assert config.enabled is expected


def test_commission_disabled_by_stored_string_pays_no_affiliate() -> None:
    config = CommissionConfig.from_monetization_value(
        {"commissions": {"enabled": "false", "affiliate_share_bps": 2500}},
        defaults=CommissionConfig(),
    )

    split = split_commission(4500, config, category=COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION)

    assert split.affiliate_amount_cents == 0
    assert split.platform_amount_cents == 4500


def test_from_settings_reads_commission_defaults() -> None:
    settings = Settings(AFFILIATE_SHARE_BPS=1500, MINIMUM_PLATFORM_FEE_CENTS=25, COMMISSION_ENABLED=False)

    config = CommissionConfig.from_settings(settings)

    assert config.affiliate_share_bps == 1500
    assert config.minimum_platform_fee_cents == 25
    assert config.enabled is False


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("12.5", 12),
        ("12.51", 13),
        (7, 7),
        (None, 99),
        (True, 99),
        ("abc", 99),
        ("NaN", 99),
        (-40, 0),
        (10_000, 5000),
    ],
)
def test_clamp_int(value: object, expected: int) -> None:
    assert clamp_int(value, minimum=0, maximum=5000, fallback=99) == expected
