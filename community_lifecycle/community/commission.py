from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_DOWN, Decimal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from community_lifecycle.core.config import Settings

COMMISSION_CATEGORY_COMMUNITY_SUBSCRIPTION = "community_subscription"

BASIS_POINTS = 10_000
MAX_AFFILIATE_SHARE_BPS = 5_000
MAX_MINIMUM_FEE_CENTS = 10_000_000


def clamp_int(value: object, *, minimum: int, maximum: int, fallback: int) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    try:
        numeric = Decimal(str(value))
    except ArithmeticError:
        return fallback
    if not numeric.is_finite():
        return fallback
    rounded = int(numeric.to_integral_value(rounding=ROUND_HALF_DOWN))
    return min(max(rounded, minimum), maximum)


_BOOL_ADAPTER = TypeAdapter(bool)


def coerce_bool(value: object, *, fallback: bool) -> bool:
    """Stored flags may be booleans or strings such as ``"false"`` or ``"0"``."""
    if value is None:
        return fallback
    try:
        return _BOOL_ADAPTER.validate_python(value)
    except ValidationError:
        return fallback


class CommissionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    affiliate_share_bps: int = Field(default=2500, ge=0, le=MAX_AFFILIATE_SHARE_BPS)
    category_share_bps: dict[str, int] = Field(default_factory=dict)
    minimum_platform_fee_cents: int = Field(default=0, ge=0, le=MAX_MINIMUM_FEE_CENTS)

    @field_validator("category_share_bps")
    @classmethod
    def _clamp_category_shares(cls, value: dict[str, int]) -> dict[str, int]:
        return {
            str(category).strip().lower(): clamp_int(
                share,
                minimum=0,
                maximum=MAX_AFFILIATE_SHARE_BPS,
                fallback=0,
            )
            for category, share in value.items()
        }

    def share_bps_for(self, category: str) -> int:
        return self.category_share_bps.get(category, self.affiliate_share_bps)

    @classmethod
    def from_settings(cls, settings: Settings) -> CommissionConfig:
        return cls(
            enabled=settings.commission_enabled,
            affiliate_share_bps=settings.affiliate_share_bps,
            minimum_platform_fee_cents=min(settings.minimum_platform_fee_cents, MAX_MINIMUM_FEE_CENTS),
        )

    @classmethod
    def from_monetization_value(
        cls,
        value: Mapping[str, object] | None,
        *,
        defaults: CommissionConfig,
    ) -> CommissionConfig:
        """Normalize the ``commissions`` section of the stored monetization settings."""
        raw = (value or {}).get("commissions")
        if not isinstance(raw, Mapping):
            return defaults

        raw_categories = raw.get("category_share_bps")
        return cls(
            enabled=coerce_bool(raw.get("enabled"), fallback=defaults.enabled),
            affiliate_share_bps=clamp_int(
                raw.get("affiliate_share_bps"),
                minimum=0,
                maximum=MAX_AFFILIATE_SHARE_BPS,
                fallback=defaults.affiliate_share_bps,
            ),
            category_share_bps=(
                dict(raw_categories) if isinstance(raw_categories, Mapping) else defaults.category_share_bps
            ),
            minimum_platform_fee_cents=clamp_int(
                raw.get("minimum_platform_fee_cents"),
                minimum=0,
                maximum=MAX_MINIMUM_FEE_CENTS,
                fallback=defaults.minimum_platform_fee_cents,
            ),
        )


@dataclass(frozen=True, slots=True)
class CommissionSplit:
    platform_amount_cents: int
    affiliate_amount_cents: int
    category: str


def split_commission(
    gross_amount_cents: int,
    config: CommissionConfig,
    *,
    category: str,
) -> CommissionSplit:
    """Split a captured amount between the platform and the referring affiliate.

    The affiliate share is ``gross * bps / 10_000`` rounded half-down to whole
    cents, reduced if needed so the platform keeps its minimum fee. The two
    parts always add up to the (non-negative) gross amount.
    """
    gross = max(int(gross_amount_cents), 0)
    if gross == 0 or not config.enabled:
        return CommissionSplit(platform_amount_cents=gross, affiliate_amount_cents=0, category=category)

    share_bps = config.share_bps_for(category)
    raw_share = Decimal(gross * share_bps) / Decimal(BASIS_POINTS)
    affiliate_amount = int(raw_share.to_integral_value(rounding=ROUND_HALF_DOWN))

    affiliate_cap = max(gross - config.minimum_platform_fee_cents, 0)
    affiliate_amount = min(affiliate_amount, affiliate_cap)

    return CommissionSplit(
        platform_amount_cents=gross - affiliate_amount,
        affiliate_amount_cents=affiliate_amount,
        category=category,
    )
