from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from community_lifecycle.db.models.base import Base


class PaywallTier(Base):
    __tablename__ = "community_paywall_tiers"
    __table_args__ = (
        CheckConstraint(
            "billing_interval IN ('monthly','quarterly','annual','lifetime')",
            name="ck_community_paywall_tiers_billing_interval",
        ),
        CheckConstraint("price_cents >= 0", name="ck_community_paywall_tiers_price_non_negative"),
        UniqueConstraint("community_id", "slug", name="uq_community_paywall_tiers_community_slug"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False,
    )
    slug: Mapped[str] = mapped_column(String(80), nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default=text("'USD'"))
    billing_interval: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'monthly'"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
