from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from community_lifecycle.db.models.base import Base


class CommunityAffiliate(Base):
    __tablename__ = "community_affiliates"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','suspended','revoked')",
            name="ck_community_affiliates_status",
        ),
        CheckConstraint("total_earned_cents >= 0", name="ck_community_affiliates_earned_non_negative"),
        CheckConstraint("total_paid_cents >= 0", name="ck_community_affiliates_paid_non_negative"),
        UniqueConstraint("community_id", "user_id", name="uq_community_affiliates_community_user"),
        UniqueConstraint("referral_code", name="uq_community_affiliates_referral_code"),
        Index("idx_community_affiliates_community_status", "community_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    community_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'pending'"))
    referral_code: Mapped[str] = mapped_column(String(60), nullable=False)
    commission_rate_bps: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("250"))
    amount_earned_cents: Mapped[int] = mapped_column(
        "total_earned_cents",
        BigInteger,
        nullable=False,
        server_default=text("0"),
    )
    amount_paid_cents: Mapped[int] = mapped_column(
        "total_paid_cents",
        BigInteger,
        nullable=False,
        server_default=text("0"),
    )
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
