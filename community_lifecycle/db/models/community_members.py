from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from community_lifecycle.db.models.base import Base


class CommunityMember(Base):
    __tablename__ = "community_members"
    __table_args__ = (
        CheckConstraint(
            "role IN ('owner','admin','moderator','member')",
            name="ck_community_members_role",
        ),
        CheckConstraint(
            "status IN ('active','pending','banned')",
            name="ck_community_members_status",
        ),
        CheckConstraint(
            "(status = 'active' AND left_at IS NULL) OR (status <> 'active' AND left_at IS NOT NULL)",
            name="ck_community_members_left_at",
        ),
        UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
        Index("idx_community_members_community_status", "community_id", "status"),
        Index("idx_community_members_community_joined", "community_id", "joined_at"),
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
    role: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'member'"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
