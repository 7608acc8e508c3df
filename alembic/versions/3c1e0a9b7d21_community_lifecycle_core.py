"""community_lifecycle_core

Revision ID: 3c1e0a9b7d21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3c1e0a9b7d21"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "communities",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("slug", sa.String(150), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("slug", name="uq_communities_slug"),
    )

    op.create_table(
        "community_members",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default=sa.text("'member'")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('owner','admin','moderator','member')", name="ck_community_members_role"),
        sa.CheckConstraint("status IN ('active','pending','banned')", name="ck_community_members_status"),
        sa.CheckConstraint(
            "(status = 'active' AND left_at IS NULL) OR (status <> 'active' AND left_at IS NOT NULL)",
            name="ck_community_members_left_at",
        ),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
    )
    op.create_index("idx_community_members_community_status", "community_members", ["community_id", "status"])
    op.create_index("idx_community_members_community_joined", "community_members", ["community_id", "joined_at"])

    op.create_table(
        "community_paywall_tiers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("slug", sa.String(80), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("billing_interval", sa.String(16), nullable=False, server_default=sa.text("'monthly'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "billing_interval IN ('monthly','quarterly','annual','lifetime')",
            name="ck_community_paywall_tiers_billing_interval",
        ),
        sa.CheckConstraint("price_cents >= 0", name="ck_community_paywall_tiers_price_non_negative"),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("community_id", "slug", name="uq_community_paywall_tiers_community_slug"),
    )

    op.create_table(
        "community_affiliates",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("referral_code", sa.String(60), nullable=False),
        sa.Column("commission_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("250")),
        sa.Column("total_earned_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_paid_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('pending','approved','suspended','revoked')",
            name="ck_community_affiliates_status",
        ),
        sa.CheckConstraint("total_earned_cents >= 0", name="ck_community_affiliates_earned_non_negative"),
        sa.CheckConstraint("total_paid_cents >= 0", name="ck_community_affiliates_paid_non_negative"),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_affiliates_community_user"),
        sa.UniqueConstraint("referral_code", name="uq_community_affiliates_referral_code"),
    )
    op.create_index("idx_community_affiliates_community_status", "community_affiliates", ["community_id", "status"])

    op.create_table(
        "community_subscriptions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("public_id", sa.String(64), nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("tier_id", sa.BigInteger(), nullable=False),
        sa.Column("affiliate_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'incomplete'")),
        sa.Column("provider_status", sa.String(60), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("latest_payment_intent_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('incomplete','trialing','pending','active','past_due','canceled','expired')",
            name="ck_community_subscriptions_status",
        ),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tier_id"], ["community_paywall_tiers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["affiliate_id"], ["community_affiliates.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("public_id", name="uq_community_subscriptions_public_id"),
    )
    op.create_index(
        "idx_community_subscriptions_community_status",
        "community_subscriptions",
        ["community_id", "status"],
    )
    op.create_index("idx_community_subscriptions_user_status", "community_subscriptions", ["user_id", "status"])

    op.create_table(
        "community_moderation_cases",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("public_id", sa.String(64), nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('pending','in_review','escalated','resolved','dismissed')",
            name="ck_community_moderation_cases_status",
        ),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resolved_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("public_id", name="uq_community_moderation_cases_public_id"),
    )
    op.create_index(
        "idx_community_moderation_cases_community_status",
        "community_moderation_cases",
        ["community_id", "status"],
    )

    op.create_table(
        "domain_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("performed_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_domain_events_entity", "domain_events", ["entity_type", "entity_id"])
    op.create_index("idx_domain_events_type_created", "domain_events", ["event_type", "created_at"])

    op.create_table(
        "platform_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )


def downgrade() -> None:
    op.drop_table("platform_settings")
    op.drop_index("idx_domain_events_type_created", table_name="domain_events")
    op.drop_index("idx_domain_events_entity", table_name="domain_events")
    op.drop_table("domain_events")
    op.drop_index("idx_community_moderation_cases_community_status", table_name="community_moderation_cases")
    op.drop_table("community_moderation_cases")
    op.drop_index("idx_community_subscriptions_user_status", table_name="community_subscriptions")
    op.drop_index("idx_community_subscriptions_community_status", table_name="community_subscriptions")
    op.drop_table("community_subscriptions")
    op.drop_index("idx_community_affiliates_community_status", table_name="community_affiliates")
    op.drop_table("community_affiliates")
    op.drop_table("community_paywall_tiers")
    op.drop_index("idx_community_members_community_joined", table_name="community_members")
    op.drop_index("idx_community_members_community_status", table_name="community_members")
    op.drop_table("community_members")
    op.drop_table("communities")
    op.drop_table("users")
