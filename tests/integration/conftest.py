from __future__ import annotations

import pytest
from sqlalchemy import text

import community_lifecycle.db.models  # noqa: F401
from community_lifecycle.core.integration_db_safety import assert_safe_integration_db
from community_lifecycle.db.models.base import Base
from community_lifecycle.db.session import engine

TRUNCATE_TABLES = (
    "domain_events",
    "community_moderation_cases",
    "community_subscriptions",
    "community_affiliates",
    "community_paywall_tiers",
    "community_members",
    "communities",
    "platform_settings",
    "users",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Pooled asyncpg connections are bound to the loop that opened them.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    assert_safe_integration_db(str(engine.url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
