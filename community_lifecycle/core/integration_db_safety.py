from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
ALLOWED_LOCAL_HOSTS = {
    "localhost",
    "127.0.0.1",
    "::1",
    "postgres",
    "community_postgres",
}


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def assess_integration_db_safety(database_url: str) -> IntegrationDbSafetyResult:
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()

    def _result(is_safe: bool, reason: str) -> IntegrationDbSafetyResult:
        return IntegrationDbSafetyResult(
            is_safe=is_safe,
            reason=reason,
            database_name=db_name,
            host=host,
        )

    if parsed.get_backend_name() != "postgresql":
        return _result(False, "Integration tests need a PostgreSQL database (JSONB, row locks).")
    if not db_name:
        return _result(False, "Database name is empty.")
    if TEST_DB_NAME_RE.search(db_name) is None:
        return _result(False, "Database name must contain 'test'.")
    if host not in ALLOWED_LOCAL_HOSTS:
        return _result(False, f"Host '{host}' is not an allowed local test host.")
    return _result(True, "ok")


def assert_safe_integration_db(database_url: str) -> None:
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to run community lifecycle integration tests: tables are truncated.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        "Use a dedicated local PostgreSQL database such as 'community_lifecycle_test'."
    )
