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
    "quiz_pvp_postgres",
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

    def _unsafe(reason: str) -> IntegrationDbSafetyResult:
        return IntegrationDbSafetyResult(
            is_safe=False,
            reason=reason,
            database_name=db_name,
            host=host,
        )

    if parsed.get_backend_name() != "postgresql":
        return _unsafe("Match store integration tests run only against PostgreSQL.")
    if not db_name:
        return _unsafe("Database name is empty.")
    if TEST_DB_NAME_RE.search(db_name) is None:
        return _unsafe("Database name must contain 'test'.")
    if host not in ALLOWED_LOCAL_HOSTS:
        return _unsafe("Host is not a local integration-test host.")

    return IntegrationDbSafetyResult(
        is_safe=True,
        reason="ok",
        database_name=db_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str) -> None:
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to TRUNCATE match tables outside a test database.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        "Point DATABASE_URL at a local PostgreSQL database such as 'quiz_pvp_test'."
    )
