from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from app.core.integration_db_safety import assert_safe_integration_db
from app.db.session import engine

MATCH_STORE_TABLES = (
    "pvp_history_entries",
    "pvp_challenges",
    "pvp_matches",
    "users",
)


@pytest.fixture(scope="session", autouse=True)
def refuse_non_test_database() -> None:
    assert_safe_integration_db(str(engine.url))


async def _skip_without_postgres() -> None:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OSError, DBAPIError) as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"match store integration tests need Postgres: {type(exc).__name__}")


@pytest.fixture(autouse=True)
async def empty_match_store() -> None:
    # asyncpg connections are bound to the loop that opened them.
    await engine.dispose()
    await _skip_without_postgres()

    async with engine.begin() as conn:
        await conn.execute(
            text(f"TRUNCATE TABLE {', '.join(MATCH_STORE_TABLES)} RESTART IDENTITY CASCADE")
        )

    yield

    await engine.dispose()
