"""
Tests for the connection manager and schema creation.
"""

import pytest

from scanguard.database.database import Database
from scanguard.database.db_schema import SCHEMA_VERSION


@pytest.mark.asyncio
async def test_initialize_creates_schema(db):
    async with db.read() as conn:
        async with conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'") as cursor:
            tables = {row[0] for row in await cursor.fetchall()}
        async with conn.execute("SELECT version FROM schema_version") as cursor:
            versions = [row[0] for row in await cursor.fetchall()]

    assert {"users", "detections", "hash_database", "sanctions", "moderator_reviews", "guild_settings"} <= tables
    assert versions == [SCHEMA_VERSION]


@pytest.mark.asyncio
async def test_initialize_is_idempotent(tmp_path):
    database = Database(tmp_path / "nested" / "app.db")
    assert await database.initialize()
    assert await database.initialize()
    assert database.is_initialized
    await database.shutdown()
    await database.shutdown()
    assert not database.is_initialized


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as conn:
            await conn.execute("INSERT INTO users (user_id, offense_count) VALUES ('1', 1)")
            raise RuntimeError("abort")

    async with db.read() as conn:
        async with conn.execute("SELECT COUNT(*) FROM users") as cursor:
            assert (await cursor.fetchone())[0] == 0


@pytest.mark.asyncio
async def test_offense_count_cannot_go_negative(db):
    with pytest.raises(Exception):
        async with db.transaction() as conn:
            await conn.execute("INSERT INTO users (user_id, offense_count) VALUES ('1', -1)")


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path):
    path = tmp_path / "app.db"
    first = Database(path)
    await first.initialize()
    async with first.transaction() as conn:
        await conn.execute("INSERT INTO users (user_id, offense_count) VALUES ('9', 2)")
    await first.shutdown()

    second = Database(path)
    await second.initialize()
    async with second.read() as conn:
        async with conn.execute("SELECT offense_count FROM users WHERE user_id = '9'") as cursor:
            assert (await cursor.fetchone())[0] == 2
    await second.shutdown()


@pytest.mark.asyncio
async def test_read_before_initialize_raises(tmp_path):
    database = Database(tmp_path / "app.db")
    with pytest.raises(RuntimeError):
        async with database.read():
            pass
