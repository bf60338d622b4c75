"""
Repository for the ``users`` table holding global offense records.
"""

from __future__ import annotations

import aiosqlite

from scanguard.datatypes.discord_datatypes import UserID
from scanguard.datatypes.sanction_datatypes import OffenseRecord


class OffenseRepo:
    """Low-level access to per-user offense counters."""

    @staticmethod
    async def increment(conn: aiosqlite.Connection, user_id: UserID) -> OffenseRecord:
        """
        Increment the user's offense count and return the updated record.

        Creates the row on first offense. The increment and the read happen in
        one statement, so two callers can never observe the same new count.
        """
        async with conn.execute(
            """
            INSERT INTO users (user_id, offense_count, globally_banned)
            VALUES (?, 1, 0)
            ON CONFLICT(user_id) DO UPDATE SET
                offense_count = offense_count + 1
            RETURNING offense_count, globally_banned
            """,
            (str(user_id),),
        ) as cursor:
            row = await cursor.fetchone()

        return OffenseRecord(
            user_id=UserID(user_id),
            offense_count=int(row[0]),
            globally_banned=bool(row[1]),
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, user_id: UserID) -> OffenseRecord | None:
        async with conn.execute(
            "SELECT offense_count, globally_banned FROM users WHERE user_id = ?",
            (str(user_id),),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return OffenseRecord(
            user_id=UserID(user_id),
            offense_count=int(row[0]),
            globally_banned=bool(row[1]),
        )

    @staticmethod
    async def set_globally_banned(conn: aiosqlite.Connection, user_id: UserID, banned: bool = True) -> None:
        """Set the global ban flag, creating the user row if needed."""
        await conn.execute(
            """
            INSERT INTO users (user_id, offense_count, globally_banned)
            VALUES (?, 0, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                globally_banned = excluded.globally_banned
            """,
            (str(user_id), int(banned)),
        )
