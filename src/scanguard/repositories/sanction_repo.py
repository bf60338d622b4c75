"""
Repository for the ``sanctions`` table.

``expires_at`` is stored as INTEGER unix seconds (UTC) so comparisons need no
string parsing or timezone conversion.
"""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from scanguard.datatypes.discord_datatypes import GuildID, UserID
from scanguard.datatypes.sanction_datatypes import SanctionKind, SanctionRecord

_COLUMNS = "id, user_id, guild_id, level, kind, active, reason, expires_at, detection_id, decided_by"


def _row_to_sanction(row: aiosqlite.Row) -> SanctionRecord:
    expires_at = row["expires_at"]
    return SanctionRecord(
        id=row["id"],
        user_id=UserID(row["user_id"]),
        guild_id=GuildID(row["guild_id"]),
        level=row["level"],
        kind=SanctionKind(row["kind"]),
        active=bool(row["active"]),
        reason=row["reason"],
        expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at is not None else None,
        detection_id=row["detection_id"],
        decided_by=row["decided_by"],
    )


class SanctionRepo:
    """Low-level CRUD for the ``sanctions`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, record: SanctionRecord) -> int:
        """Insert a sanction and return its row id. ``record.id`` is ignored."""
        expires_at = int(record.expires_at.timestamp()) if record.expires_at else None
        cursor = await conn.execute(
            """
            INSERT INTO sanctions (user_id, guild_id, level, kind, active, reason, expires_at, detection_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(record.user_id),
                record.guild_id.to_int(),
                record.level,
                record.kind.value,
                int(record.active),
                record.reason,
                expires_at,
                record.detection_id,
            ),
        )
        return int(cursor.lastrowid)

    @staticmethod
    async def get(conn: aiosqlite.Connection, sanction_id: int) -> SanctionRecord | None:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM sanctions WHERE id = ?",
            (sanction_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_sanction(row) if row is not None else None

    @staticmethod
    async def transition(
        conn: aiosqlite.Connection,
        sanction_id: int,
        from_kind: SanctionKind,
        to_kind: SanctionKind,
        active: bool,
        decided_by: str | None = None,
    ) -> bool:
        """
        Move a sanction from ``from_kind`` to ``to_kind`` in place.

        Returns False (and changes nothing) when the row is not currently in
        ``from_kind``, which makes repeated decisions harmless.
        """
        cursor = await conn.execute(
            """
            UPDATE sanctions SET kind = ?, active = ?, decided_by = ?
            WHERE id = ? AND kind = ?
            """,
            (to_kind.value, int(active), decided_by, sanction_id, from_kind.value),
        )
        return cursor.rowcount == 1
