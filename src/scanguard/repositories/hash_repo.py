"""
Repository for the ``hash_database`` table (the perceptual-hash blocklist).

Rows are never deleted: removal flips ``active`` to 0 so the history of what
was blocklisted, and by whom, stays auditable.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from scanguard.datatypes.detection_datatypes import KnownHash, Severity


def _row_to_known_hash(row: aiosqlite.Row) -> KnownHash:
    return KnownHash(
        id=row["id"],
        hash=row["hash"],
        severity=Severity(row["severity"]),
        source=row["source"],
        active=bool(row["active"]),
    )


class HashRepo:
    """Low-level CRUD for the ``hash_database`` table."""

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        hash_hex: str,
        source: str,
        severity: Severity = Severity.HIGH,
    ) -> int:
        """Insert an active blocklist entry and return its row id."""
        cursor = await conn.execute(
            "INSERT INTO hash_database (hash, hash_type, source, severity, active) "
            "VALUES (?, 'perceptual', ?, ?, 1)",
            (hash_hex, source, severity.value),
        )
        return int(cursor.lastrowid)

    @staticmethod
    async def deactivate(conn: aiosqlite.Connection, hash_hex: str) -> int:
        """Mark every active row with this hash inactive. Returns the number of rows changed."""
        cursor = await conn.execute(
            "UPDATE hash_database SET active = 0 WHERE hash = ? AND active = 1",
            (hash_hex,),
        )
        return cursor.rowcount

    @staticmethod
    async def list_active(conn: aiosqlite.Connection) -> List[KnownHash]:
        """Return active entries in insertion order."""
        async with conn.execute(
            "SELECT id, hash, severity, source, active FROM hash_database WHERE active = 1 ORDER BY id"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_known_hash(row) for row in rows]

    @staticmethod
    async def find(conn: aiosqlite.Connection, hash_hex: str) -> List[KnownHash]:
        """Return every row (active or not) carrying this exact hash."""
        async with conn.execute(
            "SELECT id, hash, severity, source, active FROM hash_database WHERE hash = ? ORDER BY id",
            (hash_hex,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_known_hash(row) for row in rows]
