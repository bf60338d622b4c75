"""
Repository for the guild_settings and guild_moderator_roles tables.
"""

from __future__ import annotations

from typing import Dict, List

import aiosqlite

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID
from scanguard.datatypes.guild_settings import GuildSettings


class GuildSettingsRepo:
    """CRUD for per-guild settings and their moderator roles."""

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: GuildID) -> GuildSettings | None:
        async with conn.execute(
            "SELECT guild_id, detection_enabled, auto_delete, auto_ban, alert_channel_id "
            "FROM guild_settings WHERE guild_id = ?",
            (guild_id.to_int(),),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None

        async with conn.execute(
            "SELECT role_id FROM guild_moderator_roles WHERE guild_id = ? ORDER BY role_id",
            (guild_id.to_int(),),
        ) as cursor:
            role_rows = await cursor.fetchall()

        return GuildSettings(
            guild_id=GuildID(row["guild_id"]),
            detection_enabled=bool(row["detection_enabled"]),
            auto_delete=bool(row["auto_delete"]),
            auto_ban=bool(row["auto_ban"]),
            alert_channel_id=ChannelID(row["alert_channel_id"]) if row["alert_channel_id"] is not None else None,
            moderator_role_ids=[r[0] for r in role_rows],
        )

    @staticmethod
    async def get_all(conn: aiosqlite.Connection) -> Dict[GuildID, GuildSettings]:
        async with conn.execute("SELECT guild_id FROM guild_settings") as cursor:
            rows = await cursor.fetchall()
        result: Dict[GuildID, GuildSettings] = {}
        for row in rows:
            settings = await GuildSettingsRepo.get(conn, GuildID(row[0]))
            if settings is not None:
                result[settings.guild_id] = settings
        return result

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, settings: GuildSettings) -> None:
        """Insert or update the settings row and replace its moderator roles."""
        gid = settings.guild_id.to_int()
        await conn.execute(
            """
            INSERT INTO guild_settings (guild_id, detection_enabled, auto_delete, auto_ban, alert_channel_id)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                detection_enabled = excluded.detection_enabled,
                auto_delete       = excluded.auto_delete,
                auto_ban          = excluded.auto_ban,
                alert_channel_id  = excluded.alert_channel_id
            """,
            (
                gid,
                int(settings.detection_enabled),
                int(settings.auto_delete),
                int(settings.auto_ban),
                settings.alert_channel_id.to_int() if settings.alert_channel_id else None,
            ),
        )
        await GuildSettingsRepo.replace_moderator_roles(conn, settings.guild_id, settings.moderator_role_ids)

    @staticmethod
    async def replace_moderator_roles(
        conn: aiosqlite.Connection, guild_id: GuildID, role_ids: List[int]
    ) -> None:
        gid = guild_id.to_int()
        await conn.execute("DELETE FROM guild_moderator_roles WHERE guild_id = ?", (gid,))
        if role_ids:
            await conn.executemany(
                "INSERT INTO guild_moderator_roles (guild_id, role_id) VALUES (?, ?)",
                [(gid, rid) for rid in sorted(set(role_ids))],
            )
