"""
GuildSettingsService: cached access to per-guild settings.

Reads go through an in-memory cache filled lazily from the database; writes
persist first and then refresh the cache. Per-guild locks serialize saves for
the same guild while different guilds proceed concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Dict

from scanguard.database.database import Database
from scanguard.datatypes.discord_datatypes import GuildID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.repositories.guild_settings_repo import GuildSettingsRepo
from scanguard.util.logger import get_logger

logger = get_logger("guild_settings_service")


class GuildSettingsService:
    def __init__(self, db: Database) -> None:
        self.db = db
        self._cache: Dict[GuildID, GuildSettings] = {}
        self._per_guild_locks: Dict[GuildID, asyncio.Lock] = {}

    def _lock_for(self, guild_id: GuildID) -> asyncio.Lock:
        if guild_id not in self._per_guild_locks:
            self._per_guild_locks[guild_id] = asyncio.Lock()
        return self._per_guild_locks[guild_id]

    async def load_all(self) -> int:
        """Fill the cache with every persisted guild. Returns the number loaded."""
        async with self.db.read() as conn:
            loaded = await GuildSettingsRepo.get_all(conn)
        self._cache.update(loaded)
        logger.info("[GUILD SETTINGS SERVICE] Loaded %d guilds from database", len(loaded))
        return len(loaded)

    async def get(self, guild_id: GuildID) -> GuildSettings:
        """
        Return the guild's settings, or unsaved defaults when the guild has
        never been configured.
        """
        cached = self._cache.get(guild_id)
        if cached is not None:
            return cached

        async with self.db.read() as conn:
            settings = await GuildSettingsRepo.get(conn, guild_id)
        if settings is None:
            return GuildSettings(guild_id=guild_id)
        self._cache[guild_id] = settings
        return settings

    async def ensure_defaults(self, guild_id: GuildID) -> GuildSettings:
        """Persist default settings for a guild that has none yet."""
        async with self._lock_for(guild_id):
            async with self.db.transaction() as conn:
                existing = await GuildSettingsRepo.get(conn, guild_id)
                if existing is not None:
                    self._cache[guild_id] = existing
                    return existing
                settings = GuildSettings(guild_id=guild_id)
                await GuildSettingsRepo.upsert(conn, settings)

        self._cache[guild_id] = settings
        logger.info("[GUILD SETTINGS SERVICE] Created default settings for guild %s", guild_id)
        return settings

    async def save(self, settings: GuildSettings) -> None:
        """Persist the settings atomically and refresh the cache."""
        async with self._lock_for(settings.guild_id):
            async with self.db.transaction() as conn:
                await GuildSettingsRepo.upsert(conn, settings)
            self._cache[settings.guild_id] = settings
        logger.debug("[GUILD SETTINGS SERVICE] Persisted guild %s", settings.guild_id)
