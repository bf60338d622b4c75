"""
Applying bans and timeouts through the Discord API.

``DiscordEnforcer`` turns every Discord error into EnforcementFailure so the
escalation layer only has one failure type to log. ``fan_out_ban`` is
best-effort: one guild failing never stops the others.
"""

from __future__ import annotations

import datetime
from typing import Iterable, List, Protocol

import discord

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from scanguard.datatypes.sanction_datatypes import FanoutResult, TargetOutcome
from scanguard.detection.errors import EnforcementFailure
from scanguard.util.logger import get_logger

logger = get_logger("enforcement")


class Enforcer(Protocol):
    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str) -> None: ...

    async def timeout(self, guild_id: GuildID, user_id: UserID, duration: datetime.timedelta, reason: str) -> None: ...

    async def delete_message(self, guild_id: GuildID, channel_id: ChannelID, message_id: MessageID) -> None: ...

    def served_guild_ids(self) -> List[GuildID]: ...


class DiscordEnforcer:
    """Enforcer backed by a connected ``discord.Bot``."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    def served_guild_ids(self) -> List[GuildID]:
        return [GuildID(guild.id) for guild in self.bot.guilds]

    def _guild(self, guild_id: GuildID, user_id: UserID) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            raise EnforcementFailure(guild_id.to_int(), str(user_id), "guild not available")
        return guild

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str) -> None:
        guild = self._guild(guild_id, user_id)
        try:
            await guild.ban(discord.Object(id=user_id.to_int()), reason=reason, delete_message_seconds=0)
        except discord.Forbidden as exc:
            raise EnforcementFailure(guild.id, str(user_id), "missing ban permission") from exc
        except discord.HTTPException as exc:
            raise EnforcementFailure(guild.id, str(user_id), str(exc)) from exc
        logger.info("[ENFORCEMENT] Banned user %s in guild %s", user_id, guild.id)

    async def timeout(self, guild_id: GuildID, user_id: UserID, duration: datetime.timedelta, reason: str) -> None:
        guild = self._guild(guild_id, user_id)
        try:
            member = guild.get_member(user_id.to_int()) or await guild.fetch_member(user_id.to_int())
            await member.timeout_for(duration, reason=reason)
        except discord.NotFound as exc:
            raise EnforcementFailure(guild.id, str(user_id), "member not found") from exc
        except discord.Forbidden as exc:
            raise EnforcementFailure(guild.id, str(user_id), "missing moderate members permission") from exc
        except discord.HTTPException as exc:
            raise EnforcementFailure(guild.id, str(user_id), str(exc)) from exc
        logger.info("[ENFORCEMENT] Timed out user %s in guild %s for %s", user_id, guild.id, duration)

    async def delete_message(self, guild_id: GuildID, channel_id: ChannelID, message_id: MessageID) -> None:
        """Delete a message by id. A message that is already gone counts as deleted."""
        target = f"message {message_id}"
        try:
            channel = self.bot.get_channel(channel_id.to_int()) or await self.bot.fetch_channel(channel_id.to_int())
            await channel.get_partial_message(message_id.to_int()).delete()
        except discord.NotFound:
            logger.debug("[ENFORCEMENT] Message %s in guild %s was already deleted", message_id, guild_id)
            return
        except discord.Forbidden as exc:
            raise EnforcementFailure(guild_id.to_int(), target, "missing manage messages permission") from exc
        except discord.HTTPException as exc:
            raise EnforcementFailure(guild_id.to_int(), target, str(exc)) from exc
        logger.info("[ENFORCEMENT] Deleted message %s in guild %s", message_id, guild_id)


async def fan_out_ban(
    enforcer: Enforcer,
    user_id: UserID,
    reason: str,
    guild_ids: Iterable[GuildID] | None = None,
) -> FanoutResult:
    """Ban a user in every given guild (default: every served guild), collecting per-guild outcomes."""
    targets = list(guild_ids) if guild_ids is not None else enforcer.served_guild_ids()
    result = FanoutResult()
    for guild_id in targets:
        try:
            await enforcer.ban(guild_id, user_id, reason)
        except EnforcementFailure as exc:
            logger.warning("[ENFORCEMENT] Global ban of %s failed in guild %s: %s", user_id, guild_id, exc.reason)
            result.outcomes.append(TargetOutcome(guild_id=guild_id, success=False, error=exc.reason))
        else:
            result.outcomes.append(TargetOutcome(guild_id=guild_id, success=True))

    logger.info(
        "[ENFORCEMENT] Global ban of %s: %d succeeded, %d failed",
        user_id,
        len(result.succeeded),
        len(result.failed),
    )
    return result
