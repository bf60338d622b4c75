"""
Event handlers cog: guild lifecycle and join-time enforcement.
"""

import discord
from discord.ext import commands

from scanguard.datatypes.discord_datatypes import GuildID, UserID
from scanguard.services.runtime import ScanGuardServices
from scanguard.util.logger import get_logger

logger = get_logger("events_cog")


class EventsListenerCog(commands.Cog):
    def __init__(self, discord_bot_instance, services: ScanGuardServices):
        self.bot = discord_bot_instance
        self.services = services
        logger.info("Events cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Make sure every guild the bot is in has a settings row."""
        if self.bot.user:
            logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        for guild in self.bot.guilds:
            try:
                await self.services.settings_service.ensure_defaults(GuildID.from_discord(guild))
            except Exception:
                logger.exception("Failed to initialize settings for guild %s", guild.id)
        logger.info("Serving %d guild(s)", len(self.bot.guilds))

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild):
        logger.info("Joined guild %s (%s)", guild.name, guild.id)
        await self.services.settings_service.ensure_defaults(GuildID.from_discord(guild))

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        if member.bot:
            return
        try:
            banned = await self.services.escalation.enforce_on_join(
                GuildID.from_discord(member.guild), UserID.from_discord(member)
            )
        except Exception:
            logger.exception("Join-time enforcement failed for %s in guild %s", member.id, member.guild.id)
            return
        if banned:
            logger.warning("Globally banned user %s tried to join guild %s", member.id, member.guild.id)


def setup(discord_bot_instance, services: ScanGuardServices):
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, services))
