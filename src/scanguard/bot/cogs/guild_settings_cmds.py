"""
Settings cog: per-guild scanning configuration.

- /scanguard settings:        show the current settings
- /scanguard alert_channel:   set (or clear) the alert channel
- /scanguard moderator_role:  add or remove a moderator role
- /scanguard toggle:          switch detection, auto-delete or auto-ban

All commands require the Manage Server permission.
"""

import dataclasses

import discord
from discord import Option
from discord.ext import commands

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.services.runtime import ScanGuardServices
from scanguard.util.logger import get_logger

logger = get_logger("settings_cog")

TOGGLES = {
    "detection": "detection_enabled",
    "auto_delete": "auto_delete",
    "auto_ban": "auto_ban",
}


def build_settings_embed(settings: GuildSettings) -> discord.Embed:
    def on_off(value: bool) -> str:
        return "✅ On" if value else "❌ Off"

    embed = discord.Embed(title="🛡️ Image Scanning Settings", color=discord.Color.blurple())
    embed.add_field(name="Detection", value=on_off(settings.detection_enabled), inline=True)
    embed.add_field(name="Auto-delete", value=on_off(settings.auto_delete), inline=True)
    embed.add_field(name="Auto-ban", value=on_off(settings.auto_ban), inline=True)
    embed.add_field(
        name="Alert Channel",
        value=f"<#{settings.alert_channel_id}>" if settings.alert_channel_id else "Not set",
        inline=False,
    )
    roles = " ".join(f"<@&{rid}>" for rid in settings.moderator_role_ids) or "None"
    embed.add_field(name="Moderator Roles", value=roles, inline=False)
    return embed


class GuildSettingsCog(commands.Cog):
    scanguard = discord.SlashCommandGroup("scanguard", "Configure image scanning for this server")

    def __init__(self, discord_bot_instance, services: ScanGuardServices):
        self.discord_bot_instance = discord_bot_instance
        self.services = services
        logger.info("Settings cog loaded")

    async def _load_for_edit(self, ctx: discord.ApplicationContext) -> GuildSettings | None:
        if ctx.guild_id is None:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return None
        permissions = getattr(ctx.user, "guild_permissions", None)
        if not getattr(permissions, "manage_guild", False):
            await ctx.respond("You need the Manage Server permission to configure scanning.", ephemeral=True)
            return None
        return await self.services.settings_service.get(GuildID(ctx.guild_id))

    async def _save_and_show(self, ctx: discord.ApplicationContext, settings: GuildSettings, flash: str) -> None:
        await self.services.settings_service.save(settings)
        logger.info("Guild %s settings changed by %s: %s", ctx.guild_id, ctx.user.id, flash)
        await ctx.respond(flash, embed=build_settings_embed(settings), ephemeral=True)

    @scanguard.command(name="settings", description="Show image scanning settings.")
    async def show_settings(self, ctx: discord.ApplicationContext):
        settings = await self._load_for_edit(ctx)
        if settings is None:
            return
        await ctx.respond(embed=build_settings_embed(settings), ephemeral=True)

    @scanguard.command(name="alert_channel", description="Set where detection alerts are posted.")
    async def alert_channel(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Alert channel (omit to clear)", required=False, default=None),
    ):
        settings = await self._load_for_edit(ctx)
        if settings is None:
            return
        updated = dataclasses.replace(settings, alert_channel_id=ChannelID(channel.id) if channel else None)
        await self._save_and_show(ctx, updated, f"Alert channel {'set to ' + channel.mention if channel else 'cleared'}.")

    @scanguard.command(name="moderator_role", description="Add or remove a moderator role.")
    async def moderator_role(
        self,
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, "Role"),
        remove: Option(bool, "Remove instead of add", required=False, default=False),
    ):
        settings = await self._load_for_edit(ctx)
        if settings is None:
            return
        role_ids = [rid for rid in settings.moderator_role_ids if rid != role.id]
        if not remove:
            role_ids.append(role.id)
        updated = dataclasses.replace(settings, moderator_role_ids=role_ids)
        await self._save_and_show(ctx, updated, f"Moderator role {role.mention} {'removed' if remove else 'added'}.")

    @scanguard.command(name="toggle", description="Turn a scanning feature on or off.")
    async def toggle(
        self,
        ctx: discord.ApplicationContext,
        feature: Option(str, "Feature", choices=list(TOGGLES)),
        enabled: Option(bool, "On or off"),
    ):
        settings = await self._load_for_edit(ctx)
        if settings is None:
            return
        updated = dataclasses.replace(settings, **{TOGGLES[feature]: enabled})
        await self._save_and_show(ctx, updated, f"{feature} {'enabled' if enabled else 'disabled'}.")


def setup(discord_bot_instance, services: ScanGuardServices):
    discord_bot_instance.add_cog(GuildSettingsCog(discord_bot_instance, services))
