"""
Moderator notifications.

Messages sent by the bot:

- a detection alert in the guild's alert channel, with moderator role mentions
- a review request (embed + Approve/Reject buttons) for borderline detections
  and for pending global bans
- a DM notice to the user whose image was removed
- escalation outcomes (local sanctions, global-ban decisions) in the
  moderation server's review channel
"""

from __future__ import annotations

import datetime

import discord

from scanguard.bot.review_ui import ReviewDecisionView
from scanguard.configuration.detection_settings import EscalationSettings
from scanguard.datatypes.detection_datatypes import DetectionResult
from scanguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.datatypes.sanction_datatypes import FanoutResult, SanctionKind, SanctionRecord
from scanguard.moderation.escalation import OffenseEscalationManager
from scanguard.services.guild_settings_service import GuildSettingsService
from scanguard.util.discord_utils import format_duration, send_dm
from scanguard.util.logger import get_logger

logger = get_logger("alerts")


def role_mentions(settings: GuildSettings) -> str:
    return " ".join(f"<@&{role_id}>" for role_id in settings.moderator_role_ids)


def build_detection_embed(
    user: discord.abc.User,
    channel: discord.abc.GuildChannel,
    result: DetectionResult,
    action_taken: str,
    detection_id: int,
) -> discord.Embed:
    embed = discord.Embed(
        title="🚨 Inappropriate Image Detected",
        color=discord.Color.red() if result.flagged else discord.Color.orange(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="User", value=f"{user.mention} (`{user.id}`)", inline=True)
    embed.add_field(name="Channel", value=channel.mention, inline=True)
    embed.add_field(name="Method", value=result.method, inline=True)
    embed.add_field(name="Confidence", value=f"{result.confidence:.1%}", inline=True)
    embed.add_field(name="Action Taken", value=action_taken, inline=True)
    embed.add_field(name="Review Required", value="Yes" if result.requires_review else "No", inline=True)
    embed.set_footer(text=f"Detection #{detection_id} • {result.processing_time_ms}ms")
    return embed


def build_user_notice_embed(guild_name: str, action_taken: str) -> discord.Embed:
    embed = discord.Embed(
        title="⚠️ Content Removed",
        description=(
            f"An image you posted in **{guild_name}** was flagged as inappropriate "
            f"and removed. Action taken: {action_taken}."
        ),
        color=discord.Color.red(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.set_footer(text="Repeat offenses may lead to a ban across every server using this bot.")
    return embed


class ModeratorAlerts:
    """Sends alert, review and DM messages. Failures are logged, never raised."""

    def __init__(
        self,
        bot: discord.Bot,
        settings_service: GuildSettingsService,
        escalation_settings: EscalationSettings,
    ) -> None:
        self.bot = bot
        self.settings_service = settings_service
        self.escalation_settings = escalation_settings
        self.escalation: OffenseEscalationManager | None = None

    def bind(self, escalation: OffenseEscalationManager) -> None:
        """Attach the escalation manager that review buttons report decisions to."""
        self.escalation = escalation

    async def _resolve_channel(self, channel_id: ChannelID | int | None) -> discord.abc.Messageable | None:
        if channel_id is None:
            return None
        cid = int(channel_id)
        channel = self.bot.get_channel(cid)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(cid)
        except discord.HTTPException as exc:
            logger.warning("[ALERTS] Cannot resolve channel %s: %s", cid, exc)
            return None

    def _review_view(self, review_id: int) -> discord.ui.View | None:
        if self.escalation is None:
            return None
        return ReviewDecisionView(review_id, self.escalation, self.settings_service)

    async def _send(self, channel_id, content: str | None, embed: discord.Embed, view=None) -> bool:
        channel = await self._resolve_channel(channel_id)
        if channel is None:
            return False
        kwargs = {"content": content or None, "embed": embed}
        if view is not None:
            kwargs["view"] = view
        try:
            await channel.send(**kwargs)
            return True
        except discord.HTTPException as exc:
            logger.warning("[ALERTS] Failed to send to channel %s: %s", channel_id, exc)
            return False

    async def alert_moderators(
        self,
        message: discord.Message,
        settings: GuildSettings,
        result: DetectionResult,
        action_taken: str,
        detection_id: int,
    ) -> bool:
        """Post a detection alert in the guild's alert channel."""
        if settings.alert_channel_id is None:
            logger.debug("[ALERTS] Guild %s has no alert channel configured", settings.guild_id)
            return False
        embed = build_detection_embed(message.author, message.channel, result, action_taken, detection_id)
        return await self._send(settings.alert_channel_id, role_mentions(settings), embed)

    async def notify_detection_review(
        self,
        message: discord.Message,
        settings: GuildSettings,
        result: DetectionResult,
        detection_id: int,
        review_id: int,
    ) -> bool:
        """Ask moderators to decide a borderline detection."""
        if settings.alert_channel_id is None:
            logger.info(
                "[ALERTS] Review %s created but guild %s has no alert channel; use /review",
                review_id,
                settings.guild_id,
            )
            return False
        embed = build_detection_embed(message.author, message.channel, result, "pending review", detection_id)
        embed.title = "⚠️ Image Pending Moderator Review"
        embed.add_field(name="Message", value=message.jump_url, inline=False)
        embed.add_field(name="Review", value=f"#{review_id}", inline=True)
        return await self._send(settings.alert_channel_id, role_mentions(settings), embed, self._review_view(review_id))

    async def notify_pending_global_ban(
        self,
        sanction_id: int,
        review_id: int,
        user_id: UserID,
        guild_id: GuildID,
        offense_count: int,
        reason: str,
    ) -> None:
        """
        Ask for a global-ban decision in the designated review channel, falling
        back to the originating guild's alert channel.
        """
        channel_id = self.escalation_settings.review_channel_id
        settings = await self.settings_service.get(guild_id)
        if channel_id is None:
            channel_id = settings.alert_channel_id

        if channel_id is None:
            logger.warning(
                "[ALERTS] No channel for pending global ban (sanction %s, user %s); decide with /review",
                sanction_id,
                user_id,
            )
            return

        embed = discord.Embed(
            title="🌐 Global Ban Pending Review",
            description=f"<@{user_id}> has reached **{offense_count}** offenses.",
            color=discord.Color.dark_red(),
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        embed.add_field(name="User ID", value=f"`{user_id}`", inline=True)
        embed.add_field(name="Origin Guild", value=f"`{guild_id}`", inline=True)
        embed.add_field(name="Sanction", value=f"#{sanction_id}", inline=True)
        embed.add_field(name="Reason", value=reason or "n/a", inline=False)
        embed.set_footer(text=f"Review #{review_id}")

        content = role_mentions(settings) if channel_id == settings.alert_channel_id else None
        await self._send(channel_id, content, embed, self._review_view(review_id))

    async def notify_local_sanction(
        self,
        sanction: SanctionRecord,
        offense_count: int,
        enforcement_error: str | None = None,
    ) -> None:
        """Report a first-offense sanction to the moderation server's review channel."""
        channel_id = self.escalation_settings.review_channel_id
        if channel_id is None:
            logger.debug("[ALERTS] No review channel configured; local sanction %s not reported", sanction.id)
            return

        guild = self.bot.get_guild(int(sanction.guild_id))
        guild_label = f"{guild.name} ({sanction.guild_id})" if guild is not None else f"`{sanction.guild_id}`"
        if sanction.kind is SanctionKind.LOCAL_TIMEOUT:
            duration = self.escalation_settings.first_offense_duration_minutes * 60
            action = f"⏱️ {format_duration(duration)} timeout"
        else:
            action = "🔨 Local ban"

        embed = discord.Embed(
            title=f"Detection Alert - Level {sanction.level}",
            color=discord.Color.orange(),
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        embed.add_field(name="Server", value=guild_label, inline=True)
        embed.add_field(name="User", value=f"<@{sanction.user_id}> (`{sanction.user_id}`)", inline=True)
        embed.add_field(name="Action", value=action, inline=True)
        embed.add_field(name="Reason", value=sanction.reason or "n/a", inline=False)
        embed.add_field(name="Offenses", value=str(offense_count), inline=True)
        if sanction.expires_at is not None:
            embed.add_field(name="Expires", value=f"<t:{int(sanction.expires_at.timestamp())}:R>", inline=True)
        if enforcement_error:
            embed.add_field(name="Enforcement Failed", value=enforcement_error, inline=False)
        embed.set_footer(text=f"Sanction #{sanction.id}")
        await self._send(channel_id, None, embed)

    async def notify_global_decision(
        self,
        sanction: SanctionRecord,
        approved: bool,
        moderator_id: str,
        notes: str = "",
        fanout: FanoutResult | None = None,
    ) -> None:
        """
        Post the outcome of a global-ban decision where the request was posted:
        the review channel, else the originating guild's alert channel.
        """
        channel_id = self.escalation_settings.review_channel_id
        if channel_id is None:
            channel_id = (await self.settings_service.get(sanction.guild_id)).alert_channel_id
        if channel_id is None:
            logger.debug("[ALERTS] No channel for decision on sanction %s", sanction.id)
            return

        if approved:
            embed = discord.Embed(
                title="✅ Global Ban Approved",
                color=discord.Color.red(),
                timestamp=datetime.datetime.now(datetime.timezone.utc),
            )
        else:
            embed = discord.Embed(
                title="❌ Global Ban Rejected",
                color=discord.Color.light_grey(),
                timestamp=datetime.datetime.now(datetime.timezone.utc),
            )
        embed.add_field(name="User ID", value=f"`{sanction.user_id}`", inline=True)
        embed.add_field(name="Moderator", value=f"<@{moderator_id}>", inline=True)
        if approved and fanout is not None:
            embed.add_field(name="Servers Affected", value=f"{len(fanout.succeeded)} servers", inline=True)
            if fanout.failed:
                failures = "\n".join(f"`{o.guild_id}`: {o.error}" for o in fanout.failed[:10])
                embed.add_field(name="Failed", value=failures, inline=False)
        if not approved:
            embed.add_field(name="Notes", value=notes or "No notes provided", inline=False)
        embed.set_footer(text=f"Sanction #{sanction.id}")
        await self._send(channel_id, None, embed)

    async def notify_user(self, user: discord.abc.User, guild_name: str, action_taken: str) -> bool:
        return await send_dm(user, build_user_notice_embed(guild_name, action_taken))
