"""
Moderation cog: blocklist management and global-ban review decisions.

Slash commands
- /blocklist add:    blocklist a perceptual hash, given directly or computed from an attachment
- /blocklist remove: deactivate a blocklisted hash
- /review approve:   approve a pending global ban by sanction id
- /review reject:    reject a pending global ban by sanction id
- /review decide:    decide a borderline-detection review by review id
- /review pending:   list open review items

All commands require Manage Server or one of the guild's moderator roles and
reply ephemerally. Global-ban decisions are taken from the moderation server
when one is configured; detection reviews from the guild they came from.
"""

import asyncio

import discord
from discord import Option
from discord.ext import commands

from scanguard.datatypes.detection_datatypes import Severity
from scanguard.datatypes.discord_datatypes import GuildID
from scanguard.detection.errors import ScanGuardError
from scanguard.detection.hash_prefilter import compute_perceptual_hash
from scanguard.services.runtime import ScanGuardServices
from scanguard.util.discord_utils import has_moderator_permission
from scanguard.util.image_utils import fetch_image_bytes
from scanguard.util.logger import get_logger

logger = get_logger("moderation_cog")

SEVERITY_CHOICES = [severity.value for severity in Severity]


class ModerationCmdsCog(commands.Cog):
    blocklist = discord.SlashCommandGroup("blocklist", "Manage the known-image blocklist")
    review = discord.SlashCommandGroup("review", "Decide pending moderator reviews")

    def __init__(self, discord_bot_instance, services: ScanGuardServices):
        self.discord_bot_instance = discord_bot_instance
        self.services = services
        logger.info("Moderation cog loaded")

    async def _check_moderator(self, ctx: discord.ApplicationContext) -> bool:
        if ctx.guild_id is None:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        settings = await self.services.settings_service.get(GuildID(ctx.guild_id))
        if not has_moderator_permission(ctx.user, settings.moderator_role_ids):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return False
        return True

    async def _check_sanction_guild(self, ctx: discord.ApplicationContext, sanction_id: int) -> bool:
        if await self.services.escalation.may_decide_sanction(sanction_id, GuildID(ctx.guild_id)):
            return True
        await ctx.respond(f"Sanction #{sanction_id} cannot be decided from this server.", ephemeral=True)
        return False

    @blocklist.command(name="add", description="Blocklist an image hash or the image in an attachment.")
    async def blocklist_add(
        self,
        ctx: discord.ApplicationContext,
        image_hash: Option(str, "Hex perceptual hash", name="hash", required=False, default=None),
        attachment: Option(discord.Attachment, "Image to blocklist", required=False, default=None),
        severity: Option(str, "Severity", choices=SEVERITY_CHOICES, default=Severity.HIGH.value),
    ):
        if not await self._check_moderator(ctx):
            return
        if not image_hash and attachment is None:
            await ctx.respond("Provide either a hash or an image attachment.", ephemeral=True)
            return

        await ctx.defer(ephemeral=True)
        settings = self.services.detection_settings
        try:
            if image_hash is None:
                data = await fetch_image_bytes(
                    attachment.url, settings.image_max_size_bytes, settings.download_timeout_seconds
                )
                image_hash = await asyncio.to_thread(compute_perceptual_hash, data, settings.hash_size)
            entry_id = await self.services.hash_store.add_known_hash(
                image_hash, source=f"moderator:{ctx.user.id}", severity=Severity(severity)
            )
        except (ScanGuardError, ValueError) as exc:
            await ctx.send_followup(f"❌ Could not blocklist image: {exc}")
            return

        logger.info("Moderator %s blocklisted hash %s (entry %s)", ctx.user.id, image_hash, entry_id)
        await ctx.send_followup(f"✅ Added hash `{image_hash}` to the blocklist (entry #{entry_id}).")

    @blocklist.command(name="remove", description="Remove a hash from the blocklist.")
    async def blocklist_remove(
        self,
        ctx: discord.ApplicationContext,
        image_hash: Option(str, "Hex perceptual hash", name="hash"),
    ):
        if not await self._check_moderator(ctx):
            return
        removed = await self.services.hash_store.deactivate_hash(image_hash)
        if removed:
            await ctx.respond(f"✅ Hash `{image_hash}` is no longer blocklisted.", ephemeral=True)
        else:
            await ctx.respond(f"No active blocklist entry for `{image_hash}`.", ephemeral=True)

    @review.command(name="approve", description="Approve a pending global ban.")
    async def review_approve(
        self,
        ctx: discord.ApplicationContext,
        sanction_id: Option(int, "Sanction id from the review notification"),
    ):
        if not await self._check_moderator(ctx):
            return
        if not await self._check_sanction_guild(ctx, sanction_id):
            return
        await ctx.defer(ephemeral=True)
        result = await self.services.escalation.approve_global_ban(sanction_id, str(ctx.user.id))
        prefix = "✅" if result.success else "⚠️"
        message = f"{prefix} {result.message}"
        if result.fanout and result.fanout.failed:
            failures = "\n".join(f"- `{o.guild_id}`: {o.error}" for o in result.fanout.failed)
            message = f"{message}\n{failures}"
        await ctx.send_followup(message)

    @review.command(name="reject", description="Reject a pending global ban.")
    async def review_reject(
        self,
        ctx: discord.ApplicationContext,
        sanction_id: Option(int, "Sanction id from the review notification"),
        notes: Option(str, "Reason for rejecting", required=False, default=""),
    ):
        if not await self._check_moderator(ctx):
            return
        if not await self._check_sanction_guild(ctx, sanction_id):
            return
        result = await self.services.escalation.reject_global_ban(sanction_id, str(ctx.user.id), notes)
        await ctx.respond(f"{'✅' if result.success else '⚠️'} {result.message}", ephemeral=True)

    @review.command(name="decide", description="Confirm or dismiss a borderline detection.")
    async def review_decide(
        self,
        ctx: discord.ApplicationContext,
        review_id: Option(int, "Review id"),
        confirm: Option(bool, "True to confirm the offense, False to dismiss"),
    ):
        if not await self._check_moderator(ctx):
            return
        if not await self.services.escalation.may_decide_review(review_id, GuildID(ctx.guild_id)):
            await ctx.respond(f"Review #{review_id} cannot be decided from this server.", ephemeral=True)
            return
        await ctx.defer(ephemeral=True)
        result = await self.services.escalation.resolve_detection_review(review_id, confirm, str(ctx.user.id))
        await ctx.send_followup(f"{'✅' if result.success else '⚠️'} {result.message}")

    @review.command(name="pending", description="List open review items.")
    async def review_pending(self, ctx: discord.ApplicationContext):
        if not await self._check_moderator(ctx):
            return
        items = await self.services.escalation.pending_reviews_for_guild(GuildID(ctx.guild_id))
        if not items:
            await ctx.respond("No reviews pending.", ephemeral=True)
            return
        lines = [
            f"#{item.id}: "
            + (f"global ban, sanction #{item.sanction_id}" if item.sanction_id else f"detection #{item.detection_id}")
            for item in items[:25]
        ]
        await ctx.respond("\n".join(lines), ephemeral=True)


def setup(discord_bot_instance, services: ScanGuardServices):
    discord_bot_instance.add_cog(ModerationCmdsCog(discord_bot_instance, services))
