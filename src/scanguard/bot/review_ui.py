"""
Approve/Reject buttons attached to moderator review notifications.

One view serves both kinds of review item: pending global bans (second and
later offenses) and borderline detections. The decision is forwarded to
``OffenseEscalationManager.resolve_detection_review``, which routes it and
guarantees each item is decided exactly once.
"""

from __future__ import annotations

import datetime

import discord

from scanguard.datatypes.discord_datatypes import GuildID
from scanguard.datatypes.sanction_datatypes import ReviewDecisionResult
from scanguard.moderation.escalation import OffenseEscalationManager
from scanguard.services.guild_settings_service import GuildSettingsService
from scanguard.util.discord_utils import has_moderator_permission
from scanguard.util.logger import get_logger

logger = get_logger("review_ui")


def build_decided_embed(original: discord.Embed, moderator_name: str, approved: bool, outcome: str) -> discord.Embed:
    """Copy a review embed and mark it as decided."""
    embed = original.copy()
    embed.color = discord.Color.dark_red() if approved else discord.Color.dark_grey()
    embed.title = f"{'✅ Approved' if approved else '❌ Rejected'}: {original.title or 'Review'}"
    embed.add_field(name="Decision", value=f"{moderator_name}: {outcome}", inline=False)
    embed.timestamp = datetime.datetime.now(datetime.timezone.utc)
    return embed


class ReviewDecisionView(discord.ui.View):
    """Approve/Reject buttons for one review item."""

    def __init__(
        self,
        review_id: int,
        escalation: OffenseEscalationManager,
        settings_service: GuildSettingsService,
    ):
        # timeout=None keeps the buttons alive for as long as the bot runs
        super().__init__(timeout=None)
        self.review_id = review_id
        self.escalation = escalation
        self.settings_service = settings_service

    async def _check_permission(self, interaction: discord.Interaction) -> bool:
        if interaction.user is None or interaction.guild_id is None:
            return False
        guild_id = GuildID(interaction.guild_id)
        settings = await self.settings_service.get(guild_id)
        if not has_moderator_permission(interaction.user, settings.moderator_role_ids):
            return False
        return await self.escalation.may_decide_review(self.review_id, guild_id)

    async def _decide(self, interaction: discord.Interaction, approved: bool) -> None:
        if not await self._check_permission(interaction):
            await interaction.response.send_message(
                "❌ You don't have permission to decide reviews.",
                ephemeral=True,
            )
            return

        # Fan-out can take a while across many guilds
        await interaction.response.defer()
        result: ReviewDecisionResult = await self.escalation.resolve_detection_review(
            self.review_id,
            approved,
            str(interaction.user.id),
        )

        if not result.success:
            await interaction.followup.send(f"⚠️ {result.message}", ephemeral=True)
            return

        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True

        if interaction.message is not None and interaction.message.embeds:
            embed = build_decided_embed(interaction.message.embeds[0], interaction.user.name, approved, result.message)
            await interaction.message.edit(embed=embed, view=self)
        self.stop()

        logger.info(
            "[REVIEW UI] Review %s %s by %s: %s",
            self.review_id,
            "approved" if approved else "rejected",
            interaction.user.id,
            result.message,
        )

    @discord.ui.button(label="✅ Approve", style=discord.ButtonStyle.danger)
    async def approve_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        await self._decide(interaction, approved=True)

    @discord.ui.button(label="❌ Reject", style=discord.ButtonStyle.secondary)
    async def reject_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        await self._decide(interaction, approved=False)
