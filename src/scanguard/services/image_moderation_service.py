"""
ImageModerationService: what happens to a guild message carrying images.

For each scanned attachment: download (size-limited), scan through the
scheduler, persist a detection row, then act on the verdict:

- flagged: delete the message, escalate the offense, alert moderators, DM the user
- requires review: react ⚠️, open a review item, ask moderators to decide
- otherwise: nothing beyond the detection row

A failed download or an undecodable image produces no action at all.
"""

from __future__ import annotations

from typing import List

import discord

from scanguard.configuration.detection_settings import DetectionSettings
from scanguard.database.database import Database
from scanguard.datatypes.detection_datatypes import DetectionResult
from scanguard.datatypes.discord_datatypes import GuildID, UserID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.datatypes.image_datatypes import ImageRef, ImageURL, ScanRequest
from scanguard.detection.errors import ScanGuardError
from scanguard.detection.scan_scheduler import ScanScheduler
from scanguard.moderation.alerts import ModeratorAlerts
from scanguard.moderation.escalation import OffenseEscalationManager
from scanguard.repositories.detection_repo import DetectionRecord, DetectionRepo
from scanguard.services.guild_settings_service import GuildSettingsService
from scanguard.util import discord_utils
from scanguard.util.image_utils import fetch_image_bytes, is_image_attachment
from scanguard.util.logger import get_logger

logger = get_logger("image_moderation_service")

REVIEW_REACTION = "⚠️"
OFFENSE_REASON = "Inappropriate image detected"


class ImageModerationService:
    def __init__(
        self,
        db: Database,
        scheduler: ScanScheduler,
        escalation: OffenseEscalationManager,
        alerts: ModeratorAlerts,
        settings_service: GuildSettingsService,
        detection_settings: DetectionSettings,
    ) -> None:
        self.db = db
        self.scheduler = scheduler
        self.escalation = escalation
        self.alerts = alerts
        self.settings_service = settings_service
        self.detection_settings = detection_settings

    async def process_message(self, message: discord.Message) -> List[DetectionResult]:
        """
        Scan every image attachment of a guild message.

        Stops after the first flagged attachment: the message is handled as a
        whole and one message counts as one offense.
        """
        if message.guild is None or discord_utils.is_ignored_author(message.author):
            return []

        attachments = [a for a in message.attachments if is_image_attachment(a)]
        if not attachments:
            return []

        settings = await self.settings_service.get(GuildID.from_discord(message.guild))
        if not settings.detection_enabled:
            logger.debug("Detection disabled for guild %s", message.guild.id)
            return []

        results: List[DetectionResult] = []
        for attachment in attachments:
            try:
                result = await self.process_attachment(message, attachment, settings)
            except ScanGuardError as exc:
                logger.warning("Skipping attachment %s from message %s: %s", attachment.id, message.id, exc)
                continue
            if result is None:
                continue
            results.append(result)
            if result.flagged:
                break
        return results

    async def process_attachment(
        self,
        message: discord.Message,
        attachment: discord.Attachment,
        settings: GuildSettings,
    ) -> DetectionResult | None:
        max_bytes = self.detection_settings.image_max_size_bytes
        if attachment.size and attachment.size > max_bytes:
            logger.info(
                "Attachment %s is %d bytes, over the %d byte limit; not scanned",
                attachment.id,
                attachment.size,
                max_bytes,
            )
            return None

        data = await fetch_image_bytes(attachment.url, max_bytes, self.detection_settings.download_timeout_seconds)
        request = ScanRequest(image_ref=ImageRef(url=ImageURL(attachment.url), data=data))
        result = await self.scheduler.submit(request)
        detection_id = await self._record_detection(message, attachment, result)

        if result.flagged:
            await self._handle_flagged(message, settings, result, detection_id)
        elif result.requires_review:
            await self._handle_review(message, settings, result, detection_id)
        else:
            logger.debug(
                "Image %s passed (confidence=%.3f, method=%s)",
                attachment.id,
                result.confidence,
                result.method,
            )
        return result

    async def _record_detection(
        self,
        message: discord.Message,
        attachment: discord.Attachment,
        result: DetectionResult,
    ) -> int:
        record = DetectionRecord(
            user_id=str(message.author.id),
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            message_id=message.id,
            image_url=attachment.url,
            image_hash=result.perceptual_hash,
            method=result.method,
            confidence=result.confidence,
            flagged=result.flagged,
            requires_review=result.requires_review,
            processing_time_ms=result.processing_time_ms,
        )
        async with self.db.transaction() as conn:
            return await DetectionRepo.insert(conn, record)

    async def _handle_flagged(
        self,
        message: discord.Message,
        settings: GuildSettings,
        result: DetectionResult,
        detection_id: int,
    ) -> None:
        logger.warning(
            "Flagged image from user %s in guild %s (method=%s, confidence=%.3f)",
            message.author.id,
            message.guild.id,
            result.method,
            result.confidence,
        )
        actions: List[str] = []

        if settings.auto_delete:
            try:
                await message.delete()
                actions.append("message deleted")
            except discord.NotFound:
                actions.append("message already deleted")
            except discord.HTTPException as exc:
                logger.error("Failed to delete message %s: %s", message.id, exc)

        if settings.auto_ban:
            escalation = await self.escalation.handle_offense(
                UserID.from_discord(message.author),
                GuildID.from_discord(message.guild),
                OFFENSE_REASON,
                detection_id,
            )
            actions.append(escalation.message)

        action_taken = "; ".join(actions) or "none"
        async with self.db.transaction() as conn:
            await DetectionRepo.set_action_taken(conn, detection_id, action_taken)

        await self.alerts.alert_moderators(message, settings, result, action_taken, detection_id)
        await self.alerts.notify_user(message.author, message.guild.name, action_taken)

    async def _handle_review(
        self,
        message: discord.Message,
        settings: GuildSettings,
        result: DetectionResult,
        detection_id: int,
    ) -> None:
        try:
            await message.add_reaction(REVIEW_REACTION)
        except discord.HTTPException as exc:
            logger.debug("Could not react to message %s: %s", message.id, exc)

        review_id = await self.escalation.open_detection_review(detection_id)
        async with self.db.transaction() as conn:
            await DetectionRepo.set_action_taken(conn, detection_id, "pending review")
        await self.alerts.notify_detection_review(message, settings, result, detection_id, review_id)
