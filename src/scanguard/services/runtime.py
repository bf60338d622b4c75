"""
Wiring of the long-lived components shared by all cogs.
"""

from __future__ import annotations

from dataclasses import dataclass

import discord

from scanguard.configuration.app_configuration import AppConfig
from scanguard.configuration.detection_settings import DetectionSettings
from scanguard.database.database import Database
from scanguard.detection.classifier import ClassifierAdapter
from scanguard.detection.hash_prefilter import HashPrefilter
from scanguard.detection.hash_store import HashStore
from scanguard.detection.pipeline import DetectionPipeline
from scanguard.detection.scan_scheduler import ScanScheduler
from scanguard.moderation.alerts import ModeratorAlerts
from scanguard.moderation.enforcement import DiscordEnforcer
from scanguard.moderation.escalation import OffenseEscalationManager
from scanguard.services.guild_settings_service import GuildSettingsService
from scanguard.services.image_moderation_service import ImageModerationService
from scanguard.util.logger import get_logger

logger = get_logger("runtime")


@dataclass
class ScanGuardServices:
    db: Database
    detection_settings: DetectionSettings
    hash_store: HashStore
    scheduler: ScanScheduler
    escalation: OffenseEscalationManager
    alerts: ModeratorAlerts
    settings_service: GuildSettingsService
    image_moderation: ImageModerationService

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.db.shutdown()


def build_services(bot: discord.Bot, db: Database, config: AppConfig) -> ScanGuardServices:
    detection_settings = config.detection_settings
    escalation_settings = config.escalation_settings

    hash_store = HashStore(db)
    pipeline = DetectionPipeline(
        HashPrefilter(hash_store, detection_settings.hash_match_threshold, detection_settings.hash_size),
        ClassifierAdapter(detection_settings),
        detection_settings,
    )
    scheduler = ScanScheduler(pipeline, detection_settings.max_concurrent_scans)

    settings_service = GuildSettingsService(db)
    alerts = ModeratorAlerts(bot, settings_service, escalation_settings)
    escalation = OffenseEscalationManager(
        db, DiscordEnforcer(bot), escalation_settings, notifier=alerts, settings_service=settings_service
    )
    alerts.bind(escalation)

    image_moderation = ImageModerationService(
        db, scheduler, escalation, alerts, settings_service, detection_settings
    )
    logger.info(
        "Services ready (max_concurrent_scans=%d, providers=%s)",
        detection_settings.max_concurrent_scans,
        ", ".join(detection_settings.provider_priority),
    )
    return ScanGuardServices(
        db=db,
        detection_settings=detection_settings,
        hash_store=hash_store,
        scheduler=scheduler,
        escalation=escalation,
        alerts=alerts,
        settings_service=settings_service,
        image_moderation=image_moderation,
    )
