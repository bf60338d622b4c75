"""
Offense escalation state machine.

Per user (global across guilds):

    Clean (0) --offense--> Offender (1): local ban or timeout in the
                                         originating guild
    Offender (n) --offense--> Offender (n+1): pending global-ban sanction and
                                              a moderator review item
    pending_review --approve--> global_approved: user globally banned,
                                                 ban fanned out to all guilds
    pending_review --reject--> global_rejected

State changes commit before any Discord call is made. Enforcement failures
are logged and reported, never rolled back.

Global-ban decisions belong to the moderation server (``review_guild_id``)
when one is configured, otherwise to the guild the offense came from.
Borderline-detection reviews belong to the detection's own guild.
"""

from __future__ import annotations

import asyncio
import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Protocol

from scanguard.configuration.detection_settings import EscalationSettings
from scanguard.database.database import Database
from scanguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.datatypes.sanction_datatypes import (
    EscalationResult,
    FanoutResult,
    ModeratorReviewItem,
    ReviewDecisionResult,
    ReviewStatus,
    SanctionKind,
    SanctionRecord,
)
from scanguard.detection.errors import EnforcementFailure
from scanguard.moderation.enforcement import Enforcer, fan_out_ban
from scanguard.repositories.detection_repo import DetectionRecord, DetectionRepo, ReviewRepo
from scanguard.repositories.offense_repo import OffenseRepo
from scanguard.repositories.sanction_repo import SanctionRepo
from scanguard.services.guild_settings_service import GuildSettingsService
from scanguard.util.discord_utils import format_duration
from scanguard.util.logger import get_logger

logger = get_logger("escalation")

LOCAL_LEVEL = 1
GLOBAL_LEVEL = 2


class EscalationNotifier(Protocol):
    async def notify_local_sanction(
        self,
        sanction: SanctionRecord,
        offense_count: int,
        enforcement_error: str | None = None,
    ) -> None: ...

    async def notify_pending_global_ban(
        self,
        sanction_id: int,
        review_id: int,
        user_id: UserID,
        guild_id: GuildID,
        offense_count: int,
        reason: str,
    ) -> None: ...

    async def notify_global_decision(
        self,
        sanction: SanctionRecord,
        approved: bool,
        moderator_id: str,
        notes: str = "",
        fanout: FanoutResult | None = None,
    ) -> None: ...


class OffenseEscalationManager:
    """Sole owner of offense counts, the global-ban flag and sanction state."""

    def __init__(
        self,
        db: Database,
        enforcer: Enforcer,
        settings: EscalationSettings,
        notifier: EscalationNotifier | None = None,
        settings_service: GuildSettingsService | None = None,
    ) -> None:
        self.db = db
        self.enforcer = enforcer
        self.settings = settings
        self.notifier = notifier
        self.settings_service = settings_service
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: UserID) -> AsyncIterator[None]:
        # Locks live only while someone holds or waits on them
        key = str(user_id)
        lock = self._user_locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] = self._lock_holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[key] -= 1
            if self._lock_holders[key] == 0:
                del self._lock_holders[key]
                del self._user_locks[key]

    async def _guild_settings(self, guild_id: GuildID) -> GuildSettings:
        if self.settings_service is None:
            return GuildSettings(guild_id=guild_id)
        return await self.settings_service.get(guild_id)

    def _first_offense_label(self) -> str:
        if self.settings.first_offense_action == "timeout":
            return f"timeout ({format_duration(self.settings.first_offense_duration_minutes * 60)})"
        return "ban"

    # ------------------------------------------------------------------
    # Offenses
    # ------------------------------------------------------------------

    async def handle_offense(
        self,
        user_id: UserID,
        guild_id: GuildID,
        reason: str,
        detection_id: int | None = None,
    ) -> EscalationResult:
        """
        Record one confirmed offense and apply the matching escalation step.
        """
        sanction: SanctionRecord | None = None
        async with self._user_lock(user_id):
            async with self.db.transaction() as conn:
                record = await OffenseRepo.increment(conn, user_id)
                count = record.offense_count

                if record.globally_banned:
                    sanction_id = review_id = None
                elif count == 1:
                    sanction = self._first_offense_sanction(user_id, guild_id, reason, detection_id)
                    sanction_id = await SanctionRepo.insert(conn, sanction)
                    sanction.id = sanction_id
                    review_id = None
                else:
                    sanction_id = await SanctionRepo.insert(
                        conn,
                        SanctionRecord(
                            user_id=user_id,
                            guild_id=guild_id,
                            level=GLOBAL_LEVEL,
                            kind=SanctionKind.PENDING_REVIEW,
                            active=False,
                            reason=reason,
                            detection_id=detection_id,
                        ),
                    )
                    review_id = await ReviewRepo.insert(
                        conn,
                        ModeratorReviewItem(detection_id=detection_id, sanction_id=sanction_id),
                    )

        if record.globally_banned:
            return await self._reapply_global_ban(user_id, guild_id, count)
        if sanction is not None:
            return await self._apply_first_offense(sanction)

        logger.info(
            "[ESCALATION] User %s reached offense %d; global ban pending review (sanction %s)",
            user_id,
            count,
            sanction_id,
        )
        if self.notifier is not None:
            await self.notifier.notify_pending_global_ban(sanction_id, review_id, user_id, guild_id, count, reason)
        return EscalationResult(
            success=True,
            level=GLOBAL_LEVEL,
            requires_moderator_review=True,
            message=f"Offense {count}: global ban pending moderator review",
            offense_count=count,
            sanction_id=sanction_id,
            review_id=review_id,
        )

    def _first_offense_sanction(
        self, user_id: UserID, guild_id: GuildID, reason: str, detection_id: int | None
    ) -> SanctionRecord:
        if self.settings.first_offense_action == "timeout":
            duration = datetime.timedelta(minutes=self.settings.first_offense_duration_minutes)
            return SanctionRecord(
                user_id=user_id,
                guild_id=guild_id,
                level=LOCAL_LEVEL,
                kind=SanctionKind.LOCAL_TIMEOUT,
                active=True,
                reason=reason,
                expires_at=datetime.datetime.now(datetime.timezone.utc) + duration,
                detection_id=detection_id,
            )
        return SanctionRecord(
            user_id=user_id,
            guild_id=guild_id,
            level=LOCAL_LEVEL,
            kind=SanctionKind.LOCAL_BAN,
            active=True,
            reason=reason,
            detection_id=detection_id,
        )

    async def _apply_first_offense(self, sanction: SanctionRecord) -> EscalationResult:
        action = self._first_offense_label()
        error: str | None = None
        try:
            if sanction.kind is SanctionKind.LOCAL_TIMEOUT:
                duration = datetime.timedelta(minutes=self.settings.first_offense_duration_minutes)
                await self.enforcer.timeout(sanction.guild_id, sanction.user_id, duration, sanction.reason)
            else:
                await self.enforcer.ban(sanction.guild_id, sanction.user_id, sanction.reason)
        except EnforcementFailure as exc:
            error = exc.reason
            logger.error(
                "[ESCALATION] First-offense %s of %s in guild %s failed: %s",
                action,
                sanction.user_id,
                sanction.guild_id,
                exc.reason,
            )
        else:
            logger.info("[ESCALATION] First offense for %s: local %s in guild %s", sanction.user_id, action, sanction.guild_id)

        if self.notifier is not None:
            await self.notifier.notify_local_sanction(sanction, 1, error)

        if error is not None:
            return EscalationResult(
                success=False,
                level=LOCAL_LEVEL,
                requires_moderator_review=False,
                message=f"First offense recorded but local {action} failed",
                offense_count=1,
                sanction_id=sanction.id,
                enforcement_error=error,
            )
        return EscalationResult(
            success=True,
            level=LOCAL_LEVEL,
            requires_moderator_review=False,
            message=f"First offense: user received a local {action}",
            offense_count=1,
            sanction_id=sanction.id,
        )

    async def _reapply_global_ban(self, user_id: UserID, guild_id: GuildID, count: int) -> EscalationResult:
        try:
            await self.enforcer.ban(guild_id, user_id, "Globally banned user")
        except EnforcementFailure as exc:
            logger.error("[ESCALATION] Re-applying global ban of %s in guild %s failed: %s", user_id, guild_id, exc.reason)
            return EscalationResult(
                success=False,
                level=GLOBAL_LEVEL,
                requires_moderator_review=False,
                message="User is globally banned; re-applying the ban failed",
                offense_count=count,
                enforcement_error=exc.reason,
            )
        return EscalationResult(
            success=True,
            level=GLOBAL_LEVEL,
            requires_moderator_review=False,
            message="User is globally banned; ban re-applied",
            offense_count=count,
        )

    async def open_detection_review(self, detection_id: int) -> int:
        """Create a pending review item for a borderline detection. No offense is recorded."""
        async with self.db.transaction() as conn:
            review_id = await ReviewRepo.insert(conn, ModeratorReviewItem(detection_id=detection_id))
        logger.info("[ESCALATION] Detection %s awaiting moderator review (review %s)", detection_id, review_id)
        return review_id

    # ------------------------------------------------------------------
    # Decision rights
    # ------------------------------------------------------------------

    def _global_decision_guild(self, sanction: SanctionRecord) -> GuildID:
        review_guild_id = self.settings.review_guild_id
        return GuildID(review_guild_id) if review_guild_id else sanction.guild_id

    async def may_decide_sanction(self, sanction_id: int, guild_id: GuildID) -> bool:
        """True if moderators of ``guild_id`` may approve or reject this sanction."""
        async with self.db.read() as conn:
            sanction = await SanctionRepo.get(conn, sanction_id)
        return sanction is not None and self._global_decision_guild(sanction) == guild_id

    async def may_decide_review(self, review_id: int, guild_id: GuildID) -> bool:
        """True if moderators of ``guild_id`` may decide this review item."""
        async with self.db.read() as conn:
            review = await ReviewRepo.get(conn, review_id)
            if review is None:
                return False
            if review.sanction_id is not None:
                sanction = await SanctionRepo.get(conn, review.sanction_id)
                return sanction is not None and self._global_decision_guild(sanction) == guild_id
            detection = await DetectionRepo.get(conn, review.detection_id) if review.detection_id else None
        return detection is not None and GuildID(detection.guild_id) == guild_id

    async def pending_reviews_for_guild(self, guild_id: GuildID) -> List[ModeratorReviewItem]:
        """Pending review items that moderators of ``guild_id`` may decide."""
        async with self.db.read() as conn:
            items = await ReviewRepo.list_pending(conn)
        return [item for item in items if await self.may_decide_review(item.id, guild_id)]

    # ------------------------------------------------------------------
    # Global ban decisions
    # ------------------------------------------------------------------

    async def approve_global_ban(self, sanction_id: int, moderator_id: str) -> ReviewDecisionResult:
        """
        Approve a pending global ban and fan it out to every served guild.

        ``success`` reports whether the transition committed; individual guild
        failures are in ``fanout``.
        """
        async with self.db.transaction() as conn:
            moved = await SanctionRepo.transition(
                conn,
                sanction_id,
                SanctionKind.PENDING_REVIEW,
                SanctionKind.GLOBAL_APPROVED,
                active=True,
                decided_by=str(moderator_id),
            )
            sanction = await SanctionRepo.get(conn, sanction_id)
            if sanction is None:
                return ReviewDecisionResult(success=False, message=f"Sanction {sanction_id} not found")
            if not moved:
                return ReviewDecisionResult(
                    success=False,
                    message=f"Sanction {sanction_id} is {sanction.kind}, not pending review",
                    sanction_id=sanction_id,
                )

            review = await ReviewRepo.get_for_sanction(conn, sanction_id)
            if review is not None:
                await ReviewRepo.resolve(conn, review.id, ReviewStatus.APPROVED, str(moderator_id))
            await OffenseRepo.set_globally_banned(conn, sanction.user_id, True)

        logger.info("[ESCALATION] Global ban of %s approved by %s (sanction %s)", sanction.user_id, moderator_id, sanction_id)
        fanout = await fan_out_ban(self.enforcer, sanction.user_id, f"Global ban: {sanction.reason}")
        if self.notifier is not None:
            await self.notifier.notify_global_decision(sanction, True, str(moderator_id), fanout=fanout)
        return ReviewDecisionResult(
            success=True,
            message=f"Global ban applied in {len(fanout.succeeded)} guild(s), failed in {len(fanout.failed)}",
            sanction_id=sanction_id,
            fanout=fanout,
        )

    async def reject_global_ban(self, sanction_id: int, moderator_id: str, notes: str = "") -> ReviewDecisionResult:
        """Reject a pending global ban. The offense count is left as is."""
        async with self.db.transaction() as conn:
            moved = await SanctionRepo.transition(
                conn,
                sanction_id,
                SanctionKind.PENDING_REVIEW,
                SanctionKind.GLOBAL_REJECTED,
                active=False,
                decided_by=str(moderator_id),
            )
            if not moved:
                return ReviewDecisionResult(
                    success=False,
                    message=f"Sanction {sanction_id} is not pending review",
                    sanction_id=sanction_id,
                )

            sanction = await SanctionRepo.get(conn, sanction_id)
            review = await ReviewRepo.get_for_sanction(conn, sanction_id)
            if review is not None:
                await ReviewRepo.resolve(conn, review.id, ReviewStatus.REJECTED, str(moderator_id), notes)

        logger.info("[ESCALATION] Global ban for sanction %s rejected by %s", sanction_id, moderator_id)
        if self.notifier is not None:
            await self.notifier.notify_global_decision(sanction, False, str(moderator_id), notes)
        return ReviewDecisionResult(success=True, message="Global ban rejected", sanction_id=sanction_id)

    async def resolve_detection_review(
        self,
        review_id: int,
        approved: bool,
        moderator_id: str,
        notes: str = "",
    ) -> ReviewDecisionResult:
        """
        Decide a review item.

        Items attached to a sanction are global-ban decisions and are routed to
        ``approve_global_ban``/``reject_global_ban``. Items created for a
        borderline detection close without action when rejected. When approved
        they get the same treatment as a flagged image, following the guild's
        ``auto_delete`` and ``auto_ban`` settings.
        """
        async with self.db.read() as conn:
            review = await ReviewRepo.get(conn, review_id)
        if review is None:
            return ReviewDecisionResult(success=False, message=f"Review {review_id} not found")

        if review.sanction_id is not None:
            if approved:
                return await self.approve_global_ban(review.sanction_id, moderator_id)
            return await self.reject_global_ban(review.sanction_id, moderator_id, notes)

        status = ReviewStatus.APPROVED if approved else ReviewStatus.REJECTED
        async with self.db.transaction() as conn:
            resolved = await ReviewRepo.resolve(conn, review_id, status, str(moderator_id), notes)
            if not resolved:
                return ReviewDecisionResult(success=False, message=f"Review {review_id} was already decided")
            detection = await DetectionRepo.get(conn, review.detection_id) if review.detection_id else None
            if detection is not None and not approved:
                await DetectionRepo.set_action_taken(conn, detection.id, "dismissed_by_moderator")

        if not approved:
            logger.info("[ESCALATION] Review %s dismissed by %s", review_id, moderator_id)
            return ReviewDecisionResult(success=True, message="Detection dismissed")

        if detection is None:
            return ReviewDecisionResult(success=True, message="Review approved; no detection to escalate")

        return await self._confirm_detection(detection, moderator_id)

    async def _confirm_detection(self, detection: DetectionRecord, moderator_id: str) -> ReviewDecisionResult:
        guild_id = GuildID(detection.guild_id)
        guild_settings = await self._guild_settings(guild_id)
        actions: List[str] = []
        sanction_id = None

        if guild_settings.auto_delete:
            try:
                await self.enforcer.delete_message(
                    guild_id, ChannelID(detection.channel_id), MessageID(detection.message_id)
                )
                actions.append("message deleted")
            except EnforcementFailure as exc:
                logger.warning("[ESCALATION] Could not delete message %s: %s", detection.message_id, exc.reason)

        if guild_settings.auto_ban:
            escalation = await self.handle_offense(
                UserID(detection.user_id),
                guild_id,
                "Moderator confirmed inappropriate image",
                detection.id,
            )
            actions.append(escalation.message)
            sanction_id = escalation.sanction_id

        summary = "; ".join(actions) or "no automatic action"
        async with self.db.transaction() as conn:
            await DetectionRepo.set_action_taken(conn, detection.id, f"confirmed_by_moderator: {summary}")

        logger.info("[ESCALATION] Detection %s confirmed by %s: %s", detection.id, moderator_id, summary)
        return ReviewDecisionResult(success=True, message=f"Detection confirmed: {summary}", sanction_id=sanction_id)

    # ------------------------------------------------------------------
    # Join-time enforcement
    # ------------------------------------------------------------------

    async def enforce_on_join(self, guild_id: GuildID, user_id: UserID) -> bool:
        """Ban a joining member who is globally banned. Returns True if a ban was issued."""
        async with self.db.read() as conn:
            record = await OffenseRepo.get(conn, user_id)
        if record is None or not record.globally_banned:
            return False

        try:
            await self.enforcer.ban(guild_id, user_id, "Globally banned user")
        except EnforcementFailure as exc:
            logger.error("[ESCALATION] Join-time ban of %s in guild %s failed: %s", user_id, guild_id, exc.reason)
            return False
        logger.info("[ESCALATION] Globally banned user %s banned on joining guild %s", user_id, guild_id)
        return True
