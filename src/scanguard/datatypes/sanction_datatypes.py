"""
Offense, sanction and review data structures.

These records are owned by the escalation state machine: only
``OffenseEscalationManager`` moves a user's offense count or a sanction's
kind/active flags. Everything else reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List

from scanguard.datatypes.discord_datatypes import GuildID, UserID


class SanctionKind(Enum):
    """Lifecycle states of a sanction record."""

    LOCAL_TIMEOUT = "local_timeout"
    LOCAL_BAN = "local_ban"
    PENDING_REVIEW = "pending_review"
    GLOBAL_APPROVED = "global_approved"
    GLOBAL_REJECTED = "global_rejected"

    def __str__(self) -> str:
        return self.value


class ReviewStatus(Enum):
    """Moderator review status. ``approved``/``rejected`` are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class OffenseRecord:
    """Global per-user offense state."""

    user_id: UserID
    offense_count: int = 0
    globally_banned: bool = False


@dataclass(slots=True)
class SanctionRecord:
    """One escalation decision, transitioned in place rather than replaced."""

    user_id: UserID
    guild_id: GuildID
    level: int
    kind: SanctionKind
    active: bool
    reason: str = ""
    expires_at: datetime | None = None
    detection_id: int | None = None
    decided_by: str | None = None
    id: int | None = None


@dataclass(slots=True)
class ModeratorReviewItem:
    """A pending moderator decision on a detection or a global-ban sanction."""

    status: ReviewStatus = ReviewStatus.PENDING
    detection_id: int | None = None
    sanction_id: int | None = None
    moderator_id: str | None = None
    notes: str = ""
    id: int | None = None


@dataclass(slots=True)
class EscalationResult:
    """Outcome of handling one confirmed offense."""

    success: bool
    level: int
    requires_moderator_review: bool
    message: str
    offense_count: int
    sanction_id: int | None = None
    review_id: int | None = None
    enforcement_error: str | None = None


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """Result of one enforcement attempt inside a best-effort batch."""

    guild_id: GuildID
    success: bool
    error: str | None = None


@dataclass(slots=True)
class FanoutResult:
    """Per-guild outcomes of a best-effort ban fan-out."""

    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[GuildID]:
        return [o.guild_id for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[TargetOutcome]:
        return [o for o in self.outcomes if not o.success]


@dataclass(slots=True)
class ReviewDecisionResult:
    """Outcome of a moderator approving or rejecting a pending global ban.

    ``success`` reflects only whether the state transition committed; the
    fan-out outcomes are reported separately.
    """

    success: bool
    message: str
    sanction_id: int | None = None
    fanout: FanoutResult | None = None
