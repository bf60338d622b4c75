import pytest

from scanguard.datatypes.detection_datatypes import Severity
from scanguard.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from scanguard.datatypes.guild_settings import GuildSettings
from scanguard.datatypes.sanction_datatypes import ModeratorReviewItem, ReviewStatus, SanctionKind, SanctionRecord
from scanguard.repositories.detection_repo import DetectionRecord, DetectionRepo, ReviewRepo
from scanguard.repositories.guild_settings_repo import GuildSettingsRepo
from scanguard.repositories.hash_repo import HashRepo
from scanguard.repositories.offense_repo import OffenseRepo
from scanguard.repositories.sanction_repo import SanctionRepo


@pytest.mark.asyncio
async def test_offense_increment_creates_then_counts(db):
    async with db.transaction() as conn:
        first = await OffenseRepo.increment(conn, UserID(7))
        second = await OffenseRepo.increment(conn, UserID(7))

    assert (first.offense_count, second.offense_count) == (1, 2)
    assert second.globally_banned is False

    async with db.read() as conn:
        assert await OffenseRepo.get(conn, UserID(8)) is None
        assert (await OffenseRepo.get(conn, UserID(7))).offense_count == 2


@pytest.mark.asyncio
async def test_set_globally_banned_keeps_count(db):
    async with db.transaction() as conn:
        await OffenseRepo.increment(conn, UserID(7))
        await OffenseRepo.set_globally_banned(conn, UserID(7))
        await OffenseRepo.set_globally_banned(conn, UserID(9))

    async with db.read() as conn:
        seven = await OffenseRepo.get(conn, UserID(7))
        nine = await OffenseRepo.get(conn, UserID(9))
    assert (seven.offense_count, seven.globally_banned) == (1, True)
    assert (nine.offense_count, nine.globally_banned) == (0, True)


@pytest.mark.asyncio
async def test_sanction_transition_is_guarded(db):
    record = SanctionRecord(
        user_id=UserID(7),
        guild_id=GuildID(1),
        level=2,
        kind=SanctionKind.PENDING_REVIEW,
        active=False,
        reason="second offense",
    )
    async with db.transaction() as conn:
        sanction_id = await SanctionRepo.insert(conn, record)
        assert await SanctionRepo.transition(
            conn, sanction_id, SanctionKind.PENDING_REVIEW, SanctionKind.GLOBAL_APPROVED, True, "mod"
        )
        assert not await SanctionRepo.transition(
            conn, sanction_id, SanctionKind.PENDING_REVIEW, SanctionKind.GLOBAL_REJECTED, False, "other"
        )

    async with db.read() as conn:
        stored = await SanctionRepo.get(conn, sanction_id)
    assert stored.kind is SanctionKind.GLOBAL_APPROVED
    assert stored.active is True
    assert stored.decided_by == "mod"
    assert stored.user_id == UserID(7)


@pytest.mark.asyncio
async def test_review_resolve_only_once(db):
    async with db.transaction() as conn:
        review_id = await ReviewRepo.insert(conn, ModeratorReviewItem())
        assert await ReviewRepo.resolve(conn, review_id, ReviewStatus.REJECTED, "mod", "looks fine")
        assert not await ReviewRepo.resolve(conn, review_id, ReviewStatus.APPROVED, "mod2")
        with pytest.raises(ValueError):
            await ReviewRepo.resolve(conn, review_id, ReviewStatus.PENDING, "mod")

    async with db.read() as conn:
        review = await ReviewRepo.get(conn, review_id)
        assert await ReviewRepo.list_pending(conn) == []
    assert review.status is ReviewStatus.REJECTED
    assert review.moderator_id == "mod"
    assert review.notes == "looks fine"


@pytest.mark.asyncio
async def test_detection_insert_and_action(db):
    record = DetectionRecord(
        user_id="7",
        guild_id=1,
        channel_id=2,
        message_id=3,
        image_url="https://cdn.example.com/a.png",
        image_hash="00ff",
        method="hash_match",
        confidence=1.0,
        flagged=True,
        requires_review=False,
        processing_time_ms=12,
    )
    async with db.transaction() as conn:
        detection_id = await DetectionRepo.insert(conn, record)
        await DetectionRepo.set_action_taken(conn, detection_id, "message deleted")

    async with db.read() as conn:
        stored = await DetectionRepo.get(conn, detection_id)
        assert await DetectionRepo.get(conn, detection_id + 100) is None
    assert stored.flagged is True
    assert stored.requires_review is False
    assert stored.action_taken == "message deleted"
    assert stored.processing_time_ms == 12


@pytest.mark.asyncio
async def test_hash_rows_are_deactivated_not_deleted(db):
    async with db.transaction() as conn:
        await HashRepo.insert(conn, "aa" * 8, "mod:1", Severity.LOW)
        await HashRepo.insert(conn, "bb" * 8, "mod:1")
        assert await HashRepo.deactivate(conn, "aa" * 8) == 1
        assert await HashRepo.deactivate(conn, "aa" * 8) == 0

    async with db.read() as conn:
        active = await HashRepo.list_active(conn)
        history = await HashRepo.find(conn, "aa" * 8)
    assert [h.hash for h in active] == ["bb" * 8]
    assert active[0].severity is Severity.HIGH
    assert len(history) == 1
    assert history[0].active is False
    assert history[0].severity is Severity.LOW


@pytest.mark.asyncio
async def test_guild_settings_round_trip(db):
    settings = GuildSettings(
        guild_id=GuildID(1),
        auto_ban=False,
        alert_channel_id=ChannelID(99),
        moderator_role_ids=[30, 10, 30],
    )
    async with db.transaction() as conn:
        await GuildSettingsRepo.upsert(conn, settings)

    async with db.read() as conn:
        stored = await GuildSettingsRepo.get(conn, GuildID(1))
        everything = await GuildSettingsRepo.get_all(conn)
        assert await GuildSettingsRepo.get(conn, GuildID(2)) is None
    assert stored.auto_ban is False
    assert stored.detection_enabled is True
    assert stored.alert_channel_id == ChannelID(99)
    assert stored.moderator_role_ids == [10, 30]
    assert list(everything) == [GuildID(1)]
