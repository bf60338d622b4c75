from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from scanguard.util.discord_utils import format_duration, has_moderator_permission, is_ignored_author, send_dm


def make_member(bot=False, administrator=False, manage_guild=False, role_ids=()):
    member = MagicMock(spec=discord.Member)
    member.bot = bot
    member.guild_permissions = MagicMock(administrator=administrator, manage_guild=manage_guild)
    member.roles = [MagicMock(id=rid) for rid in role_ids]
    return member


@pytest.mark.parametrize("seconds,expected", [
    (0, "Permanent"),
    (45, "45 secs"),
    (120, "2 mins"),
    (3600, "1 hour"),
    (7200, "2 hours"),
    (86400, "1 day"),
    (604800, "7 days"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_is_ignored_author():
    user = MagicMock(spec=discord.User)
    user.bot = False
    assert is_ignored_author(user) is True
    assert is_ignored_author(make_member(bot=True)) is True
    assert is_ignored_author(make_member()) is False


def test_has_moderator_permission():
    assert has_moderator_permission(make_member(administrator=True), []) is True
    assert has_moderator_permission(make_member(manage_guild=True), []) is True
    assert has_moderator_permission(make_member(role_ids=[10, 20]), [20]) is True
    assert has_moderator_permission(make_member(role_ids=[10]), [20]) is False
    assert has_moderator_permission(MagicMock(spec=discord.User), [20]) is False


@pytest.mark.asyncio
async def test_send_dm_reports_closed_dms():
    user = MagicMock()
    user.send = AsyncMock()
    assert await send_dm(user, discord.Embed(title="x")) is True

    response = MagicMock(status=403, reason="Forbidden")
    user.send = AsyncMock(side_effect=discord.Forbidden(response, "Cannot send messages to this user"))
    assert await send_dm(user, discord.Embed(title="x")) is False
