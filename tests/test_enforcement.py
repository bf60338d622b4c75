import datetime
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from scanguard.detection.errors import EnforcementFailure
from scanguard.moderation.enforcement import DiscordEnforcer, fan_out_ban


def http_response(status):
    return MagicMock(status=status, reason="error")


def make_bot(guilds):
    bot = MagicMock()
    bot.guilds = guilds
    bot.get_guild.side_effect = lambda gid: next((g for g in guilds if g.id == gid), None)
    return bot


def make_guild(guild_id, ban_error=None):
    guild = MagicMock()
    guild.id = guild_id
    guild.ban = AsyncMock(side_effect=ban_error)
    return guild


@pytest.mark.asyncio
async def test_ban_uses_discord_object():
    guild = make_guild(1)
    enforcer = DiscordEnforcer(make_bot([guild]))

    await enforcer.ban(GuildID(1), UserID(42), "reason")

    args, kwargs = guild.ban.call_args
    assert isinstance(args[0], discord.Object)
    assert args[0].id == 42
    assert kwargs["reason"] == "reason"
    assert kwargs["delete_message_seconds"] == 0


@pytest.mark.asyncio
async def test_ban_translates_discord_errors():
    forbidden = make_guild(1, discord.Forbidden(http_response(403), "Missing Permissions"))
    failing = make_guild(2, discord.HTTPException(http_response(500), "server error"))
    enforcer = DiscordEnforcer(make_bot([forbidden, failing]))

    with pytest.raises(EnforcementFailure) as excinfo:
        await enforcer.ban(GuildID(1), UserID(42), "reason")
    assert excinfo.value.reason == "missing ban permission"

    with pytest.raises(EnforcementFailure):
        await enforcer.ban(GuildID(2), UserID(42), "reason")

    with pytest.raises(EnforcementFailure) as excinfo:
        await enforcer.ban(GuildID(3), UserID(42), "reason")
    assert excinfo.value.reason == "guild not available"


@pytest.mark.asyncio
async def test_timeout_fetches_uncached_member():
    member = MagicMock()
    member.timeout_for = AsyncMock()
    guild = make_guild(1)
    guild.get_member.return_value = None
    guild.fetch_member = AsyncMock(return_value=member)
    enforcer = DiscordEnforcer(make_bot([guild]))

    await enforcer.timeout(GuildID(1), UserID(42), datetime.timedelta(hours=1), "reason")

    guild.fetch_member.assert_awaited_once_with(42)
    member.timeout_for.assert_awaited_once_with(datetime.timedelta(hours=1), reason="reason")


@pytest.mark.asyncio
async def test_timeout_member_not_found():
    guild = make_guild(1)
    guild.get_member.return_value = None
    guild.fetch_member = AsyncMock(side_effect=discord.NotFound(http_response(404), "Unknown Member"))
    enforcer = DiscordEnforcer(make_bot([guild]))

    with pytest.raises(EnforcementFailure) as excinfo:
        await enforcer.timeout(GuildID(1), UserID(42), datetime.timedelta(minutes=5), "reason")
    assert excinfo.value.reason == "member not found"


def test_served_guild_ids():
    enforcer = DiscordEnforcer(make_bot([make_guild(1), make_guild(2)]))
    assert enforcer.served_guild_ids() == [GuildID(1), GuildID(2)]


@pytest.mark.asyncio
async def test_fan_out_continues_after_failure():
    guilds = [
        make_guild(1),
        make_guild(2, discord.Forbidden(http_response(403), "Missing Permissions")),
        make_guild(3),
    ]
    enforcer = DiscordEnforcer(make_bot(guilds))

    result = await fan_out_ban(enforcer, UserID(42), "global")

    assert result.succeeded == [GuildID(1), GuildID(3)]
    assert [(o.guild_id, o.error) for o in result.failed] == [(GuildID(2), "missing ban permission")]
    guilds[2].ban.assert_awaited_once()


@pytest.mark.asyncio
async def test_fan_out_explicit_targets():
    enforcer = MagicMock()
    enforcer.ban = AsyncMock()

    result = await fan_out_ban(enforcer, UserID(42), "global", guild_ids=[GuildID(7)])

    enforcer.served_guild_ids.assert_not_called()
    assert result.succeeded == [GuildID(7)]


@pytest.mark.asyncio
async def test_fan_out_no_guilds():
    enforcer = MagicMock()
    enforcer.served_guild_ids.return_value = []

    result = await fan_out_ban(enforcer, UserID(42), "global")

    assert result.outcomes == []


def make_channel(delete_error=None):
    channel = MagicMock()
    channel.get_partial_message.return_value.delete = AsyncMock(side_effect=delete_error)
    return channel


@pytest.mark.asyncio
async def test_delete_message_uses_partial_message():
    channel = make_channel()
    bot = make_bot([])
    bot.get_channel.return_value = channel
    enforcer = DiscordEnforcer(bot)

    await enforcer.delete_message(GuildID(1), ChannelID(10), MessageID(20))

    bot.get_channel.assert_called_once_with(10)
    channel.get_partial_message.assert_called_once_with(20)
    channel.get_partial_message.return_value.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_message_fetches_uncached_channel_and_ignores_missing_message():
    channel = make_channel(discord.NotFound(http_response(404), "Unknown Message"))
    bot = make_bot([])
    bot.get_channel.return_value = None
    bot.fetch_channel = AsyncMock(return_value=channel)
    enforcer = DiscordEnforcer(bot)

    await enforcer.delete_message(GuildID(1), ChannelID(10), MessageID(20))

    bot.fetch_channel.assert_awaited_once_with(10)


@pytest.mark.asyncio
async def test_delete_message_without_permission_raises():
    bot = make_bot([])
    bot.get_channel.return_value = make_channel(discord.Forbidden(http_response(403), "Missing Permissions"))
    enforcer = DiscordEnforcer(bot)

    with pytest.raises(EnforcementFailure) as excinfo:
        await enforcer.delete_message(GuildID(1), ChannelID(10), MessageID(20))
    assert excinfo.value.reason == "missing manage messages permission"
