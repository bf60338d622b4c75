import asyncio
from dataclasses import replace

import pytest

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID
from scanguard.services.guild_settings_service import GuildSettingsService


@pytest.mark.asyncio
async def test_get_returns_unsaved_defaults(db):
    service = GuildSettingsService(db)

    settings = await service.get(GuildID(1))

    assert settings.detection_enabled is True
    assert settings.auto_delete is True
    assert settings.auto_ban is True
    assert settings.alert_channel_id is None
    assert await service.load_all() == 0


@pytest.mark.asyncio
async def test_ensure_defaults_persists_once(db):
    service = GuildSettingsService(db)
    first = await service.ensure_defaults(GuildID(1))
    await service.save(replace(first, auto_delete=False))

    again = await service.ensure_defaults(GuildID(1))

    assert again.auto_delete is False


@pytest.mark.asyncio
async def test_save_survives_a_new_service(db):
    service = GuildSettingsService(db)
    settings = replace(
        await service.get(GuildID(5)),
        alert_channel_id=ChannelID(42),
        moderator_role_ids=[7],
    )
    await service.save(settings)

    fresh = GuildSettingsService(db)
    assert await fresh.load_all() == 1
    loaded = await fresh.get(GuildID(5))
    assert loaded.alert_channel_id == ChannelID(42)
    assert loaded.moderator_role_ids == [7]


@pytest.mark.asyncio
async def test_concurrent_saves_for_different_guilds(db):
    service = GuildSettingsService(db)

    async def toggle(gid):
        settings = await service.get(GuildID(gid))
        await service.save(replace(settings, detection_enabled=False))

    await asyncio.gather(*(toggle(g) for g in range(1, 6)))

    fresh = GuildSettingsService(db)
    assert await fresh.load_all() == 5
    assert all(not (await fresh.get(GuildID(g))).detection_enabled for g in range(1, 6))
