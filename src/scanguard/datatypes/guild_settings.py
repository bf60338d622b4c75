"""
Persistent per-guild configuration values.

Database schema:
- guild_settings table with columns: guild_id, detection_enabled, auto_delete,
  auto_ban, alert_channel_id
- guild_moderator_roles table with columns: guild_id, role_id
"""
from dataclasses import dataclass, field
from typing import List

from scanguard.datatypes.discord_datatypes import ChannelID, GuildID


@dataclass(slots=True)
class GuildSettings:
    """Per-guild detection and enforcement toggles."""

    guild_id: GuildID
    detection_enabled: bool = True
    auto_delete: bool = True
    auto_ban: bool = True
    alert_channel_id: ChannelID | None = None
    moderator_role_ids: List[int] = field(default_factory=list)
