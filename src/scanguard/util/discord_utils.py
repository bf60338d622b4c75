"""
discord_utils.py
================

Stateless helpers for Discord-specific operations: author filtering,
moderator permission checks, duration formatting and DM notices.
"""

from typing import Iterable, Union

import discord

from scanguard.util.logger import get_logger

logger = get_logger("discord_utils")


def is_ignored_author(author: Union[discord.User, discord.Member]) -> bool:
    """
    Check if an author should be ignored by the scanners (bots or non-members).

    Args:
        author (discord.User | discord.Member): The user or member to check.

    Returns:
        bool: True if the author is a bot or not a member, False otherwise.
    """
    return author.bot or not isinstance(author, discord.Member)


def has_moderator_permission(member: Union[discord.User, discord.Member], moderator_role_ids: Iterable[int]) -> bool:
    """
    Check whether a member may run moderation commands or press review buttons.

    Members with administrator or manage guild permission always qualify;
    otherwise they need one of the guild's configured moderator roles.
    """
    if not isinstance(member, discord.Member):
        return False

    perms = member.guild_permissions
    if perms.administrator or perms.manage_guild:
        return True

    allowed = set(moderator_role_ids)
    return any(role.id in allowed for role in member.roles)


def format_duration(seconds: int) -> str:
    """
    Convert a duration in seconds to a human-readable string.

    Args:
        seconds (int): Duration in seconds; 0 means permanent.

    Returns:
        str: Human-readable duration string.
    """
    if seconds <= 0:
        return "Permanent"
    elif seconds < 60:
        return f"{seconds} secs"
    elif seconds < 3600:
        return f"{seconds // 60} mins"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    else:
        days = seconds // 86400
        return f"{days} day{'s' if days != 1 else ''}"


async def send_dm(user: Union[discord.User, discord.Member], embed: discord.Embed) -> bool:
    """
    Send an embed to a user's DMs.

    Returns:
        bool: False if the user has DMs closed or the send failed.
    """
    try:
        await user.send(embed=embed)
        return True
    except discord.Forbidden:
        logger.debug("Cannot DM user %s: DMs closed", user.id)
    except discord.HTTPException as exc:
        logger.warning("Failed to DM user %s: %s", user.id, exc)
    return False
