"""Thin helpers over the discord.py client used by the daemon."""

from __future__ import annotations

import logging
from typing import Optional

import discord

log = logging.getLogger(__name__)


async def resolve_text_channel(
    bot: discord.Client, channel_id: Optional[int]
) -> Optional[discord.TextChannel]:
    if not channel_id:
        return None
    channel = bot.get_channel(channel_id)
    if isinstance(channel, discord.TextChannel):
        return channel
    try:
        fetched = await bot.fetch_channel(channel_id)
    except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
        log.warning("Failed to fetch giveaway channel %s: %s", channel_id, exc)
        return None
    return fetched if isinstance(fetched, discord.TextChannel) else None


async def fetch_message(
    channel: discord.abc.Messageable, message_id: Optional[int]
) -> Optional[discord.Message]:
    """Fetch a message, returning None only when the platform says it is gone."""
    if not message_id:
        return None
    try:
        return await channel.fetch_message(message_id)
    except discord.NotFound:
        return None


async def fetch_user(bot: discord.Client, user_id: int) -> Optional[discord.abc.User]:
    user = bot.get_user(user_id)
    if user is not None:
        return user
    try:
        return await bot.fetch_user(user_id)
    except (discord.NotFound, discord.HTTPException) as exc:
        log.warning("Failed to fetch user %s: %s", user_id, exc)
        return None


def can_manage_messages(channel: discord.abc.GuildChannel) -> bool:
    guild = getattr(channel, "guild", None)
    me = getattr(guild, "me", None) if guild is not None else None
    if me is None:
        return False
    return bool(channel.permissions_for(me).manage_messages)


async def send_direct(user: discord.abc.User, text: str) -> bool:
    try:
        await user.send(text)
    except discord.HTTPException as exc:
        log.warning("Failed to send direct message to %s: %s", user.id, exc)
        return False
    return True


async def delete_message(message: discord.Message) -> None:
    try:
        await message.delete()
    except discord.HTTPException as exc:
        log.warning("Failed to delete message %s: %s", message.id, exc)


async def send_message(
    channel: discord.abc.Messageable, text: str
) -> Optional[discord.Message]:
    try:
        return await channel.send(text)
    except discord.HTTPException as exc:
        log.warning("Failed to send message to channel %s: %s", channel.id, exc)
        return None


async def add_reaction(message: discord.Message, emoji: str) -> bool:
    try:
        await message.add_reaction(emoji)
    except discord.HTTPException as exc:
        log.warning("Failed to add %s to message %s: %s", emoji, message.id, exc)
        return False
    return True
