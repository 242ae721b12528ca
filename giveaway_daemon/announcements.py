"""Rendering of the public giveaway post."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import discord

from .models import Cancelled, Closed, Giveaway, Open
from .timeutils import ensure_utc


def _format_remaining(remaining: timedelta) -> str:
    total_minutes = max(int(remaining.total_seconds() // 60), 0)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)


class AnnouncementWriter:
    """Composes the public giveaway post and keeps it in sync with the record."""

    def __init__(self, join_emoji: str) -> None:
        self.join_emoji = join_emoji

    async def write_new(
        self, channel: discord.abc.Messageable, giveaway: Giveaway, *, now: datetime
    ) -> discord.Message:
        embed = self.build_embed(giveaway, now=now, started=now)
        return await channel.send(embed=embed)

    async def write_update(
        self, message: discord.Message, giveaway: Giveaway, *, now: datetime
    ) -> None:
        await message.edit(embed=self.build_embed(giveaway, now=now))

    async def write_winner(self, message: discord.Message, giveaway: Giveaway) -> None:
        await message.edit(embed=self.build_embed(giveaway))

    def build_embed(
        self,
        giveaway: Giveaway,
        *,
        now: Optional[datetime] = None,
        started: Optional[datetime] = None,
    ) -> discord.Embed:
        state = giveaway.state
        if isinstance(state, Closed):
            status = "Finished"
            color = discord.Color.dark_gray()
        elif isinstance(state, Cancelled):
            status = "Cancelled"
            color = discord.Color.red()
        else:
            status = "Active"
            color = discord.Color.blue()

        embed = discord.Embed(
            title=giveaway.game_name,
            url=giveaway.game_url,
            description=(
                f"Giveaway courtesy of <@{giveaway.owner_id}>. "
                f"React with {self.join_emoji} to enter!"
                if status == "Active"
                else f"Giveaway courtesy of <@{giveaway.owner_id}>."
            ),
            color=color,
        )
        embed.add_field(name="Price range", value=giveaway.price, inline=True)
        embed.add_field(
            name="Participants", value=str(len(giveaway.participants)), inline=True
        )
        embed.add_field(name="Status", value=status, inline=True)

        if isinstance(state, Open):
            started = state.started
        if status == "Active" and started is not None:
            ends_at = ensure_utc(started) + timedelta(minutes=giveaway.duration_minutes)
            embed.add_field(
                name="Ends At", value=ends_at.strftime("%Y-%m-%d %H:%M %Z"), inline=False
            )
            if now is not None:
                embed.add_field(
                    name="Time left",
                    value=_format_remaining(ends_at - ensure_utc(now)),
                    inline=True,
                )
        if isinstance(state, Closed):
            winner = f"<@{state.winner_id}>" if state.winner_id else "No winner"
            embed.add_field(name="Winner", value=winner, inline=False)
        if isinstance(state, Cancelled) and state.comment:
            embed.add_field(name="Reason", value=state.comment, inline=False)
        embed.set_footer(text=f"Giveaway ID: {giveaway.id}")
        return embed
