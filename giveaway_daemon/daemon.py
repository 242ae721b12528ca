"""Background reconciliation of giveaways against the giveaway channel.

Each tick loads every pending or open giveaway and moves it along: pending
giveaways are announced once their start delay has passed, open giveaways
collect entrants from the join reaction, and giveaways whose duration has
elapsed are drawn and announced. Progress is persisted after every step so an
interrupted tick resumes on the next one.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

import discord

from .announcements import AnnouncementWriter
from .config import GiveawaySettings
from .cooldown import CooldownPolicy
from .discord_helpers import (
    add_reaction,
    can_manage_messages,
    delete_message,
    fetch_message,
    fetch_user,
    resolve_text_channel,
    send_direct,
    send_message,
)
from .models import Giveaway, Open, Pending, WinRecord
from .selector import select_winner
from .state import CHANNEL_NOT_SET, MESSAGE_PERMISSION, StateRegistry
from .storage import GiveawayStore
from .timeutils import minutes_since, utcnow

log = logging.getLogger(__name__)

MESSAGE_NOT_FOUND = "message not found"

ChannelProvider = Callable[[], Awaitable[Optional[discord.TextChannel]]]
WinnerSelector = Callable[..., Optional[int]]


class DaemonResult(enum.Enum):
    DAEMON_FINISHED = "daemon_finished"
    CHANNEL_NOT_SET = "channel_not_set"
    DAEMON_BUSY = "daemon_busy"
    DAEMON_FAILED = "daemon_failed"


class Daemon:
    """Drives every active giveaway through its lifecycle, one tick at a time."""

    def __init__(
        self,
        bot: discord.Client,
        settings: GiveawaySettings,
        store: GiveawayStore,
        state: StateRegistry,
        *,
        writer: Optional[AnnouncementWriter] = None,
        channel_provider: Optional[ChannelProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        selector: WinnerSelector = select_winner,
    ) -> None:
        self.bot = bot
        self.settings = settings
        self.store = store
        self.state = state
        self.writer = writer or AnnouncementWriter(settings.join_emoji)
        self.cooldown = CooldownPolicy(
            store, settings.winning_cooldown_days, clock=clock
        )
        self._channel_provider = channel_provider or self._resolve_channel
        self._clock = clock
        self._select_winner = selector
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def tick(self) -> DaemonResult:
        if self._busy:
            log.debug("Previous daemon tick still running; skipping.")
            return DaemonResult.DAEMON_BUSY

        self._busy = True
        try:
            return await self._reconcile()
        except Exception:
            log.exception("Daemon tick aborted")
            return DaemonResult.DAEMON_FAILED
        finally:
            self._busy = False

    async def _resolve_channel(self) -> Optional[discord.TextChannel]:
        channel_id = await self.store.get_channel_id() or self.settings.channel_id
        return await resolve_text_channel(self.bot, channel_id)

    async def _reconcile(self) -> DaemonResult:
        channel = await self._channel_provider()
        if channel is None:
            self.state.add(
                CHANNEL_NOT_SET,
                "Giveaway channel not set, or invalid. Please reset channel.",
            )
            return DaemonResult.CHANNEL_NOT_SET
        self.state.remove(CHANNEL_NOT_SET)

        for giveaway in await self.store.get_active():
            await self._process(channel, giveaway)

        await self.store.clean(self._clock())
        return DaemonResult.DAEMON_FINISHED

    async def _process(self, channel: discord.TextChannel, giveaway: Giveaway) -> None:
        now = self._clock()

        if isinstance(giveaway.state, Pending):
            if not giveaway.start_minutes or (
                minutes_since(giveaway.created, now) >= giveaway.start_minutes
            ):
                await self._open(channel, giveaway, now)
            return

        if not isinstance(giveaway.state, Open):
            return

        message = await fetch_message(channel, giveaway.state.start_message_id)
        if message is None:
            await self._cancel_missing(channel, giveaway, now)
            return

        await self._ingest_participants(channel, giveaway, message, now)

        if minutes_since(giveaway.state.started, now) >= giveaway.duration_minutes:
            await self._close(channel, giveaway, message, now)
            return

        if minutes_since(giveaway.state.last_updated, now) >= 1:
            await self.writer.write_update(message, giveaway, now=now)
            giveaway.state.last_updated = now
            await self.store.update(giveaway)

    async def _open(
        self, channel: discord.TextChannel, giveaway: Giveaway, now: datetime
    ) -> None:
        url_message = await channel.send(giveaway.game_url)
        post = await self.writer.write_new(channel, giveaway, now=now)

        giveaway.state = giveaway.state.open(
            started=now,
            url_message_id=url_message.id,
            start_message_id=post.id,
        )
        await self.store.update(giveaway)

        await add_reaction(post, self.settings.join_emoji)
        log.info("Giveaway ID %s - %s opened.", giveaway.id, giveaway.game_name)

    async def _cancel_missing(
        self, channel: discord.TextChannel, giveaway: Giveaway, now: datetime
    ) -> None:
        url_message_id = giveaway.state.url_message_id
        giveaway.state = giveaway.state.cancel(ended=now, comment=MESSAGE_NOT_FOUND)
        await self.store.update(giveaway)
        log.info(
            "Giveaway ID %s - %s cancelled: start message not found.",
            giveaway.id,
            giveaway.game_name,
        )

        url_message = await fetch_message(channel, url_message_id)
        if url_message is not None:
            await delete_message(url_message)

    async def _ingest_participants(
        self,
        channel: discord.TextChannel,
        giveaway: Giveaway,
        message: discord.Message,
        now: datetime,
    ) -> None:
        # reaction user lists are partial snapshots; entries only ever accumulate
        reaction = next(
            (
                r
                for r in message.reactions
                if str(r.emoji) == self.settings.join_emoji
            ),
            None,
        )
        if reaction is None or not reaction.me:
            # the bot's own join reaction is missing from the post
            await add_reaction(message, self.settings.join_emoji)
        users = [user async for user in reaction.users()] if reaction else []
        state: Open = giveaway.state
        bot_id = self.bot.user.id

        for user in users:
            if user.id == bot_id or user.id in state.participants:
                continue

            win = await self.cooldown.get_comparable_winning(user.id, giveaway.price)
            if win is not None:
                await self._reject(channel, giveaway, reaction, user, win, now)
                continue

            state.participants.add(user.id)
            log.info(
                "%s joined giveaway ID %s - %s.", user, giveaway.id, giveaway.game_name
            )

        await self.store.update(giveaway)

    async def _reject(
        self,
        channel: discord.TextChannel,
        giveaway: Giveaway,
        reaction: discord.Reaction,
        user: discord.abc.User,
        win: WinRecord,
        now: datetime,
    ) -> None:
        state: Open = giveaway.state
        remove_error: Optional[Exception] = None
        if can_manage_messages(channel):
            try:
                await reaction.remove(user)
                self.state.remove(MESSAGE_PERMISSION)
            except discord.HTTPException as exc:
                remove_error = exc
        else:
            self.state.add(
                MESSAGE_PERMISSION,
                'Cannot delete user responses, please give me permission "Manage Messages".',
            )

        # notify once per user per giveaway; removal may keep failing every tick
        if user.id not in state.cooldown_users:
            state.cooldown_users.add(user.id)
            await send_direct(
                user, self.cooldown.rejection_message(giveaway, win, now)
            )
            if remove_error is not None:
                log.info(
                    "Failed to remove participation reaction from %s on giveaway %s - %s: %s",
                    user,
                    giveaway.id,
                    giveaway.game_name,
                    remove_error,
                )

        log.info(
            "%s was on cooldown, removed from giveaway ID %s - %s.",
            user,
            giveaway.id,
            giveaway.game_name,
        )

    async def _close(
        self,
        channel: discord.TextChannel,
        giveaway: Giveaway,
        message: discord.Message,
        now: datetime,
    ) -> None:
        state: Open = giveaway.state
        winner_id = self._select_winner(state.participants, exclude=self._excluded())
        giveaway.state = state.close(ended=now, winner_id=winner_id)
        await self.store.update(giveaway)

        # the record is already terminal; post and channel updates are best-effort
        try:
            await self.writer.write_winner(message, giveaway)
        except discord.HTTPException as exc:
            log.warning(
                "Failed to update post for giveaway ID %s - %s: %s",
                giveaway.id,
                giveaway.game_name,
                exc,
            )

        winner = await fetch_user(self.bot, winner_id) if winner_id else None
        if winner_id and winner is None:
            log.error(
                "%s won giveaway ID %s - %s, failed to retrieve user from discord",
                winner_id,
                giveaway.id,
                giveaway.game_name,
            )

        if winner is not None:
            await send_message(
                channel,
                f"Congratulations <@{winner_id}>, you won the draw for "
                f"{giveaway.game_name}!",
            )
            winner_message = (
                f"Congratulations, you just won {giveaway.game_name}, "
                f"courtesy of <@{giveaway.owner_id}>. "
            )
            if giveaway.code:
                winner_message += f"Your game key is {giveaway.code}."
            else:
                winner_message += "Contact them for your game key."
            await send_direct(winner, winner_message)
            log.info(
                "%s won giveaway ID %s - %s.", winner, giveaway.id, giveaway.game_name
            )
        else:
            log.info(
                "Giveaway ID %s - %s closed without a winner.",
                giveaway.id,
                giveaway.game_name,
            )

        owner = await fetch_user(self.bot, giveaway.owner_id)
        if owner is not None:
            owner_message = f"Giveaway for {giveaway.game_name} ended. "
            if winner is not None:
                owner_message += f"The winner was <@{winner_id}>."
            elif winner_id:
                owner_message += (
                    f"Er, looks like we lost the winner (discord id: <@{winner_id}>)."
                )
            else:
                owner_message += "No winner was found."
            await send_direct(owner, owner_message)

    def _excluded(self) -> Iterable[int]:
        user = self.bot.user
        return (user.id,) if user is not None else ()
