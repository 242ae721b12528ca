from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from giveaway_daemon.config import GiveawaySettings
from giveaway_daemon.daemon import Daemon
from giveaway_daemon.models import Giveaway
from giveaway_daemon.state import StateRegistry
from giveaway_daemon.storage import GiveawayStore

BOT_ID = 1
OWNER_ID = 500
JOIN_EMOJI = "🎉"
START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def not_found(text: str = "Unknown Message") -> discord.NotFound:
    response = MagicMock()
    response.status = 404
    response.reason = "Not Found"
    return discord.NotFound(response, text)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeUser:
    def __init__(self, user_id: int, name: str | None = None) -> None:
        self.id = user_id
        self.name = name or f"user{user_id}"
        self.send = AsyncMock()

    def __str__(self) -> str:
        return self.name


class FakeReaction:
    def __init__(
        self, emoji: str, users: list[FakeUser] | None = None, *, me: bool = False
    ) -> None:
        self.emoji = emoji
        self.me = me
        self.user_list = list(users or [])
        self.remove = AsyncMock()

    async def users(self):
        for user in list(self.user_list):
            yield user


class FakeMessage:
    def __init__(self, message_id: int, content=None, embed=None) -> None:
        self.id = message_id
        self.content = content
        self.embed = embed
        self.reactions: list[FakeReaction] = []
        self.add_reaction = AsyncMock(side_effect=self.record_reaction)
        self.edit = AsyncMock()
        self.delete = AsyncMock()

    def record_reaction(self, emoji: str) -> None:
        for reaction in self.reactions:
            if reaction.emoji == emoji:
                reaction.me = True
                return
        self.reactions.append(FakeReaction(emoji, me=True))


class FakeChannel:
    def __init__(self, *, manage_messages: bool = True) -> None:
        self.id = 900
        self.guild = SimpleNamespace(me=SimpleNamespace(id=BOT_ID))
        self.manage_messages = manage_messages
        self.messages: dict[int, FakeMessage] = {}
        self.sent: list[FakeMessage] = []
        self._next_id = 1000

    async def send(self, content=None, *, embed=None) -> FakeMessage:
        self._next_id += 1
        message = FakeMessage(self._next_id, content=content, embed=embed)
        self.messages[message.id] = message
        self.sent.append(message)
        return message

    async def fetch_message(self, message_id: int) -> FakeMessage:
        try:
            return self.messages[message_id]
        except KeyError:
            raise not_found() from None

    def permissions_for(self, member):
        return SimpleNamespace(manage_messages=self.manage_messages)


class FakeBot:
    def __init__(self) -> None:
        self.user = FakeUser(BOT_ID, "giveaway-bot")
        self.users: dict[int, FakeUser] = {}
        self.fetch_user = AsyncMock(side_effect=not_found("Unknown User"))

    def add_user(self, user: FakeUser) -> FakeUser:
        self.users[user.id] = user
        return user

    def get_user(self, user_id: int):
        return self.users.get(user_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> GiveawaySettings:
    return GiveawaySettings(
        channel_id=900,
        join_emoji=JOIN_EMOJI,
        winning_cooldown_days=30,
        retention_days=30,
        daemon_interval_seconds=5,
    )


@pytest.fixture
def store(tmp_path) -> GiveawayStore:
    return GiveawayStore(
        tmp_path / "giveaways.sqlite", retention_days=30, winning_cooldown_days=30
    )


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def bot() -> FakeBot:
    fake = FakeBot()
    fake.add_user(FakeUser(OWNER_ID, "owner"))
    return fake


@pytest.fixture
def state() -> StateRegistry:
    return StateRegistry()


@pytest.fixture
def daemon(bot, settings, store, state, channel, clock) -> Daemon:
    async def provider():
        return channel

    return Daemon(bot, settings, store, state, channel_provider=provider, clock=clock)


def make_giveaway(giveaway_id: str = "g1", **overrides) -> Giveaway:
    values = dict(
        id=giveaway_id,
        owner_id=OWNER_ID,
        game_name="Portal 2",
        game_url="https://store.example/portal2",
        price="10-20",
        created=START,
        duration_minutes=60,
    )
    values.update(overrides)
    return Giveaway(**values)
