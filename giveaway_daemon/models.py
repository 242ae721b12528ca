"""Data models used for giveaway persistence and runtime state."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar, FrozenSet, Optional, Set, Union

from .timeutils import format_timestamp, parse_timestamp


class GiveawayStatus(str, enum.Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (GiveawayStatus.CLOSED, GiveawayStatus.CANCELLED)


@dataclass(slots=True)
class Pending:
    """Created but not yet announced in the channel."""

    status: ClassVar[GiveawayStatus] = GiveawayStatus.PENDING

    def open(
        self, *, started: datetime, url_message_id: int, start_message_id: int
    ) -> "Open":
        return Open(
            started=started,
            url_message_id=url_message_id,
            start_message_id=start_message_id,
            last_updated=started,
        )


@dataclass(slots=True)
class Open:
    """Announced and collecting reactions."""

    status: ClassVar[GiveawayStatus] = GiveawayStatus.OPEN

    started: datetime
    url_message_id: int
    start_message_id: int
    last_updated: datetime
    participants: Set[int] = field(default_factory=set)
    cooldown_users: Set[int] = field(default_factory=set)

    def close(self, *, ended: datetime, winner_id: Optional[int]) -> "Closed":
        if winner_id is not None and winner_id not in self.participants:
            raise ValueError(f"Winner {winner_id} is not a participant.")
        return Closed(
            started=self.started,
            ended=ended,
            url_message_id=self.url_message_id,
            start_message_id=self.start_message_id,
            participants=frozenset(self.participants),
            cooldown_users=frozenset(self.cooldown_users),
            winner_id=winner_id,
        )

    def cancel(self, *, ended: datetime, comment: str) -> "Cancelled":
        return Cancelled(
            started=self.started,
            ended=ended,
            url_message_id=self.url_message_id,
            start_message_id=self.start_message_id,
            participants=frozenset(self.participants),
            cooldown_users=frozenset(self.cooldown_users),
            comment=comment,
        )


@dataclass(slots=True)
class Closed:
    """Drawn; ``winner_id`` is None when nobody was eligible."""

    status: ClassVar[GiveawayStatus] = GiveawayStatus.CLOSED

    started: datetime
    ended: datetime
    url_message_id: int
    start_message_id: int
    participants: FrozenSet[int]
    cooldown_users: FrozenSet[int]
    winner_id: Optional[int]


@dataclass(slots=True)
class Cancelled:
    """Aborted before a draw, with the reason in ``comment``."""

    status: ClassVar[GiveawayStatus] = GiveawayStatus.CANCELLED

    started: datetime
    ended: datetime
    url_message_id: int
    start_message_id: int
    participants: FrozenSet[int]
    cooldown_users: FrozenSet[int]
    comment: str


GiveawayState = Union[Pending, Open, Closed, Cancelled]


@dataclass(slots=True)
class Giveaway:
    """Represents one prize draw along with its lifecycle state."""
    id: str
    owner_id: int
    game_name: str
    game_url: str
    price: str
    created: datetime
    duration_minutes: int
    start_minutes: Optional[int] = None
    code: Optional[str] = None
    state: GiveawayState = field(default_factory=Pending)

    @property
    def status(self) -> GiveawayStatus:
        return self.state.status

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def winner_id(self) -> Optional[int]:
        if isinstance(self.state, Closed):
            return self.state.winner_id
        return None

    @property
    def participants(self) -> FrozenSet[int]:
        if isinstance(self.state, Pending):
            return frozenset()
        return frozenset(self.state.participants)

    @property
    def ended(self) -> Optional[datetime]:
        if isinstance(self.state, (Closed, Cancelled)):
            return self.state.ended
        return None

    def to_payload(self) -> dict:
        """Serialize the giveaway to a flat JSON-serialisable structure."""
        state = self.state
        payload = {
            "id": self.id,
            "owner_id": self.owner_id,
            "game_name": self.game_name,
            "game_url": self.game_url,
            "price": self.price,
            "code": self.code,
            "created": format_timestamp(self.created),
            "start_minutes": self.start_minutes,
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
            "started": None,
            "ended": None,
            "last_updated": None,
            "url_message_id": None,
            "start_message_id": None,
            "participants": [],
            "cooldown_users": [],
            "winner_id": None,
            "comment": None,
        }
        if isinstance(state, Pending):
            return payload

        payload.update(
            started=format_timestamp(state.started),
            url_message_id=state.url_message_id,
            start_message_id=state.start_message_id,
            participants=sorted(state.participants),
            cooldown_users=sorted(state.cooldown_users),
        )
        if isinstance(state, Open):
            payload["last_updated"] = format_timestamp(state.last_updated)
        elif isinstance(state, Closed):
            payload["ended"] = format_timestamp(state.ended)
            payload["winner_id"] = state.winner_id
        else:
            payload["ended"] = format_timestamp(state.ended)
            payload["comment"] = state.comment
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "Giveaway":
        """Reconstruct a Giveaway from serialized payload data."""
        start_minutes = payload.get("start_minutes")
        return cls(
            id=str(payload["id"]),
            owner_id=int(payload["owner_id"]),
            game_name=str(payload["game_name"]),
            game_url=str(payload["game_url"]),
            price=str(payload["price"]),
            code=payload.get("code") or None,
            created=parse_timestamp(payload["created"]),
            start_minutes=int(start_minutes) if start_minutes is not None else None,
            duration_minutes=int(payload["duration_minutes"]),
            state=_state_from_payload(payload),
        )


def _state_from_payload(payload: dict) -> GiveawayState:
    try:
        status = GiveawayStatus(payload.get("status", "pending"))
    except ValueError as exc:
        raise ValueError(f"Unknown giveaway status: {payload.get('status')!r}") from exc
    if status is GiveawayStatus.PENDING:
        return Pending()

    started = parse_timestamp(payload.get("started"))
    url_message_id = payload.get("url_message_id")
    start_message_id = payload.get("start_message_id")
    if started is None or url_message_id is None or start_message_id is None:
        raise ValueError(
            f"Giveaway {payload.get('id')} is {status.value} but was never opened."
        )
    participants = {int(user_id) for user_id in payload.get("participants") or []}
    cooldown_users = {int(user_id) for user_id in payload.get("cooldown_users") or []}

    if status is GiveawayStatus.OPEN:
        return Open(
            started=started,
            url_message_id=int(url_message_id),
            start_message_id=int(start_message_id),
            last_updated=parse_timestamp(payload.get("last_updated")) or started,
            participants=participants,
            cooldown_users=cooldown_users,
        )

    ended = parse_timestamp(payload.get("ended"))
    if ended is None:
        raise ValueError(f"Giveaway {payload.get('id')} is {status.value} without an end time.")
    if status is GiveawayStatus.CLOSED:
        winner_id = payload.get("winner_id")
        return Closed(
            started=started,
            ended=ended,
            url_message_id=int(url_message_id),
            start_message_id=int(start_message_id),
            participants=frozenset(participants),
            cooldown_users=frozenset(cooldown_users),
            winner_id=int(winner_id) if winner_id is not None else None,
        )
    return Cancelled(
        started=started,
        ended=ended,
        url_message_id=int(url_message_id),
        start_message_id=int(start_message_id),
        participants=frozenset(participants),
        cooldown_users=frozenset(cooldown_users),
        comment=str(payload.get("comment") or ""),
    )


@dataclass(slots=True)
class WinRecord:
    """Record of a winner used to enforce price-bracket cooldown rules."""
    giveaway_id: str
    user_id: int
    price: str
    game_name: str
    ended: datetime

    @classmethod
    def from_giveaway(cls, giveaway: Giveaway) -> Optional["WinRecord"]:
        """Build the win record a closed giveaway produces, if it has a winner."""
        state = giveaway.state
        if not isinstance(state, Closed) or state.winner_id is None:
            return None
        return cls(
            giveaway_id=giveaway.id,
            user_id=state.winner_id,
            price=giveaway.price,
            game_name=giveaway.game_name,
            ended=state.ended,
        )


def new_giveaway_id() -> str:
    return datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S%f")[-10:]
