from datetime import timedelta

import pytest

from conftest import START, make_giveaway
from giveaway_daemon.models import (
    Cancelled,
    Closed,
    Giveaway,
    GiveawayStatus,
    Open,
    Pending,
    WinRecord,
)


def test_new_giveaway_is_pending():
    giveaway = make_giveaway()

    assert isinstance(giveaway.state, Pending)
    assert giveaway.status is GiveawayStatus.PENDING
    assert giveaway.participants == frozenset()
    assert giveaway.winner_id is None
    assert giveaway.ended is None
    assert not giveaway.is_terminal


def test_lifecycle_moves_forward_only():
    giveaway = make_giveaway()
    giveaway.state = giveaway.state.open(
        started=START, url_message_id=1, start_message_id=2
    )
    assert giveaway.status is GiveawayStatus.OPEN
    assert giveaway.state.last_updated == START

    giveaway.state.participants.add(7)
    ended = START + timedelta(hours=1)
    giveaway.state = giveaway.state.close(ended=ended, winner_id=7)

    assert isinstance(giveaway.state, Closed)
    assert giveaway.is_terminal
    assert giveaway.winner_id == 7
    assert giveaway.ended == ended
    assert not hasattr(giveaway.state, "open")
    assert not hasattr(giveaway.state, "close")


def test_close_rejects_winner_outside_participants():
    state = Pending().open(started=START, url_message_id=1, start_message_id=2)

    with pytest.raises(ValueError):
        state.close(ended=START, winner_id=99)


def test_cancel_keeps_participants_and_comment():
    state = Pending().open(started=START, url_message_id=1, start_message_id=2)
    state.participants.add(3)

    cancelled = state.cancel(ended=START, comment="message not found")

    assert isinstance(cancelled, Cancelled)
    assert cancelled.status.is_terminal
    assert cancelled.participants == frozenset({3})
    assert cancelled.comment == "message not found"


def test_payload_round_trip_for_open_giveaway():
    giveaway = make_giveaway(start_minutes=15, code="ABC")
    giveaway.state = Open(
        started=START,
        url_message_id=1,
        start_message_id=2,
        last_updated=START + timedelta(minutes=3),
        participants={5, 4},
        cooldown_users={8},
    )

    payload = giveaway.to_payload()

    assert payload["status"] == "open"
    assert payload["participants"] == [4, 5]
    assert payload["winner_id"] is None
    assert payload["started"] == "2024-01-01T12:00:00+00:00"
    assert Giveaway.from_payload(payload) == giveaway


def test_pending_payload_has_no_lifecycle_fields():
    payload = make_giveaway().to_payload()

    assert payload["status"] == "pending"
    assert payload["started"] is None
    assert payload["start_message_id"] is None
    assert isinstance(Giveaway.from_payload(payload).state, Pending)


@pytest.mark.parametrize(
    "changes",
    [
        {"status": "open", "started": None},
        {"status": "closed", "ended": None},
        {"status": "archived"},
    ],
)
def test_inconsistent_payload_is_rejected(changes):
    giveaway = make_giveaway()
    giveaway.state = Pending().open(started=START, url_message_id=1, start_message_id=2)
    giveaway.state = giveaway.state.close(ended=START, winner_id=None)
    payload = giveaway.to_payload()
    payload.update(changes)

    with pytest.raises(ValueError):
        Giveaway.from_payload(payload)


def test_win_record_only_for_closed_with_winner():
    giveaway = make_giveaway()
    assert WinRecord.from_giveaway(giveaway) is None

    giveaway.state = Pending().open(started=START, url_message_id=1, start_message_id=2)
    giveaway.state.participants.add(6)
    giveaway.state = giveaway.state.close(ended=START, winner_id=6)

    win = WinRecord.from_giveaway(giveaway)
    assert win.user_id == 6
    assert win.price == "10-20"
    assert win.ended == START
