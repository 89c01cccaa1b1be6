"""Tests for the event index and inbound event translation."""

from types import SimpleNamespace

from fabric_matrix.events import TimelineEvent, membership_from_nio, timeline_event_from_nio
from fabric_matrix.index import EventIndex


def event(event_id, room_id="!a:server", type="m.room.message", content=None, sender="@alice:server"):
    return TimelineEvent(
        event_id=event_id,
        room_id=room_id,
        sender=sender,
        type=type,
        content=content if content is not None else {"body": event_id},
    )


def test_positions_are_per_room():
    index = EventIndex()

    index.add(event("$1", room_id="!a:server"))
    index.add(event("$2", room_id="!b:server"))
    entry = index.add(event("$3", room_id="!a:server"))

    assert entry.position == 1
    assert index.get("$2").position == 0
    assert index.get("$2").room_id == "!b:server"
    assert index.room_size("!a:server") == 2
    assert len(index) == 3


def test_duplicates_and_missing_ids_are_ignored():
    index = EventIndex()

    index.add(event("$1"))
    assert index.add(event("$1")) is None
    assert index.add(event(None)) is None
    assert len(index) == 1


def test_unknown_event_is_none():
    assert EventIndex().get("$nope") is None


def test_reactions_are_collected_by_target():
    index = EventIndex()
    index.add(event("$target"))
    index.add(event("$r1", type="m.reaction", sender="@bob:server", content={
        "m.relates_to": {"rel_type": "m.annotation", "event_id": "$target", "key": "👍"},
    }))
    index.add(event("$r2", type="m.reaction", content={
        "m.relates_to": {"rel_type": "m.reference", "event_id": "$target"},
    }))

    assert index.reactions("$target") == [{"user_id": "@bob:server", "key": "👍"}]
    assert index.reactions("$other") == []


def test_timeline_event_from_nio_uses_source():
    room = SimpleNamespace(room_id="!a:server")
    nio_event = SimpleNamespace(
        event_id="$x",
        sender="@alice:server",
        source={"type": "m.room.topic", "content": {"topic": "hi"}},
    )

    translated = timeline_event_from_nio(room, nio_event)

    assert translated.type == "m.room.topic"
    assert translated.content == {"topic": "hi"}
    assert translated.room_id == "!a:server"
    assert translated.body is None


def test_membership_from_nio():
    room = SimpleNamespace(room_id="!a:server")
    nio_event = SimpleNamespace(state_key="@bot:server", membership="invite", sender="@alice:server")

    change = membership_from_nio(room, nio_event)

    assert change.user_id == "@bot:server"
    assert change.membership == "invite"
    assert change.sender == "@alice:server"
