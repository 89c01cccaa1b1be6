"""Typed inbound events.

nio callbacks are translated into these before they reach the dispatch
loop, so tests can inject synthetic events without a homeserver.
"""

from dataclasses import dataclass, field

PREPARED = "PREPARED"
MESSAGE_TYPE = "m.room.message"
REACTION_TYPE = "m.reaction"


@dataclass(frozen=True)
class SyncStatus:
    status: str


@dataclass(frozen=True)
class TimelineEvent:
    event_id: str
    room_id: str
    sender: str
    type: str
    content: dict = field(default_factory=dict)
    backfill: bool = False

    @property
    def body(self):
        return self.content.get("body")

    @property
    def relates_to(self) -> dict:
        return self.content.get("m.relates_to") or {}


@dataclass(frozen=True)
class MembershipChange:
    room_id: str
    user_id: str
    membership: str
    sender: str | None = None


def timeline_event_from_nio(room, event, backfill: bool = False) -> TimelineEvent:
    """Translate a nio timeline event.

    Args:
        room: nio MatrixRoom the event arrived in
        event: Any nio Event; its raw source carries type and content
    """
    source = getattr(event, "source", None) or {}
    return TimelineEvent(
        event_id=getattr(event, "event_id", None) or source.get("event_id"),
        room_id=room.room_id,
        sender=getattr(event, "sender", None) or source.get("sender"),
        type=source.get("type") or type(event).__name__,
        content=source.get("content") or {},
        backfill=backfill,
    )


def membership_from_nio(room, event) -> MembershipChange:
    """Translate a nio RoomMemberEvent or InviteMemberEvent."""
    return MembershipChange(
        room_id=room.room_id,
        user_id=event.state_key,
        membership=event.membership,
        sender=getattr(event, "sender", None),
    )
