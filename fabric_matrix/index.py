"""Incremental index of timeline events.

Maps event ids to the room and position they were seen at, and collects
m.reaction annotations by the event they target.
"""

from collections import defaultdict
from dataclasses import dataclass

from fabric_matrix.events import REACTION_TYPE, TimelineEvent


@dataclass(frozen=True)
class IndexEntry:
    event: TimelineEvent
    room_id: str
    position: int


class EventIndex:
    def __init__(self):
        self._entries = {}
        self._positions = defaultdict(int)
        self._reactions = defaultdict(list)

    def add(self, event: TimelineEvent) -> IndexEntry | None:
        """Index an event. Events without an id, or already indexed, are ignored."""
        if not event.event_id or event.event_id in self._entries:
            return None

        position = self._positions[event.room_id]
        self._positions[event.room_id] += 1
        entry = IndexEntry(event=event, room_id=event.room_id, position=position)
        self._entries[event.event_id] = entry

        relation = event.relates_to
        if event.type == REACTION_TYPE and relation.get("rel_type") == "m.annotation":
            self._reactions[relation.get("event_id")].append({
                "user_id": event.sender,
                "key": relation.get("key"),
            })
        return entry

    def get(self, event_id: str) -> IndexEntry | None:
        return self._entries.get(event_id)

    def reactions(self, event_id: str) -> list:
        return list(self._reactions.get(event_id, []))

    def room_size(self, room_id: str) -> int:
        return self._positions.get(room_id, 0)

    def __contains__(self, event_id):
        return event_id in self._entries

    def __len__(self):
        return len(self._entries)
