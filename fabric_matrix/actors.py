"""Actor identities and the per-service registry.

An actor id is the SHA-256 of the canonical JSON encoding of the data it
was derived from, so the same input always yields the same id.
"""

import copy
import hashlib
import json
from dataclasses import asdict, dataclass, field
from enum import Enum


def canonical_json(data) -> str:
    """Serialize data with sorted keys and no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


class Actor:
    """Identity derived deterministically from its data."""

    __slots__ = ("_data", "_id")

    def __init__(self, data: dict):
        self._data = copy.deepcopy(data)
        self._id = hashlib.sha256(canonical_json(self._data).encode()).hexdigest()

    @property
    def id(self) -> str:
        return self._id

    @property
    def data(self) -> dict:
        return copy.deepcopy(self._data)

    def __eq__(self, other):
        return isinstance(other, Actor) and other.id == self.id

    def __hash__(self):
        return hash(self._id)

    def __repr__(self):
        return f"Actor(id={self._id[:12]}...)"


class Status(str, Enum):
    READY = "READY"
    STARTING = "STARTING"
    STARTED = "STARTED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


@dataclass
class LocalState:
    """In-memory state owned by one service instance. Never persisted."""

    status: Status = Status.READY
    actors: dict = field(default_factory=dict)
    users: dict = field(default_factory=dict)
    channels: dict = field(default_factory=dict)
    messages: dict = field(default_factory=dict)
    validators: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        state = asdict(self)
        state["status"] = self.status.value
        return state

    @property
    def statehash(self) -> str:
        return Actor(self.to_dict()).id


class ActorRegistry:
    """Maps external Matrix user ids to locally derived actors."""

    def __init__(self, state: LocalState):
        self.state = state

    def ensure_user(self, external_id: str) -> Actor:
        """Create or refresh the actor for an external user id.

        Args:
            external_id: Matrix user id (e.g., @alice:server)

        Returns:
            The derived Actor; the same id for the same input
        """
        actor = Actor({"id": external_id})
        self.state.actors[actor.id] = actor.data
        self.state.users[external_id] = {"actor": actor.id}
        return actor

    def register(self, pubkey: str, memory: dict) -> Actor:
        """Store the canonical actor for a public key.

        Only the pubkey takes part in the id; memory is what gets stored.
        """
        actor = Actor({"pubkey": pubkey})
        self.state.actors[actor.id] = copy.deepcopy(memory)
        return actor

    def actor_for(self, external_id: str) -> str | None:
        """Return the actor id mapped to an external user id, if any."""
        entry = self.state.users.get(external_id)
        return entry["actor"] if entry else None

    def __len__(self):
        return len(self.state.actors)

    def __contains__(self, external_id):
        return external_id in self.state.users
