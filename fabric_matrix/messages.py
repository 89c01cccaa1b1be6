"""Typed message envelopes emitted on the local "message" stream."""

import json
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """A [type, data] vector, e.g. ["MatrixClientSync", {...}]."""

    type: str
    data: object = field(default=None)

    @classmethod
    def from_vector(cls, vector) -> "Message":
        """Build a message from a [type, data] pair.

        Raises:
            ValueError if the vector has no type
        """
        if not vector or not isinstance(vector[0], str):
            raise ValueError("Message vector must start with a type name")
        data = vector[1] if len(vector) > 1 else None
        return cls(type=vector[0], data=data)

    def to_vector(self) -> list:
        return [self.type, self.data]

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "data": self.data}, default=str)


def handle_message(*data) -> None:
    """Default consumer for the "message" stream: audit-log the payload."""
    for item in data:
        if isinstance(item, Message):
            logger.info("[MESSAGE] %s %s", item.type, item.to_json())
        else:
            logger.info("[MESSAGE] %s", item)
