"""Exceptions raised by the Matrix service."""


class MatrixServiceError(Exception):
    """Base class for all service errors."""


class ConfigError(MatrixServiceError):
    """Configuration file could not be read or is malformed."""


class ValidationError(MatrixServiceError, ValueError):
    """A required field or argument is missing."""


class ExternalCallError(MatrixServiceError):
    """The homeserver (or the nio client) rejected or failed a request.

    Attributes:
        operation: Name of the outward call, e.g. "room_send"
        errcode: Matrix errcode or HTTP status, if known
    """

    def __init__(self, operation: str, message: str, errcode: str | None = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.errcode = errcode


class ProtocolViolation(MatrixServiceError):
    """The client reported a lifecycle status the service cannot handle."""


class EventNotFound(MatrixServiceError, LookupError):
    """No known room timeline contains the requested event."""

    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id
