"""Fabric Matrix agent.

Relays a Matrix coordinator room as local activity events and exposes a
small command surface (send, react, redact, register, login).

Usage:
    from fabric_matrix import MatrixService, load_config

    service = MatrixService(load_config())
    service.on("activity", print)
    await service.run()
"""

# Config
from fabric_matrix.config import load_config

# Errors
from fabric_matrix.errors import (
    MatrixServiceError,
    ConfigError,
    ValidationError,
    ExternalCallError,
    ProtocolViolation,
    EventNotFound,
)

# Actors
from fabric_matrix.actors import (
    Actor,
    ActorRegistry,
    LocalState,
    Status,
)

# Inbound events
from fabric_matrix.events import (
    SyncStatus,
    TimelineEvent,
    MembershipChange,
)

# Messages & outcomes
from fabric_matrix.messages import Message
from fabric_matrix.report import (
    ActorRegistration,
    ConnectReport,
    StepStatus,
)

# Service
from fabric_matrix.service import MatrixService

__version__ = "0.1.0"

__all__ = [
    # Config
    "load_config",
    # Errors
    "MatrixServiceError",
    "ConfigError",
    "ValidationError",
    "ExternalCallError",
    "ProtocolViolation",
    "EventNotFound",
    # Actors
    "Actor",
    "ActorRegistry",
    "LocalState",
    "Status",
    # Inbound events
    "SyncStatus",
    "TimelineEvent",
    "MembershipChange",
    # Messages & outcomes
    "Message",
    "ActorRegistration",
    "ConnectReport",
    "StepStatus",
    # Service
    "MatrixService",
]
