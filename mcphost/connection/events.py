"""
Connection events.

Each connection reports everything that happens asynchronously on its
session as one of the typed events below, delivered over a single
asyncio.Queue to the supervisor that owns it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .types import LogMessage, Progress


class CapabilityKind(Enum):
    """Capability collections a server can announce changes for."""
    TOOLS = "tools"
    RESOURCES = "resources"
    PROMPTS = "prompts"


@dataclass(frozen=True)
class ConnectionEvent:
    """Base class; server_id names the connection that produced the event."""
    server_id: str


@dataclass(frozen=True)
class ListChanged(ConnectionEvent):
    """Server announced that one of its capability lists changed."""
    kind: CapabilityKind


@dataclass(frozen=True)
class ResourceUpdated(ConnectionEvent):
    """A subscribed resource changed on the server."""
    uri: str


@dataclass(frozen=True)
class ProgressUpdated(ConnectionEvent):
    progress: Progress


@dataclass(frozen=True)
class LogReceived(ConnectionEvent):
    message: LogMessage


@dataclass(frozen=True)
class Disconnected(ConnectionEvent):
    """
    The server process is gone.

    unexpected is True when the process exited without stop() being called.
    """
    unexpected: bool
    exit_code: Optional[int] = None
    reason: str = ""
