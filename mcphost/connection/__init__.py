"""
MCP client connections.

This package provides the wire codec, request correlation, inbound
message routing and the stdio subprocess connection that composes them.
"""

from .codec import ErrorResponse, Notification, Request, Response, decode_line, encode_message
from .correlator import PendingRequest, RequestCorrelator
from .errors import (
    HandshakeError,
    LaunchError,
    MCPError,
    NotConnectedError,
    ProtocolError,
    RemoteError,
    RequestCancelledError,
    RequestTimeoutError,
    TransportError,
)
from .events import (
    CapabilityKind,
    ConnectionEvent,
    Disconnected,
    ListChanged,
    LogReceived,
    ProgressUpdated,
    ResourceUpdated,
)
from .router import ClientHandlers, NotificationRouter
from .stdio import ServerConnection
from .types import (
    ConnectionState,
    ContentItem,
    DiscoverySource,
    LogMessage,
    Progress,
    Prompt,
    PromptArgument,
    PromptMessage,
    PromptResult,
    Resource,
    ResourceContent,
    Root,
    SamplingRequest,
    ServerCapabilities,
    ServerDescriptor,
    Tool,
    ToolResult,
)
from .values import JSONValue, ValueKind

__all__ = [
    'ServerConnection',
    'NotificationRouter',
    'ClientHandlers',
    'RequestCorrelator',
    'PendingRequest',
    'Request',
    'Notification',
    'Response',
    'ErrorResponse',
    'encode_message',
    'decode_line',
    'JSONValue',
    'ValueKind',
    'MCPError',
    'LaunchError',
    'HandshakeError',
    'TransportError',
    'ProtocolError',
    'RemoteError',
    'RequestTimeoutError',
    'RequestCancelledError',
    'NotConnectedError',
    'CapabilityKind',
    'ConnectionEvent',
    'ListChanged',
    'ResourceUpdated',
    'ProgressUpdated',
    'LogReceived',
    'Disconnected',
    'ConnectionState',
    'DiscoverySource',
    'ServerDescriptor',
    'ServerCapabilities',
    'Tool',
    'Resource',
    'Prompt',
    'PromptArgument',
    'ContentItem',
    'ToolResult',
    'ResourceContent',
    'PromptMessage',
    'PromptResult',
    'Progress',
    'LogMessage',
    'SamplingRequest',
    'Root',
]
