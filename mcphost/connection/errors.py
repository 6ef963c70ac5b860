"""
MCP connection exceptions.

This module defines the exception hierarchy for everything that can go
wrong while talking to a tool-provider process. All exceptions inherit
from MCPError so callers can catch the whole family at once.
"""

from typing import Any, Optional


class MCPError(Exception):
    """
    Base exception for MCP connection errors.

    All protocol and transport exceptions inherit from this class,
    allowing catch-all exception handling when needed.
    """
    pass


class LaunchError(MCPError):
    """
    Provider process could not be started.

    Raised when the configured executable cannot be found on PATH or
    when the operating system refuses to exec it.
    """
    pass


class HandshakeError(MCPError):
    """
    The initialize exchange failed.

    Raised when the provider answers initialize with malformed data,
    omits its capability object, or does not answer at all.
    """
    pass


class TransportError(MCPError):
    """
    Pipe read or write failed.

    Raised when the provider's stdin can no longer be written, when its
    stdout closes, or when the connection is torn down with requests
    still in flight.
    """
    pass


class ProtocolError(MCPError):
    """
    Provider sent data that violates the protocol.

    Raised for lines that are not valid JSON-RPC and for results that
    are missing required fields.
    """
    pass


class RemoteError(MCPError):
    """
    Provider answered with a JSON-RPC error object.

    Attributes:
        code: JSON-RPC error code reported by the provider
        message: Error message reported by the provider
        data: Optional additional error data
    """

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


class RequestTimeoutError(MCPError, TimeoutError):
    """
    No response arrived before the request deadline.

    Raised when the timer scheduled for a request fires before the
    provider answers it.
    """
    pass


class RequestCancelledError(MCPError):
    """
    Request was cancelled before a response arrived.

    Raised when the client cancels an outstanding request, or when the
    provider reports through notifications/cancelled that it abandoned it.
    """
    pass


class NotConnectedError(MCPError):
    """
    Operation requires a running connection.

    Raised when a request is issued to a server that has not been
    started, or whose process has already exited.
    """
    pass


# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
REQUEST_CANCELLED = -32800
