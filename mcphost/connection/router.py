"""
Inbound Message Router
======================

Every decoded line from a provider's stdout lands here and is handled
according to its shape:

- Response / ErrorResponse: resolves an outgoing request through the
  RequestCorrelator. Ids the correlator does not know are discarded.
- Notification: turned into a typed ConnectionEvent (list changes,
  resource updates, progress, log messages) or applied directly
  (cancellation of one of our requests).
- Request: a server-initiated request. Its id lives in the router's own
  in-flight table, separate from the correlator, and it is always
  answered: by an injected handler, or with a JSON-RPC error.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .codec import ErrorResponse, Message, Notification, Request, RequestId, Response, decode_line
from .correlator import RequestCorrelator
from .errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ProtocolError,
    RemoteError,
    RequestCancelledError,
    TransportError,
)
from .events import (
    CapabilityKind,
    ConnectionEvent,
    ListChanged,
    LogReceived,
    ProgressUpdated,
    ResourceUpdated,
)
from .types import LogMessage, Progress, Root, SamplingRequest
from .values import JSONValue, as_object

SamplingHandler = Callable[[SamplingRequest], Awaitable[Optional[Dict[str, Any]]]]
RootsProvider = Callable[[], Awaitable[List[Root]]]


@dataclass
class ClientHandlers:
    """
    Client-side answers to server-initiated requests.

    Attributes:
        sampling: Produces a sampling/createMessage result, or None when
            no response could be generated
        roots: Lists the workspace roots exposed to servers
    """
    sampling: Optional[SamplingHandler] = None
    roots: Optional[RootsProvider] = None


LIST_CHANGED_METHODS = {
    "notifications/tools/list_changed": CapabilityKind.TOOLS,
    "notifications/tools/listChanged": CapabilityKind.TOOLS,
    "notifications/resources/list_changed": CapabilityKind.RESOURCES,
    "notifications/resources/listChanged": CapabilityKind.RESOURCES,
    "notifications/prompts/list_changed": CapabilityKind.PROMPTS,
    "notifications/prompts/listChanged": CapabilityKind.PROMPTS,
}

# notifications/message levels (RFC 5424 names) mapped to logging levels
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}


class _RequestRejected(Exception):
    """Internal: answer the current server request with a JSON-RPC error."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class NotificationRouter:
    """
    Classifies and dispatches inbound messages for one connection.

    Args:
        server_id: Owning server id, stamped on emitted events
        correlator: Table of our outgoing requests
        send: Coroutine writing one message to the provider
        emit: Callback receiving ConnectionEvents
        handlers: Answers for server-initiated requests
        subscriptions: Live set of subscribed resource uris (shared with
            the connection, read on every resources/updated)
        logger: Logger for this connection
    """

    def __init__(
        self,
        server_id: str,
        correlator: RequestCorrelator,
        send: Callable[[Message], Awaitable[None]],
        emit: Callable[[ConnectionEvent], None],
        handlers: Optional[ClientHandlers] = None,
        subscriptions: Optional[Set[str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.server_id = server_id
        self.correlator = correlator
        self.handlers = handlers or ClientHandlers()
        self.subscriptions = subscriptions if subscriptions is not None else set()
        self.logger = logger or logging.getLogger(__name__)
        self._send = send
        self._emit = emit
        self._in_flight: Set[RequestId] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def incoming_in_flight(self) -> frozenset:
        """Ids of server-initiated requests not yet answered."""
        return frozenset(self._in_flight)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def dispatch_line(self, line: Union[bytes, str]) -> None:
        """Decode and dispatch one line. Malformed lines are logged and dropped."""
        try:
            message = decode_line(line)
        except ProtocolError as e:
            self.logger.warning(f"Dropping malformed message: {e}")
            return
        self.dispatch(message)

    def dispatch(self, message: Message) -> None:
        if isinstance(message, (Response, ErrorResponse)):
            self._handle_response(message)
        elif isinstance(message, Notification):
            self._handle_notification(message)
        elif isinstance(message, Request):
            self._handle_request(message)

    async def close(self) -> None:
        """Cancel server-request handlers that are still running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._in_flight.clear()

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _handle_response(self, message: Union[Response, ErrorResponse]) -> None:
        if not isinstance(message.id, int) or isinstance(message.id, bool):
            if isinstance(message, ErrorResponse):
                self.logger.warning(f"Server reported error without request id: [{message.code}] {message.message}")
            else:
                self.logger.warning(f"Discarding response with foreign id {message.id!r}")
            return

        if isinstance(message, ErrorResponse):
            error = RemoteError(
                message.code,
                message.message,
                message.data.to_python() if message.data is not None else None,
            )
            delivered = self.correlator.fail(message.id, error)
        else:
            delivered = self.correlator.resolve(message.id, message.result)

        if not delivered:
            self.logger.warning(f"Discarding response for unknown request id {message.id}")

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _handle_notification(self, message: Notification) -> None:
        method = message.method
        params = as_object(message.params)

        if method in LIST_CHANGED_METHODS:
            kind = LIST_CHANGED_METHODS[method]
            self.logger.info(f"Server announced {kind.value} list change")
            self._emit(ListChanged(self.server_id, kind))

        elif method == "notifications/resources/updated":
            uri = params.get("uri")
            if isinstance(uri, str) and uri in self.subscriptions:
                self._emit(ResourceUpdated(self.server_id, uri))
            else:
                self.logger.debug(f"Ignoring update for unsubscribed resource {uri!r}")

        elif method == "notifications/progress":
            progress = self._parse_progress(params)
            if progress is not None:
                self._emit(ProgressUpdated(self.server_id, progress))

        elif method == "notifications/message":
            level = str(params.get("level", "info")).lower()
            entry = LogMessage(level=level, logger=params.get("logger"), data=params.get("data"))
            self.logger.log(
                LOG_LEVELS.get(level, logging.INFO),
                "[%s] %s", entry.logger or self.server_id, entry.data,
            )
            self._emit(LogReceived(self.server_id, entry))

        elif method == "notifications/cancelled":
            request_id = params.get("requestId")
            reason = params.get("reason") or "Cancelled by server"
            if isinstance(request_id, int) and not isinstance(request_id, bool):
                if self.correlator.fail(request_id, RequestCancelledError(str(reason))):
                    self.logger.info(f"Server cancelled request {request_id}: {reason}")
            elif request_id in self._in_flight:
                self.logger.debug(f"Server withdrew its request {request_id!r}")

        else:
            self.logger.debug(f"Unhandled notification: {method}")

    def _parse_progress(self, params: Dict[str, Any]) -> Optional[Progress]:
        token = params.get("progressToken")
        progress = params.get("progress")
        total = params.get("total")
        if token is None or not isinstance(progress, (int, float)) or isinstance(progress, bool):
            self.logger.debug(f"Ignoring malformed progress notification: {params}")
            return None
        return Progress(
            token=str(token),
            progress=float(progress),
            total=float(total) if isinstance(total, (int, float)) and not isinstance(total, bool) else None,
            message=params.get("message"),
        )

    # ------------------------------------------------------------------
    # Server-initiated requests
    # ------------------------------------------------------------------

    def _handle_request(self, request: Request) -> None:
        if request.id in self._in_flight:
            self.logger.warning(f"Duplicate in-flight server request id {request.id!r}")
            self._spawn(self._reply(ErrorResponse(request.id, INVALID_REQUEST, "Duplicate request id")))
            return

        self._in_flight.add(request.id)
        self._spawn(self._answer(request))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _answer(self, request: Request) -> None:
        self.logger.debug(f"Received server request: {request.method} (ID: {request.id})")
        try:
            result = await self._handle_server_request(request)
            reply: Message = Response(request.id, JSONValue.from_python(result))
        except _RequestRejected as e:
            reply = ErrorResponse(request.id, e.code, e.message)
        except asyncio.CancelledError:
            self._in_flight.discard(request.id)
            raise
        except Exception as e:
            self.logger.error(f"Handler for {request.method} failed: {e}", exc_info=True)
            reply = ErrorResponse(request.id, INTERNAL_ERROR, f"{request.method} failed: {e}")

        self._in_flight.discard(request.id)
        await self._reply(reply)

    async def _reply(self, reply: Message) -> None:
        try:
            await self._send(reply)
        except TransportError as e:
            self.logger.warning(f"Could not answer server request: {e}")

    async def _handle_server_request(self, request: Request) -> Dict[str, Any]:
        method = request.method
        params = as_object(request.params)

        if method == "sampling/createMessage":
            if not isinstance(params.get("messages"), list):
                raise _RequestRejected(INVALID_PARAMS, "Invalid params: messages array required")
            if self.handlers.sampling is None:
                raise _RequestRejected(INTERNAL_ERROR, "Sampling not supported: no handler configured")
            sampling = SamplingRequest.from_params(request.id, params)
            self.logger.info(f"Processing sampling request with {len(sampling.messages)} messages")
            response = await self.handlers.sampling(sampling)
            if response is None:
                raise _RequestRejected(INTERNAL_ERROR, "Sampling request failed: no response generated")
            return response

        if method == "roots/list":
            if self.handlers.roots is None:
                return {"roots": []}
            roots = await self.handlers.roots()
            return {"roots": [root.to_dict() for root in roots]}

        if method == "ping":
            return {}

        self.logger.warning(f"Unknown server request method: {method}")
        raise _RequestRejected(METHOD_NOT_FOUND, f"Method not found: {method}")
