"""
Stdio Server Connection
=======================

One ServerConnection owns one provider subprocess and the JSON-RPC
session running over its stdin/stdout.

Lifecycle:
    NOT_STARTED -> STARTING -> INITIALIZING -> READY -> STOPPING -> STOPPED
                                    |            |
                                    +------------+--> DISCONNECTED (process exited on its own)

Two background tasks run for the lifetime of the process: the stdout
reader feeds every line to the NotificationRouter, the stderr reader
logs and keeps the last few lines. Writes are serialized so concurrent
callers never interleave partial lines.

Example:
    conn = ServerConnection(descriptor)
    await conn.start()
    await conn.initialize()
    tools = await conn.list_tools()
    result = await conn.call_tool("search", {"query": "x"})
    await conn.stop()
"""

import asyncio
import collections
import logging
import os
import shutil
from typing import Any, Dict, List, Optional, Set

from .. import __version__
from .codec import Message, Notification, Request, encode_message
from .correlator import RequestCorrelator
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
from .events import ConnectionEvent, Disconnected
from .router import ClientHandlers, NotificationRouter
from .types import (
    ConnectionState,
    ContentItem,
    Prompt,
    PromptArgument,
    PromptMessage,
    PromptResult,
    Resource,
    ResourceContent,
    ServerCapabilities,
    ServerDescriptor,
    Tool,
    ToolResult,
)
from .values import JSONValue, as_object

PROTOCOL_VERSION = "2024-11-05"

CLIENT_CAPABILITIES = {
    "tools": {},
    "resources": {"subscribe": True, "listChanged": True},
    "prompts": {"listChanged": True},
    "logging": {},
    "sampling": {},
    "roots": {"listChanged": True},
}

DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_TOOL_TIMEOUT = 60.0
DEFAULT_STOP_TIMEOUT = 5.0

# Tool listings and resource blobs can be far larger than asyncio's 64 KiB default
STREAM_LIMIT = 16 * 1024 * 1024

STDERR_TAIL_LINES = 20
STDERR_DRAIN_TIMEOUT = 0.5

# Searched after PATH; GUI-launched hosts often start with a minimal PATH
EXTRA_SEARCH_PATHS = (
    "/usr/local/bin",
    "/opt/homebrew/bin",
    os.path.expanduser("~/.local/bin"),
)


def resolve_command(command: str, env: Optional[Dict[str, str]] = None) -> str:
    """
    Find the executable for a server command.

    Args:
        command: Bare executable name or a path
        env: Environment the process will run with (its PATH is searched)

    Returns:
        Absolute path to the executable

    Raises:
        LaunchError: If the command cannot be found or is not executable
    """
    if os.path.dirname(command):
        path = os.path.abspath(os.path.expanduser(command))
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
        raise LaunchError(f"Command '{command}' is not an executable file")

    search = (env or os.environ).get("PATH", os.defpath)
    search = os.pathsep.join([search, *EXTRA_SEARCH_PATHS])
    found = shutil.which(command, path=search)
    if found is None:
        raise LaunchError(f"Command '{command}' not found in PATH")
    return found


class ServerConnection:
    """
    A running (or runnable) session with one tool-provider process.

    Attributes:
        descriptor: Configuration the process is launched from
        state: Current ConnectionState
        capabilities: Flags negotiated during initialize
        server_info: serverInfo object returned by initialize
        stderr_tail: Last lines the process wrote to stderr
        subscriptions: Resource uris successfully subscribed to
        events: Queue receiving this connection's ConnectionEvents
        correlator: Outgoing request table
        router: Inbound message router
    """

    def __init__(
        self,
        descriptor: ServerDescriptor,
        events: Optional[asyncio.Queue] = None,
        handlers: Optional[ClientHandlers] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        strict_schemas: bool = False,
        client_name: str = "mcphost",
        client_version: str = __version__,
    ):
        self.descriptor = descriptor
        self.logger = logging.getLogger(f"mcphost.connection.{descriptor.id}")
        self.events: asyncio.Queue = events if events is not None else asyncio.Queue()
        self.request_timeout = request_timeout
        self.tool_timeout = tool_timeout
        self.stop_timeout = stop_timeout
        self.strict_schemas = strict_schemas
        self.client_name = client_name
        self.client_version = client_version

        self.state = ConnectionState.NOT_STARTED
        self.capabilities = ServerCapabilities()
        self.server_info: Dict[str, Any] = {}
        self.protocol_version: Optional[str] = None
        self.subscriptions: Set[str] = set()
        self.exit_code: Optional[int] = None
        self.stderr_tail: collections.deque = collections.deque(maxlen=STDERR_TAIL_LINES)

        self.correlator = RequestCorrelator()
        self.router = NotificationRouter(
            server_id=descriptor.id,
            correlator=self.correlator,
            send=self._send,
            emit=self._emit,
            handlers=handlers,
            subscriptions=self.subscriptions,
            logger=self.logger,
        )

        self._process: Optional[asyncio.subprocess.Process] = None
        self._stdout_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._stop_requested = False
        self._closed = asyncio.Event()

    @property
    def server_id(self) -> str:
        return self.descriptor.id

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def pending_request_ids(self) -> List[int]:
        return self.correlator.pending_ids()

    def __repr__(self) -> str:
        return f"<ServerConnection {self.server_id} state={self.state.value} pid={self.pid}>"

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """
        Spawn the provider process and start the reader tasks.

        Raises:
            LaunchError: If the executable cannot be found or spawned
        """
        if self.state is not ConnectionState.NOT_STARTED:
            raise LaunchError(f"Server '{self.server_id}' was already started")

        self._set_state(ConnectionState.STARTING)
        env = dict(os.environ)
        if self.descriptor.env:
            env.update(self.descriptor.env)
        cwd = self.descriptor.cwd

        try:
            executable = resolve_command(self.descriptor.command, env)
            if cwd and not os.path.isdir(cwd):
                raise LaunchError(f"Working directory does not exist: {cwd}")
            self._process = await asyncio.create_subprocess_exec(
                executable,
                *self.descriptor.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=cwd,
                limit=STREAM_LIMIT,
            )
        except LaunchError:
            self._mark_closed(ConnectionState.STOPPED)
            raise
        except OSError as e:
            self._mark_closed(ConnectionState.STOPPED)
            raise LaunchError(f"Failed to start '{self.descriptor.command}': {e}") from e

        self.logger.info(f"Started {self.descriptor.name} (PID {self._process.pid})")
        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())

    async def stop(self) -> None:
        """
        Shut the provider down. Safe to call any number of times.

        Closes stdin, sends SIGTERM, waits up to stop_timeout seconds,
        then SIGKILLs. Every pending request fails with TransportError.
        """
        if self._stop_requested:
            await self._closed.wait()
            return
        self._stop_requested = True

        if self._process is None:
            await self._teardown(TransportError("Connection closed: server was never started"))
            self._mark_closed(ConnectionState.STOPPED)
            return

        self._set_state(ConnectionState.STOPPING)
        self.logger.info(f"Stopping {self.descriptor.name}")
        await self._terminate_process()
        await self._teardown(TransportError("Connection closed: server stopped"))
        self._mark_closed(ConnectionState.STOPPED)
        self._emit(Disconnected(self.server_id, unexpected=False, exit_code=self.exit_code))
        self.logger.info(f"Stopped {self.descriptor.name} (exit code {self.exit_code})")

    async def _terminate_process(self) -> None:
        proc = self._process
        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()

        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                self.logger.warning(f"{self.descriptor.name} did not exit after {self.stop_timeout}s, killing")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        self.exit_code = proc.returncode

    async def _teardown(self, error: MCPError) -> None:
        """Stop background work and fail everything still waiting."""
        current = asyncio.current_task()
        stderr_task = self._stderr_task
        if (stderr_task is not None and not stderr_task.done() and self._process is not None
                and self._process.returncode is not None):
            # The pipe hits EOF once the process has exited; read what is left
            await asyncio.wait({stderr_task}, timeout=STDERR_DRAIN_TIMEOUT)
        for task in (self._stdout_task, self._stderr_task, *self._background):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.router.close()

        for pending in self.correlator.remove_all().values():
            if not pending.future.done():
                pending.future.set_exception(error)

        self.subscriptions.clear()

    async def _handle_unexpected_exit(self) -> None:
        self._stop_requested = True
        await self._terminate_process()
        self.logger.error(f"Server disconnected unexpectedly (exit code {self.exit_code})")
        await self._teardown(TransportError("Server disconnected"))
        self._mark_closed(ConnectionState.DISCONNECTED)
        self._emit(Disconnected(
            self.server_id,
            unexpected=True,
            exit_code=self.exit_code,
            reason="Server disconnected unexpectedly",
        ))

    def _mark_closed(self, state: ConnectionState) -> None:
        self._stop_requested = True
        self._set_state(state)
        self._closed.set()

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            self.logger.debug(f"State {self.state.value} -> {state.value}")
            self.state = state

    def _emit(self, event: ConnectionEvent) -> None:
        self.events.put_nowait(event)

    # ========================================================================
    # Readers
    # ========================================================================

    async def _read_stdout(self) -> None:
        stdout = self._process.stdout
        while True:
            try:
                line = await stdout.readline()
            except ValueError as e:
                # Line exceeded STREAM_LIMIT; the reader already discarded it
                self.logger.warning(f"Dropping oversized message: {e}")
                continue
            except (ConnectionResetError, BrokenPipeError) as e:
                self.logger.warning(f"stdout read failed: {e}")
                break
            if not line:
                break
            if line.strip():
                self.router.dispatch_line(line)

        if not self._stop_requested:
            await self._handle_unexpected_exit()

    async def _read_stderr(self) -> None:
        stderr = self._process.stderr
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                continue
            except (ConnectionResetError, BrokenPipeError):
                break
            if not line:
                break
            text = line.decode('utf-8', errors='replace').rstrip()
            if text:
                self.stderr_tail.append(text)
                self.logger.info(f"stderr: {text}")

    # ========================================================================
    # Messaging
    # ========================================================================

    async def _send(self, message: Message) -> None:
        proc = self._process
        if proc is None or proc.stdin is None or proc.stdin.is_closing():
            raise TransportError(f"Server '{self.server_id}' stdin is closed")

        data = encode_message(message)
        async with self._write_lock:
            try:
                proc.stdin.write(data)
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise TransportError(f"Write to '{self.server_id}' failed: {e}") from e

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification. No response is expected."""
        await self._send(Notification(method, JSONValue.from_python(params) if params is not None else None))

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None,
                      timeout: Optional[float] = None) -> JSONValue:
        """
        Send a request and wait for its result.

        Args:
            method: JSON-RPC method
            params: Request parameters (must be JSON-representable)
            timeout: Seconds before RequestTimeoutError (default request_timeout)

        Returns:
            The result value

        Raises:
            NotConnectedError: If the process is not running
            TransportError: If the request cannot be written or the
                connection closes before it is answered
            RemoteError: If the server answers with an error
            RequestTimeoutError: If no answer arrives in time
            RequestCancelledError: If the request is cancelled
            ValueError: If params cannot be represented as JSON
        """
        if self._process is None or self._stop_requested:
            raise NotConnectedError(f"Server '{self.server_id}' is not running")

        payload = JSONValue.from_python(params) if params is not None else None
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        request_id = self.correlator.add(future, method)
        self.correlator.schedule_timeout(request_id, timeout or self.request_timeout, loop)

        try:
            await self._send(Request(request_id, method, payload))
        except (TransportError, asyncio.CancelledError):
            self.correlator.remove(request_id)
            raise

        try:
            return await future
        except asyncio.CancelledError:
            if self.correlator.remove(request_id) is not None:
                self._spawn(self._send_cancelled(request_id, "Cancelled by user"))
            raise

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_cancelled(self, request_id: int, reason: str) -> None:
        try:
            await self.notify("notifications/cancelled", {"requestId": request_id, "reason": reason})
        except TransportError as e:
            self.logger.debug(f"Could not send cancellation for request {request_id}: {e}")

    async def cancel_request(self, request_id: int, reason: str = "Cancelled by user") -> bool:
        """
        Cancel one outstanding request.

        The local caller is released immediately with RequestCancelledError;
        the server is told afterwards on a best-effort basis.

        Returns:
            False if the request had already completed
        """
        if not self.correlator.fail(request_id, RequestCancelledError(f"Request {request_id} cancelled: {reason}")):
            return False
        self.logger.debug(f"Cancelled request {request_id}")
        await self._send_cancelled(request_id, reason)
        return True

    async def cancel_all_requests(self, reason: str = "Cancelled by user") -> int:
        """Cancel every outstanding request. Returns how many were cancelled."""
        cancelled = 0
        for request_id in self.correlator.pending_ids():
            if await self.cancel_request(request_id, reason):
                cancelled += 1
        return cancelled

    # ========================================================================
    # Handshake
    # ========================================================================

    async def initialize(self) -> ServerCapabilities:
        """
        Run the initialize / notifications/initialized handshake.

        Raises:
            HandshakeError: If the server does not answer, answers with an
                error, or returns no capability object
        """
        self._set_state(ConnectionState.INITIALIZING)
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": CLIENT_CAPABILITIES,
            "clientInfo": {"name": self.client_name, "version": self.client_version},
        }
        try:
            result = await self.request("initialize", params, timeout=self.request_timeout)
        except MCPError as e:
            raise HandshakeError(f"Initialize failed for '{self.server_id}': {e}") from e

        if not result.is_object:
            raise HandshakeError(f"Initialize result from '{self.server_id}' is not an object")
        data = result.to_python()
        caps = data.get("capabilities")
        if not isinstance(caps, dict):
            raise HandshakeError(f"Server '{self.server_id}' returned no capabilities")

        self.capabilities = ServerCapabilities.from_dict(caps)
        self.server_info = data.get("serverInfo") if isinstance(data.get("serverInfo"), dict) else {}
        self.protocol_version = data.get("protocolVersion")

        try:
            await self.notify("notifications/initialized")
        except TransportError as e:
            raise HandshakeError(f"Could not complete handshake with '{self.server_id}': {e}") from e

        if self.state is ConnectionState.INITIALIZING:
            self._set_state(ConnectionState.READY)
        self.logger.info(
            f"Server capabilities - tools: {self.capabilities.tools}, "
            f"resources: {self.capabilities.resources}, prompts: {self.capabilities.prompts}, "
            f"sampling: {self.capabilities.sampling}, roots: {self.capabilities.roots}"
        )
        return self.capabilities

    async def ping(self) -> bool:
        """True if the server answers a ping within request_timeout."""
        try:
            await self.request("ping", {})
            return True
        except MCPError:
            return False

    # ========================================================================
    # Discovery
    # ========================================================================

    async def _list_all(self, method: str, key: str) -> List[Any]:
        """Collect every page of a list method."""
        items: List[Any] = []
        cursor = None
        while True:
            params = {"cursor": cursor} if cursor else {}
            result = as_object(await self.request(method, params))
            page = result.get(key)
            if not isinstance(page, list):
                raise ProtocolError(f"{method} result has no '{key}' array")
            items.extend(page)
            cursor = result.get("nextCursor")
            if not isinstance(cursor, str) or not cursor:
                return items

    async def list_tools(self) -> List[Tool]:
        """
        Discover the server's tools. Failures propagate.

        Entries without a name are skipped. A non-object inputSchema is
        skipped with a warning, or raises ProtocolError when strict_schemas
        is set.
        """
        tools = []
        for entry in await self._list_all("tools/list", "tools"):
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str) or not entry["name"]:
                self.logger.warning(f"Skipping tool without a name: {entry!r}")
                continue
            name = entry["name"]
            schema = entry.get("inputSchema", {})
            if not isinstance(schema, dict):
                message = f"Tool '{name}' has an invalid input schema ({type(schema).__name__})"
                if self.strict_schemas:
                    raise ProtocolError(message)
                self.logger.warning(f"{message}, skipping")
                continue
            tools.append(Tool(
                name=name,
                description=entry.get("description") or "",
                input_schema=JSONValue.from_python(schema),
                owner_id=self.server_id,
                owner_name=self.descriptor.name,
            ))
        self.logger.info(f"Discovered {len(tools)} tools")
        return tools

    async def list_resources(self) -> List[Resource]:
        """Discover resources. Any failure yields an empty list."""
        try:
            entries = await self._list_all("resources/list", "resources")
        except MCPError as e:
            self.logger.debug(f"resources/list unavailable: {e}")
            return []

        resources = []
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("uri"), str):
                self.logger.debug(f"Skipping resource without uri: {entry!r}")
                continue
            resources.append(Resource(
                uri=entry["uri"],
                name=str(entry.get("name") or entry["uri"]),
                owner_id=self.server_id,
                owner_name=self.descriptor.name,
                description=entry.get("description"),
                mime_type=entry.get("mimeType"),
            ))
        return resources

    async def list_prompts(self) -> List[Prompt]:
        """Discover prompt templates. Any failure yields an empty list."""
        try:
            entries = await self._list_all("prompts/list", "prompts")
        except MCPError as e:
            self.logger.debug(f"prompts/list unavailable: {e}")
            return []

        prompts = []
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                self.logger.debug(f"Skipping prompt without name: {entry!r}")
                continue
            arguments = tuple(
                PromptArgument(
                    name=str(arg["name"]),
                    description=arg.get("description"),
                    required=bool(arg.get("required", False)),
                )
                for arg in entry.get("arguments") or ()
                if isinstance(arg, dict) and arg.get("name")
            )
            prompts.append(Prompt(
                name=entry["name"],
                owner_id=self.server_id,
                owner_name=self.descriptor.name,
                description=entry.get("description"),
                arguments=arguments,
            ))
        return prompts

    # ========================================================================
    # Invocation
    # ========================================================================

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None,
                        timeout: Optional[float] = None) -> ToolResult:
        """
        Invoke a tool. Never raises for protocol-level failures.

        Returns:
            ToolResult; on failure is_error is set and error holds the cause
        """
        params = {"name": name, "arguments": arguments or {}}
        try:
            result = as_object(await self.request("tools/call", params, timeout=timeout or self.tool_timeout))
        except RemoteError as e:
            return ToolResult.failure(f"Error: {e.message}", e)
        except RequestTimeoutError as e:
            return ToolResult.failure(f"Tool '{name}' timed out", e)
        except RequestCancelledError as e:
            return ToolResult.failure(f"Tool '{name}' was cancelled", e)
        except MCPError as e:
            return ToolResult.failure(f"Tool '{name}' failed: {e}", e)
        except ValueError as e:
            return ToolResult.failure(f"Invalid arguments for '{name}': {e}", e)

        blocks = result.get("content")
        content = [ContentItem.from_dict(block) for block in blocks if isinstance(block, dict)] \
            if isinstance(blocks, list) else []
        return ToolResult(content=content, is_error=bool(result.get("isError", False)))

    async def read_resource(self, uri: str) -> ResourceContent:
        """
        Read a resource.

        Raises:
            MCPError: On any failure; ProtocolError if no contents came back
        """
        result = as_object(await self.request("resources/read", {"uri": uri}))
        contents = result.get("contents")
        if not isinstance(contents, list) or not contents or not isinstance(contents[0], dict):
            raise ProtocolError(f"resources/read returned no contents for {uri}")
        return ResourceContent.from_dict(contents[0])

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]] = None) -> PromptResult:
        """
        Render a prompt template.

        Raises:
            MCPError: On any failure; ProtocolError on a malformed result
        """
        params: Dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = arguments
        result = as_object(await self.request("prompts/get", params))

        raw_messages = result.get("messages")
        if not isinstance(raw_messages, list):
            raise ProtocolError(f"prompts/get returned no messages for '{name}'")

        messages = []
        for raw in raw_messages:
            if not isinstance(raw, dict):
                continue
            content = raw.get("content")
            if isinstance(content, dict):
                content = content.get("text", "")
            if not isinstance(content, str):
                continue
            messages.append(PromptMessage(role=str(raw.get("role", "user")), content=content))
        return PromptResult(description=result.get("description"), messages=messages)

    async def subscribe_to_resource(self, uri: str) -> None:
        """Subscribe to updates. The uri is recorded only once the server agrees."""
        await self.request("resources/subscribe", {"uri": uri})
        self.subscriptions.add(uri)

    async def unsubscribe_from_resource(self, uri: str) -> None:
        await self.request("resources/unsubscribe", {"uri": uri})
        self.subscriptions.discard(uri)
