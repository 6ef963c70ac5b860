"""
Server Manager
==============

Supervisor for every server connection. It starts and stops
connections, commits their discovery results to the ToolCatalog, and
consumes the single stream of ConnectionEvents they publish.

All catalog mutation happens under one asyncio.Lock, so discovery
completing, a list-changed refresh and a teardown can never interleave
half-way through.

Example:
    manager = ServerManager(registry, builtins=bridge)
    await manager.start_all_servers()
    result = await manager.call_tool("search", {"query": "x"})
    await manager.stop_all()
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from ..builtin.bridge import BuiltinToolBridge
from ..connection.errors import MCPError, NotConnectedError
from ..connection.events import (
    CapabilityKind,
    ConnectionEvent,
    Disconnected,
    ListChanged,
    ProgressUpdated,
)
from ..connection.router import ClientHandlers, SamplingHandler
from ..connection.stdio import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
    DEFAULT_TOOL_TIMEOUT,
    ServerConnection,
)
from ..connection.types import (
    PromptResult,
    ResourceContent,
    Root,
    ServerDescriptor,
    ToolResult,
)
from ..storage.registry import ServerRegistry
from .catalog import ToolCatalog
from .progress import ProgressTracker

logger = logging.getLogger(__name__)

DISCONNECTED_MESSAGE = "Server disconnected unexpectedly"

# Characters of stderr quoted when a test connection fails
STDERR_EXCERPT = 200

EventListener = Callable[[ConnectionEvent], Any]


class ServerManager:
    """
    Owns all live connections and the catalog built from them.

    Args:
        registry: Configured servers
        catalog: Catalog to populate (a new one by default)
        builtins: Bridge for builtin tools, consulted before any server
        request_timeout: Handshake/discovery timeout in seconds
        tool_timeout: Default tools/call timeout in seconds
        stop_timeout: Grace period before a server is killed
        progress_expiry: Seconds a completed progress entry is kept
        strict_schemas: Fail discovery on tools with invalid schemas
        client_name: clientInfo.name sent during initialize
        client_version: clientInfo.version sent during initialize
        connection_factory: Callable building a connection for a descriptor
    """

    def __init__(
        self,
        registry: ServerRegistry,
        catalog: Optional[ToolCatalog] = None,
        builtins: Optional[BuiltinToolBridge] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        progress_expiry: float = 2.0,
        strict_schemas: bool = False,
        client_name: str = "mcphost",
        client_version: Optional[str] = None,
        connection_factory: Callable[..., ServerConnection] = ServerConnection,
    ):
        self.registry = registry
        self.catalog = catalog or ToolCatalog()
        self.builtins = builtins
        self.progress = ProgressTracker(progress_expiry)
        self.connections: Dict[str, ServerConnection] = {}
        self.unexpected_disconnects: Set[str] = set()
        self.workspace_roots: List[Root] = []
        self.events: asyncio.Queue = asyncio.Queue()
        self.handlers = ClientHandlers(roots=self._list_roots)

        self._connection_options = {
            'request_timeout': request_timeout,
            'tool_timeout': tool_timeout,
            'stop_timeout': stop_timeout,
            'strict_schemas': strict_schemas,
            'client_name': client_name,
        }
        if client_version is not None:
            self._connection_options['client_version'] = client_version
        self._connection_factory = connection_factory

        self._lock = asyncio.Lock()
        self._start_locks: Dict[str, asyncio.Lock] = {}
        self._starting: Set[str] = set()
        self._stop_requested: Set[str] = set()
        self._deferred_refresh: Dict[str, Set[CapabilityKind]] = {}
        self._listeners: List[EventListener] = []
        self._supervisor_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def enabled_servers(self) -> Set[str]:
        return set(self.catalog.enabled)

    @property
    def server_errors(self) -> Dict[str, str]:
        return dict(self.catalog.errors)

    def is_running(self, server_id: str) -> bool:
        connection = self.connections.get(server_id)
        return connection is not None and connection.is_alive

    def set_sampling_handler(self, handler: Optional[SamplingHandler]) -> None:
        """Install the handler answering sampling/createMessage for all servers."""
        self.handlers.sampling = handler
        if handler is not None:
            logger.info("Sampling handler configured for agentic MCP servers")

    def add_listener(self, callback: EventListener) -> None:
        """Receive every ConnectionEvent after the manager has handled it."""
        self._listeners.append(callback)

    async def _list_roots(self) -> List[Root]:
        return list(self.workspace_roots)

    def _resolve(self, server: Union[str, ServerDescriptor]) -> ServerDescriptor:
        if isinstance(server, ServerDescriptor):
            return server
        descriptor = self.registry.get(server)
        if descriptor is None:
            raise NotConnectedError(f"Server '{server}' is not configured")
        return descriptor

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start_server(self, server: Union[str, ServerDescriptor]) -> ServerConnection:
        """
        Start a server and add its capabilities to the catalog.

        A server that is already running is left alone. On failure
        nothing is left behind: the process is stopped, partial catalog
        state is rolled back and the error is recorded in server_errors.
        If stop_server is called while the start is still in progress,
        the new connection is stopped instead of being committed.

        Raises:
            MCPError: If launch, handshake or tool discovery fails
            NotConnectedError: If the server was stopped while starting
        """
        descriptor = self._resolve(server)
        server_id = descriptor.id
        start_lock = self._start_locks.setdefault(server_id, asyncio.Lock())

        async with start_lock:
            existing = self.connections.get(server_id)
            if existing is not None and existing.is_alive:
                async with self._lock:
                    self.catalog.enabled.add(server_id)
                return existing

            self._ensure_supervisor()
            async with self._lock:
                self._starting.add(server_id)
                self._stop_requested.discard(server_id)
            connection = self._connection_factory(
                descriptor,
                events=self.events,
                handlers=self.handlers,
                **self._connection_options,
            )
            try:
                await connection.start()
                await connection.initialize()
                tools, resources, prompts = await asyncio.gather(
                    connection.list_tools(),
                    connection.list_resources(),
                    connection.list_prompts(),
                )
                if not connection.is_alive:
                    raise NotConnectedError(DISCONNECTED_MESSAGE)
            except (Exception, asyncio.CancelledError) as e:
                await connection.stop()
                async with self._lock:
                    self._starting.discard(server_id)
                    self._deferred_refresh.pop(server_id, None)
                    stop_requested = server_id in self._stop_requested
                    self._stop_requested.discard(server_id)
                    self.connections.pop(server_id, None)
                    self.catalog.purge(server_id)
                    if not stop_requested:
                        self.catalog.set_error(server_id, str(e) or type(e).__name__)
                logger.error(f"Failed to start server {descriptor.name}: {e}")
                raise

            async with self._lock:
                self._starting.discard(server_id)
                deferred = self._deferred_refresh.pop(server_id, set())
                stop_requested = server_id in self._stop_requested
                self._stop_requested.discard(server_id)
                if not stop_requested:
                    self.connections[server_id] = connection
                    self.catalog.add_owner(server_id, tools, resources, prompts)
                    self.unexpected_disconnects.discard(server_id)

            if stop_requested:
                await connection.stop()
                logger.info(f"Discarded server {descriptor.name}: stopped while starting")
                raise NotConnectedError(f"Server '{server_id}' was stopped while starting")

            for kind in deferred:
                self._spawn(self.refresh(server_id, kind))

            logger.info(
                f"Started server {descriptor.name}: {len(tools)} tools, "
                f"{len(resources)} resources, {len(prompts)} prompts"
            )
            return connection

    async def stop_server(self, server_id: str) -> None:
        """Remove a server from the catalog and stop its process."""
        async with self._lock:
            if server_id in self._starting:
                self._stop_requested.add(server_id)
            connection = self.connections.pop(server_id, None)
            self.catalog.purge(server_id)
        if connection is not None:
            await connection.stop()
            logger.info(f"Stopped server {connection.descriptor.name}")

    async def stop_all(self) -> None:
        """Stop every server and the supervisor."""
        server_ids = set(self.connections) | self._starting
        await asyncio.gather(*(self.stop_server(sid) for sid in server_ids))
        for task in list(self._tasks):
            task.cancel()
        if self._supervisor_task is not None:
            self._supervisor_task.cancel()
            try:
                await self._supervisor_task
            except asyncio.CancelledError:
                pass
            self._supervisor_task = None
        self.progress.clear()

    async def start_all_servers(self) -> Dict[str, Optional[str]]:
        """
        Start every configured server concurrently.

        Returns:
            Map of server id to error message (None when it started)
        """
        servers = self.registry.list()
        results = await asyncio.gather(
            *(self.start_server(server) for server in servers),
            return_exceptions=True,
        )
        outcome = {}
        for server, result in zip(servers, results):
            outcome[server.id] = str(result) if isinstance(result, BaseException) else None
        started = sum(1 for error in outcome.values() if error is None)
        logger.info(f"Started {started}/{len(servers)} servers")
        return outcome

    async def ensure_servers_started(self) -> None:
        """Start configured servers on demand if none are running."""
        if not self.catalog.enabled and len(self.registry):
            await self.start_all_servers()

    async def test_connection(self, server: Union[str, ServerDescriptor]) -> Tuple[bool, str]:
        """
        Launch a server briefly to check that it starts and answers initialize.

        The trial connection is never committed: the catalog, the running
        connections and server_errors are left untouched, and its events
        do not reach the supervisor.

        Returns:
            (True, message) on success, (False, reason) otherwise. The
            reason quotes the server's stderr when it wrote any.
        """
        descriptor = self._resolve(server)
        connection = self._connection_factory(
            descriptor,
            events=asyncio.Queue(),
            handlers=self.handlers,
            **self._connection_options,
        )
        try:
            await connection.start()
            await connection.initialize()
        except MCPError as e:
            await connection.stop()
            stderr = "\n".join(connection.stderr_tail).strip()
            logger.warning(f"Test connection to {descriptor.name} failed: {e}")
            if stderr:
                return False, f"Server failed to start: {stderr[:STDERR_EXCERPT]}"
            return False, str(e)
        except asyncio.CancelledError:
            await connection.stop()
            raise

        server_name = connection.server_info.get("name") or descriptor.name
        await connection.stop()
        logger.info(f"Test connection to {descriptor.name} succeeded")
        return True, f"Connection successful: {server_name}"

    # ========================================================================
    # Configuration
    # ========================================================================

    async def add_server(self, descriptor: ServerDescriptor, start: bool = False) -> None:
        await self.registry.add(descriptor)
        if start:
            await self.start_server(descriptor)

    async def update_server(self, descriptor: ServerDescriptor) -> bool:
        """
        Persist a changed descriptor, restarting the server if it was running.

        Returns:
            True if the server was running and has been restarted
        """
        was_running = descriptor.id in self.connections
        await self.registry.update(descriptor)
        if was_running:
            await self.stop_server(descriptor.id)
            await self.start_server(descriptor)
        return was_running

    async def remove_server(self, server_id: str) -> bool:
        await self.stop_server(server_id)
        async with self._lock:
            self.catalog.clear_error(server_id)
            self.unexpected_disconnects.discard(server_id)
        return await self.registry.remove(server_id)

    async def clear_error(self, server_id: str) -> None:
        async with self._lock:
            self.catalog.clear_error(server_id)
            self.unexpected_disconnects.discard(server_id)

    # ========================================================================
    # Supervisor
    # ========================================================================

    def _ensure_supervisor(self) -> None:
        if self._supervisor_task is None or self._supervisor_task.done():
            self._supervisor_task = asyncio.create_task(self._supervise())

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _supervise(self) -> None:
        while True:
            event = await self.events.get()
            try:
                await self._handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__} from {event.server_id}: {e}", exc_info=True)

    async def _handle_event(self, event: ConnectionEvent) -> None:
        if isinstance(event, ListChanged):
            if event.server_id in self._starting:
                self._deferred_refresh.setdefault(event.server_id, set()).add(event.kind)
            else:
                self._spawn(self.refresh(event.server_id, event.kind))
        elif isinstance(event, Disconnected):
            if event.unexpected:
                await self.handle_disconnection(event.server_id, event.reason or DISCONNECTED_MESSAGE)
        elif isinstance(event, ProgressUpdated):
            self.progress.update(event.progress)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event listener failed: {e}", exc_info=True)

    async def handle_disconnection(self, server_id: str, reason: str = DISCONNECTED_MESSAGE) -> None:
        """Purge a server whose process exited without being stopped."""
        async with self._lock:
            connection = self.connections.get(server_id)
            if connection is None or connection.is_alive:
                # Already stopped, failed during start, or a stale event
                # from the previous process of a restarted server
                return
            self.connections.pop(server_id, None)
            self.catalog.purge(server_id)
            self.catalog.set_error(server_id, reason)
            self.unexpected_disconnects.add(server_id)
        logger.warning(f"Server {server_id} disconnected unexpectedly")

    async def refresh(self, server_id: str, kind: CapabilityKind) -> None:
        """Re-run discovery for one capability kind and replace the owner's subset."""
        connection = self.connections.get(server_id)
        if connection is None:
            return
        try:
            if kind is CapabilityKind.TOOLS:
                items = await connection.list_tools()
            elif kind is CapabilityKind.RESOURCES:
                items = await connection.list_resources()
            else:
                items = await connection.list_prompts()
        except MCPError as e:
            logger.warning(f"Failed to refresh {kind.value} for {server_id}: {e}")
            return

        async with self._lock:
            if self.connections.get(server_id) is not connection:
                return
            if kind is CapabilityKind.TOOLS:
                self.catalog.replace_tools(server_id, items)
            elif kind is CapabilityKind.RESOURCES:
                self.catalog.replace_resources(server_id, items)
            else:
                self.catalog.replace_prompts(server_id, items)
        logger.info(f"Refreshed {kind.value} for {server_id}: {len(items)} entries")

    # ========================================================================
    # Invocation
    # ========================================================================

    def tool_schemas(self) -> List[Dict[str, Any]]:
        """Schemas of every callable tool: enabled builtins, then server tools."""
        schemas = self.builtins.schemas() if self.builtins is not None else []
        schemas.extend(tool.to_schema() for tool in self.catalog.tools())
        return schemas

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None,
                        timeout: Optional[float] = None) -> ToolResult:
        """
        Invoke a tool by name. Builtins take precedence over servers.

        Never raises for tool failures; see ToolResult.is_error.
        """
        if self.builtins is not None and self.builtins.handles(name):
            return await self.builtins.call(name, arguments or {})

        tool = self.catalog.find_tool(name)
        connection = self.connections.get(tool.owner_id) if tool is not None else None
        if connection is None:
            message = f"Tool '{name}' not found or server not running"
            return ToolResult.failure(message, NotConnectedError(message))
        return await connection.call_tool(name, arguments, timeout)

    async def read_resource(self, uri: str) -> Optional[ResourceContent]:
        """Read a resource from its owner. None if unavailable."""
        resource = self.catalog.find_resource(uri)
        connection = self.connections.get(resource.owner_id) if resource is not None else None
        if connection is None:
            logger.warning(f"Resource {uri} not found or server not running")
            return None
        try:
            return await connection.read_resource(uri)
        except MCPError as e:
            logger.error(f"Failed to read resource {uri}: {e}")
            return None

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]] = None) -> Optional[PromptResult]:
        """Render a prompt from its owner. None if unavailable."""
        prompt = self.catalog.find_prompt(name)
        connection = self.connections.get(prompt.owner_id) if prompt is not None else None
        if connection is None:
            logger.warning(f"Prompt '{name}' not found or server not running")
            return None
        try:
            return await connection.get_prompt(name, arguments)
        except MCPError as e:
            logger.error(f"Failed to get prompt '{name}': {e}")
            return None

    def _owner_of_resource(self, uri: str) -> ServerConnection:
        resource = self.catalog.find_resource(uri)
        connection = self.connections.get(resource.owner_id) if resource is not None else None
        if connection is None:
            raise NotConnectedError(f"Resource {uri} not found or server not running")
        return connection

    async def subscribe_to_resource(self, uri: str) -> None:
        """
        Raises:
            NotConnectedError: If no running server owns the resource
            MCPError: If the server rejects the subscription
        """
        await self._owner_of_resource(uri).subscribe_to_resource(uri)

    async def unsubscribe_from_resource(self, uri: str) -> None:
        await self._owner_of_resource(uri).unsubscribe_from_resource(uri)

    async def cancel_requests(self, server_id: str) -> int:
        """Cancel everything outstanding on one server."""
        connection = self.connections.get(server_id)
        if connection is None:
            return 0
        return await connection.cancel_all_requests()

    async def cancel_all_requests(self) -> int:
        counts = await asyncio.gather(*(c.cancel_all_requests() for c in list(self.connections.values())))
        return sum(counts)
