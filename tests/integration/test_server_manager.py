"""
Integration tests for ServerManager with real server processes
"""

import pytest

from mcphost.builtin.bridge import BuiltinToolBridge
from mcphost.catalog.manager import ServerManager
from mcphost.connection.errors import LaunchError
from mcphost.connection.types import ServerDescriptor
from mcphost.storage.registry import ServerRegistry

pytestmark = pytest.mark.integration


@pytest.fixture
async def manager(memory_store):
    registry = ServerRegistry(memory_store)
    await registry.load()
    manager = ServerManager(registry, builtins=BuiltinToolBridge(), request_timeout=5, stop_timeout=2)
    yield manager
    await manager.stop_all()


class TestServerManager:
    """Test the manager end to end."""

    async def test_start_call_stop(self, manager, fake_descriptor):
        await manager.add_server(fake_descriptor, start=True)
        assert manager.enabled_servers == {"fake"}
        assert manager.catalog.find_tool("echo").owner_id == "fake"
        assert manager.catalog.find_prompt("greet") is not None

        result = await manager.call_tool("echo", {"text": "hi"})
        assert result.text == "hi"

        content = await manager.read_resource("file:///notes.txt")
        assert content.text == "hello notes"

        await manager.stop_server("fake")
        assert manager.catalog.tools() == []
        assert not manager.is_running("fake")

    async def test_crash_purges_catalog(self, manager, fake_descriptor, wait_until):
        await manager.start_server(fake_descriptor)
        result = await manager.call_tool("crash")
        assert result.is_error

        await wait_until(lambda: "fake" in manager.unexpected_disconnects)
        assert manager.catalog.tools("fake") == []
        assert manager.server_errors["fake"] == "Server disconnected unexpectedly"
        assert "fake" not in manager.enabled_servers

        after = await manager.call_tool("echo", {"text": "x"})
        assert after.text == "Tool 'echo' not found or server not running"

    async def test_restart_after_crash(self, manager, fake_descriptor, wait_until):
        await manager.start_server(fake_descriptor)
        await manager.call_tool("crash")
        await wait_until(lambda: "fake" in manager.unexpected_disconnects)

        await manager.start_server(fake_descriptor)
        assert manager.enabled_servers == {"fake"}
        assert "fake" not in manager.unexpected_disconnects
        assert "fake" not in manager.server_errors

    async def test_failed_launch_leaves_no_trace(self, manager):
        descriptor = ServerDescriptor("ghost", "Ghost", "definitely-not-a-real-binary-mcp")
        with pytest.raises(LaunchError):
            await manager.start_server(descriptor)
        assert manager.server_errors["ghost"].startswith("Command 'definitely-not-a-real-binary-mcp'")
        assert manager.connections == {}

    async def test_list_changed_refresh(self, manager, make_descriptor, wait_until):
        await manager.start_server(make_descriptor("list_changed"))
        await wait_until(lambda: manager.catalog.find_tool("echo") is not None)
        assert len(manager.catalog.tools("fake")) == 9


class TestConnectionCheck:
    """Test trial connections against real processes."""

    async def test_working_server(self, manager, fake_descriptor):
        ok, message = await manager.test_connection(fake_descriptor)
        assert ok is True
        assert message == "Connection successful: fake"
        assert manager.connections == {}
        assert manager.catalog.tools() == []

    async def test_silent_server(self, memory_store, make_descriptor):
        manager = ServerManager(ServerRegistry(memory_store), request_timeout=0.5, stop_timeout=1)
        ok, message = await manager.test_connection(make_descriptor("silent"))
        assert ok is False
        assert "Initialize failed" in message
        assert manager.server_errors == {}

    async def test_missing_command(self, manager):
        descriptor = ServerDescriptor("ghost", "Ghost", "definitely-not-a-real-binary-mcp")
        ok, message = await manager.test_connection(descriptor)
        assert ok is False
        assert message == "Command 'definitely-not-a-real-binary-mcp' not found in PATH"

    async def test_crashing_server_quotes_stderr(self, manager, make_descriptor):
        ok, message = await manager.test_connection(make_descriptor("broken"))
        assert ok is False
        assert message == "Server failed to start: fatal: API_TOKEN is not set"
