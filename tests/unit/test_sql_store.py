"""
Unit tests for SQLServerStore

Tests cover:
- Server CRUD and upsert semantics
- Settings persistence
- Connection lifecycle and error translation
"""

import pytest

from mcphost.connection.types import DiscoverySource, ServerDescriptor
from mcphost.storage.errors import IntegrityError, StorageConnectionError
from mcphost.storage.models import MCPServerRecord
from mcphost.storage.sql_store import SQLServerStore, to_database_url


def make_server(server_id="fs", name="Filesystem", **kwargs):
    return ServerDescriptor(id=server_id, name=name, command="npx", **kwargs)


class TestDatabaseUrl:
    """Test URL normalization."""

    def test_memory(self):
        assert to_database_url(':memory:') == 'sqlite+aiosqlite:///:memory:'

    def test_existing_url_unchanged(self):
        url = 'postgresql+asyncpg://user:pw@localhost/mcp'
        assert to_database_url(url) == url

    def test_path_becomes_absolute_sqlite_url(self, tmp_path):
        url = to_database_url(str(tmp_path / 'mcp.db'))
        assert url.startswith('sqlite+aiosqlite:///')
        assert url.endswith('/mcp.db')


class TestServers:
    """Test server persistence."""

    async def test_save_and_get(self, memory_store):
        server = make_server(
            args=["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
            env={"DEBUG": "1"},
            working_directory="/tmp",
            source=DiscoverySource.CURSOR,
        )
        await memory_store.save_server(server)
        assert await memory_store.get_server("fs") == server

    async def test_env_none_roundtrips(self, memory_store):
        await memory_store.save_server(make_server())
        loaded = await memory_store.get_server("fs")
        assert loaded.env is None
        assert loaded.args == ()

    async def test_save_is_upsert(self, memory_store):
        await memory_store.save_server(make_server())
        await memory_store.save_server(make_server(name="Files", description="renamed"))
        assert await memory_store.count_servers() == 1
        loaded = await memory_store.get_server("fs")
        assert loaded.name == "Files"
        assert loaded.description == "renamed"

    async def test_list_ordered_by_name(self, memory_store):
        await memory_store.save_server(make_server("b", "Zeta"))
        await memory_store.save_server(make_server("a", "Alpha"))
        assert [s.id for s in await memory_store.list_servers()] == ["a", "b"]

    async def test_delete(self, memory_store):
        await memory_store.save_server(make_server())
        assert await memory_store.delete_server("fs") is True
        assert await memory_store.delete_server("fs") is False
        assert await memory_store.get_server("fs") is None

    async def test_unknown_source_tag_reads_as_manual(self, memory_store, caplog):
        await memory_store.save_server(make_server("a", "Alpha", source=DiscoverySource.CURSOR))
        await memory_store.save_server(make_server("b", "Beta"))
        async with memory_store._get_session() as session:
            record = await session.get(MCPServerRecord, "a")
            record.source_config = "windsurf"

        servers = await memory_store.list_servers()
        assert [s.id for s in servers] == ["a", "b"]
        assert servers[0].source is DiscoverySource.MANUAL
        assert "Unknown discovery source 'windsurf'" in caplog.text

    async def test_get_missing(self, memory_store):
        assert await memory_store.get_server("nope") is None


class TestSettings:
    """Test JSON settings."""

    async def test_default_when_missing(self, memory_store):
        assert await memory_store.get_setting("x", {"a": 1}) == {"a": 1}

    async def test_set_and_overwrite(self, memory_store):
        await memory_store.set_setting("builtin_tools_enabled", {"web_search": False})
        await memory_store.set_setting("builtin_tools_enabled", {"web_search": True})
        assert await memory_store.get_setting("builtin_tools_enabled") == {"web_search": True}

    async def test_unserializable_value(self, memory_store):
        with pytest.raises(IntegrityError):
            await memory_store.set_setting("bad", object())


class TestLifecycle:
    """Test connect/close."""

    async def test_query_before_connect(self):
        store = SQLServerStore(':memory:')
        assert not store.is_connected
        with pytest.raises(StorageConnectionError):
            await store.list_servers()

    async def test_file_database_persists(self, tmp_path):
        path = tmp_path / 'nested' / 'mcp.db'
        store = SQLServerStore(str(path))
        await store.connect()
        await store.save_server(make_server())
        await store.close()
        assert path.exists()

        reopened = SQLServerStore(str(path))
        await reopened.connect()
        try:
            assert [s.id for s in await reopened.list_servers()] == ["fs"]
        finally:
            await reopened.close()

    async def test_close_is_idempotent(self, memory_store):
        await memory_store.close()
        await memory_store.close()
        assert not memory_store.is_connected
