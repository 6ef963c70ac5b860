"""
Unit tests for AppContext wiring and the command line
"""

import json

import pytest

from mcphost.__main__ import main
from mcphost.config import ENV_OVERRIDES, Settings
from mcphost.connection.types import ServerDescriptor
from mcphost.context import AppContext


class TestAppContext:
    """Test AppContext lifecycle."""

    async def test_start_loads_registry_and_builtins(self, tmp_path):
        legacy = tmp_path / "mcp-servers.json"
        legacy.write_text(json.dumps([{"id": "git", "name": "Git", "command": "uvx"}]))
        settings = Settings(database_url=":memory:", legacy_config_path=str(legacy))

        async with AppContext(settings) as ctx:
            assert [s.id for s in ctx.registry.list()] == ["git"]
            assert ctx.registry.migrated_from_legacy
            assert ctx.bridge.is_enabled("web_search")
            assert ctx.manager.builtins is ctx.bridge
        assert not ctx.store.is_connected

    async def test_workspace_roots_reach_manager(self):
        from mcphost.connection.types import Root
        settings = Settings(database_url=":memory:", legacy_config_path=None,
                            workspace_roots=[Root("file:///w")])
        async with AppContext(settings) as ctx:
            assert ctx.manager.workspace_roots == [Root("file:///w")]


class TestCommandLine:
    """Test the mcphost entry point."""

    @pytest.fixture(autouse=True)
    def isolated(self, monkeypatch):
        for name in ENV_OVERRIDES:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setattr("mcphost.__main__.setup_logging", lambda settings: None)

    def write_config(self, tmp_path, servers=()):
        db = tmp_path / "mcphost.db"
        legacy = tmp_path / "mcp-servers.json"
        legacy.write_text(json.dumps([s.to_dict() for s in servers]))
        config = tmp_path / "mcphost.json"
        config.write_text(json.dumps({"database_url": str(db), "legacy_config_path": str(legacy)}))
        return str(config)

    def test_list(self, tmp_path, capsys):
        config = self.write_config(tmp_path, [ServerDescriptor("git", "Git", "uvx", args=("mcp-server-git",))])
        assert main(["-c", config, "list"]) == 0
        assert "git\tGit\tuvx mcp-server-git" in capsys.readouterr().out

    def test_export(self, tmp_path, capsys):
        config = self.write_config(tmp_path, [ServerDescriptor("git", "Git", "uvx")])
        out = tmp_path / "backup.json"
        assert main(["-c", config, "export", str(out)]) == 0
        assert json.loads(out.read_text())[0]["id"] == "git"

    def test_start_unknown_server(self, tmp_path, capsys):
        config = self.write_config(tmp_path)
        assert main(["-c", config, "start", "ghost"]) == 1
        assert "Unknown server: ghost" in capsys.readouterr().err

    def test_bad_config(self, tmp_path, capsys):
        config = tmp_path / "bad.json"
        config.write_text('{"nope": 1}')
        assert main(["-c", str(config), "list"]) == 1
        assert "ERROR" in capsys.readouterr().err

    def test_test_command(self, tmp_path, capsys, make_descriptor):
        config = self.write_config(tmp_path, [make_descriptor()])
        assert main(["-c", config, "test", "fake"]) == 0
        assert "Connection successful: fake" in capsys.readouterr().out

    def test_test_command_failure(self, tmp_path, capsys):
        config = self.write_config(tmp_path, [ServerDescriptor("ghost", "Ghost", "definitely-not-a-real-binary-mcp")])
        assert main(["-c", config, "test", "ghost"]) == 1
        assert "not found in PATH" in capsys.readouterr().err

    def test_discover_and_import(self, tmp_path, capsys, monkeypatch):
        home = tmp_path / "home"
        (home / ".cursor").mkdir(parents=True)
        (home / ".cursor" / "mcp.json").write_text(json.dumps(
            {"mcpServers": {"search": {"command": "node", "args": ["search.js"]}}}))
        project = tmp_path / "project"
        project.mkdir()
        (project / ".mcp.json").write_text(json.dumps(
            {"mcpServers": {"git": {"command": "uvx", "args": ["mcp-server-git"]}}}))
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.chdir(project)
        config = self.write_config(tmp_path, [ServerDescriptor("git", "Git", "uvx", args=("mcp-server-git",))])

        assert main(["-c", config, "discover"]) == 0
        out = capsys.readouterr().out
        assert "Cursor:" in out
        assert "[new] search\tnode search.js" in out
        assert "[imported] git\tuvx mcp-server-git" in out

        assert main(["-c", config, "import"]) == 0
        assert "Imported 1 servers" in capsys.readouterr().out

        assert main(["-c", config, "list"]) == 0
        assert "\tsearch\tnode search.js" in capsys.readouterr().out
