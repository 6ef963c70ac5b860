"""
Unit tests for builtin tools and BuiltinToolBridge

Tests cover:
- Enable/disable gates and their persistence
- Dispatch to each builtin
- Artifact sanitization
"""

import json
from unittest.mock import AsyncMock

import pytest

from mcphost.builtin.artifact import run_create_artifact, sanitize_artifact_content
from mcphost.builtin.bridge import SETTINGS_KEY, BuiltinToolBridge
from mcphost.builtin.browser import BrowserController, PageContent, PageElement, run_browser_action
from mcphost.builtin.code_execution import (
    CodeExecutor,
    ExecutionResult,
    run_execute_code,
    run_execute_shell,
)
from mcphost.builtin.types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter


class FakeExecutor(CodeExecutor):
    def __init__(self, result=None, error=None):
        self.result = result or ExecutionResult(exit_code=0, stdout="42", duration=0.5)
        self.error = error
        self.requests = []

    async def execute(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.result


class FakeBrowser(BrowserController):
    def __init__(self):
        self.elements = [PageElement("#go", "button", "Go", clickable=True)]
        self.typed = []

    async def navigate(self, url):
        return url + "/"

    async def extract(self):
        return PageContent(url="https://example.com", title="Example", text="x" * 6000,
                           links=[{"text": "More", "href": "https://iana.org"}])

    async def screenshot(self):
        return b"png"

    async def find(self, selector):
        return [e for e in self.elements if e.selector == selector]

    async def click(self, element):
        return True

    async def type_text(self, element, text):
        self.typed.append(text)
        return True

    async def scroll(self, position, selector=None):
        pass


# ============================================================================
# Definitions
# ============================================================================

class TestDefinitions:
    """Test schema generation for builtin definitions."""

    def test_input_schema(self):
        definition = BuiltinToolDefinition(
            name="t", display_name="T", description="d", category=ToolCategory.CORE,
            parameters=[
                ToolParameter("a", ParameterType.STRING, "A", enum=["x"]),
                ToolParameter("b", ParameterType.INTEGER, "B", required=False, default=2, minimum=1),
            ],
        )
        schema = definition.input_schema()
        assert schema["required"] == ["a"]
        assert schema["properties"]["a"]["enum"] == ["x"]
        assert schema["properties"]["b"] == {
            "type": "integer", "description": "B", "default": 2, "minimum": 1,
        }


# ============================================================================
# Bridge
# ============================================================================

class TestBridge:
    """Test enable gates and dispatch."""

    def test_defaults(self):
        bridge = BuiltinToolBridge()
        assert bridge.is_enabled("web_search")
        assert not bridge.is_enabled("execute_shell")
        names = [s["name"] for s in bridge.schemas()]
        assert "execute_shell" not in names
        assert "create_artifact" in names

    def test_handles_reserved_names_only(self):
        bridge = BuiltinToolBridge()
        assert bridge.handles("execute_shell")
        assert not bridge.handles("read_file")

    async def test_disabled_tool_message(self):
        bridge = BuiltinToolBridge()
        result = await bridge.call("execute_shell", {"shell_type": "bash", "code": "ls"})
        assert result.is_error
        assert result.text == (
            "Shell execution tool is currently disabled. "
            "Enable it in the tools menu to use this feature."
        )

    async def test_toggle_persists(self, memory_store):
        bridge = BuiltinToolBridge(store=memory_store)
        assert await bridge.toggle("web_search") is False
        assert await memory_store.get_setting(SETTINGS_KEY) == {
            "web_search": False,
            "browser_action": True,
            "execute_code": True,
            "execute_shell": False,
            "create_artifact": True,
        }

        reloaded = BuiltinToolBridge(store=memory_store)
        await reloaded.load()
        assert not reloaded.is_enabled("web_search")

    async def test_load_ignores_unknown_and_bad_values(self, memory_store):
        await memory_store.set_setting(SETTINGS_KEY, {"web_search": "no", "ghost": True, "execute_shell": True})
        bridge = BuiltinToolBridge(store=memory_store)
        await bridge.load()
        assert bridge.is_enabled("web_search")
        assert bridge.is_enabled("execute_shell")

    async def test_unknown_tool_cannot_be_enabled(self):
        with pytest.raises(KeyError):
            await BuiltinToolBridge().enable("ghost")

    async def test_dispatch_to_executor(self):
        executor = FakeExecutor()
        bridge = BuiltinToolBridge(executor=executor)
        result = await bridge.call("execute_code", {"language": "python", "code": "print(42)"})
        assert not result.is_error
        assert executor.requests[0].language == "python"

    async def test_store_failure_does_not_break_toggle(self):
        from mcphost.storage.errors import QueryError
        store = AsyncMock()
        store.set_setting.side_effect = QueryError("locked")
        bridge = BuiltinToolBridge(store=store)
        await bridge.disable("create_artifact")
        assert not bridge.is_enabled("create_artifact")


# ============================================================================
# Code Execution
# ============================================================================

class TestCodeExecution:
    """Test execute_code and execute_shell."""

    async def test_success_markdown(self):
        result = await run_execute_code({"language": "python", "code": "print(42)"}, FakeExecutor())
        assert "**Exit Code:** 0" in result.text
        assert "### Output\n```\n42\n```" in result.text

    async def test_nonzero_exit_is_error(self):
        executor = FakeExecutor(ExecutionResult(exit_code=1, stderr="Traceback"))
        result = await run_execute_code({"language": "python", "code": "raise"}, executor)
        assert result.is_error
        assert "### Errors" in result.text

    async def test_timeout_clamped_and_capabilities_filtered(self):
        executor = FakeExecutor()
        await run_execute_code({"language": "javascript", "code": "1", "timeout": 999,
                                "capabilities": ["network", "root"]}, executor)
        assert executor.requests[0].timeout == 120
        assert executor.requests[0].capabilities == ["network"]

    async def test_invalid_language(self):
        result = await run_execute_code({"language": "cobol", "code": "x"}, FakeExecutor())
        assert result.is_error

    async def test_executor_failure(self):
        result = await run_execute_code({"language": "python", "code": "x"},
                                        FakeExecutor(error=PermissionError("denied")))
        assert result.is_error
        assert "denied" in result.text

    async def test_shell_working_directory(self):
        executor = FakeExecutor()
        await run_execute_shell({"shell_type": "bash", "code": "ls", "working_directory": "/tmp"}, executor)
        request = executor.requests[0]
        assert request.language == "bash"
        assert request.working_directory == "/tmp"
        assert request.capabilities == ["filesystem.read"]

    async def test_no_executor(self):
        result = await run_execute_shell({"shell_type": "zsh", "code": "ls"}, None)
        assert result.is_error


# ============================================================================
# Artifacts
# ============================================================================

class TestArtifacts:
    """Test create_artifact."""

    def test_sanitize_strips_wrapping(self):
        raw = (
            "## Setup\n"
            "npm install react\n"
            "```jsx\n"
            "import React from 'react';\n"
            "export default function App() {\n"
            "  return <div>Hi</div>;\n"
            "}\n"
            "```\n"
        )
        assert sanitize_artifact_content(raw, "react") == "function App() {\n  return <div>Hi</div>;\n}"

    async def test_artifact_payload(self):
        result = await run_create_artifact({"type": "svg", "title": "Dot", "content": "<svg></svg>"})
        assert not result.is_error
        item = result.content[0]
        assert item.type == "artifact"
        assert json.loads(item.text) == {
            "artifact_type": "svg", "artifact_title": "Dot", "artifact_content": "<svg></svg>",
        }

    async def test_invalid_type(self):
        result = await run_create_artifact({"type": "pdf", "title": "x", "content": "y"})
        assert result.is_error

    async def test_missing_parameters(self):
        result = await run_create_artifact({"type": "html"})
        assert result.is_error

    async def test_empty_after_sanitize(self):
        result = await run_create_artifact({"type": "html", "title": "x", "content": "npm install foo\n"})
        assert result.is_error
        assert "empty after sanitization" in result.text


# ============================================================================
# Browser
# ============================================================================

class TestBrowserAction:
    """Test browser_action."""

    async def test_unknown_action(self):
        result = await run_browser_action({"action": "hover"}, FakeBrowser())
        assert result.text == (
            "Error: Unknown action 'hover'. "
            "Valid actions: navigate, click, type, extract, screenshot, find, scroll"
        )

    async def test_navigate(self):
        result = await run_browser_action({"action": "navigate", "url": "https://example.com"}, FakeBrowser())
        assert result.text.startswith("Navigated to: https://example.com/")

    async def test_extract_truncates(self):
        result = await run_browser_action({"action": "extract"}, FakeBrowser())
        assert "[truncated, 1000 more characters]" in result.text
        assert "- [More](https://iana.org)" in result.text

    async def test_type_and_click(self):
        browser = FakeBrowser()
        result = await run_browser_action({"action": "type", "selector": "#go", "text": "hello"}, browser)
        assert not result.is_error
        assert browser.typed == ["hello"]
        result = await run_browser_action({"action": "click", "selector": "#go"}, browser)
        assert result.text == "Clicked element: #go"

    async def test_missing_element(self):
        result = await run_browser_action({"action": "click", "selector": "#nope"}, FakeBrowser())
        assert result.is_error

    async def test_scroll_element_requires_selector(self):
        result = await run_browser_action({"action": "scroll", "scroll_position": "element"}, FakeBrowser())
        assert result.is_error

    async def test_no_browser(self):
        result = await run_browser_action({"action": "screenshot"}, None)
        assert result.is_error
