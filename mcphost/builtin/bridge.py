"""
Builtin Tool Bridge
===================

Serves the reserved builtin tool names locally. The ServerManager asks
the bridge first, so a builtin name never reaches a server process even
if a server happens to expose a tool with the same name.

Each builtin can be enabled or disabled on its own; the states are
persisted as one setting in the ServerStore when a store is given.
"""

import logging
from typing import Any, Dict, List, Optional

from ..connection.types import ToolResult
from ..storage.adapter import ServerStore
from ..storage.errors import StorageError
from .artifact import CREATE_ARTIFACT_TOOL, run_create_artifact
from .browser import BROWSER_ACTION_TOOL, BrowserController, run_browser_action
from .code_execution import (
    EXECUTE_CODE_TOOL,
    EXECUTE_SHELL_TOOL,
    CodeExecutor,
    run_execute_code,
    run_execute_shell,
)
from .types import BuiltinToolDefinition
from .web_search import WEB_SEARCH_TOOL, WebSearchService, run_web_search

logger = logging.getLogger(__name__)

SETTINGS_KEY = "builtin_tools_enabled"

BUILTIN_TOOLS = [
    WEB_SEARCH_TOOL,
    BROWSER_ACTION_TOOL,
    EXECUTE_CODE_TOOL,
    EXECUTE_SHELL_TOOL,
    CREATE_ARTIFACT_TOOL,
]

# Used in the "... tool is currently disabled" message
DISABLED_LABELS = {
    "web_search": "Web search",
    "browser_action": "Browser control",
    "execute_code": "Code execution",
    "execute_shell": "Shell execution",
    "create_artifact": "Artifact creation",
}


class BuiltinToolBridge:
    """
    Dispatcher for builtin tools.

    Args:
        store: Where enable states are persisted (optional)
        search: Service used by web_search
        executor: Sandbox used by execute_code and execute_shell
        browser: Browser used by browser_action
    """

    def __init__(
        self,
        store: Optional[ServerStore] = None,
        search: Optional[WebSearchService] = None,
        executor: Optional[CodeExecutor] = None,
        browser: Optional[BrowserController] = None,
    ):
        self.store = store
        self.search = search
        self.executor = executor
        self.browser = browser
        self.definitions: Dict[str, BuiltinToolDefinition] = {t.name: t for t in BUILTIN_TOOLS}
        self._enabled: Dict[str, bool] = {t.name: t.enabled_by_default for t in BUILTIN_TOOLS}

    async def load(self) -> None:
        """Apply saved enable states over the defaults."""
        if self.store is None:
            return
        try:
            saved = await self.store.get_setting(SETTINGS_KEY, {})
        except StorageError as e:
            logger.warning(f"Could not load builtin tool states: {e}")
            return
        if not isinstance(saved, dict):
            return
        for name, enabled in saved.items():
            if name in self._enabled and isinstance(enabled, bool):
                self._enabled[name] = enabled

    async def _save(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.set_setting(SETTINGS_KEY, dict(self._enabled))
        except StorageError as e:
            logger.warning(f"Could not save builtin tool states: {e}")

    # ------------------------------------------------------------------
    # Enable gates
    # ------------------------------------------------------------------

    def handles(self, name: str) -> bool:
        """True for every reserved name, enabled or not."""
        return name in self.definitions

    def is_enabled(self, name: str) -> bool:
        return self._enabled.get(name, False)

    async def set_enabled(self, name: str, enabled: bool) -> None:
        """
        Raises:
            KeyError: If name is not a builtin tool
        """
        if name not in self.definitions:
            raise KeyError(f"Unknown builtin tool: {name}")
        if self._enabled[name] == enabled:
            return
        self._enabled[name] = enabled
        await self._save()
        logger.info(f"Built-in tool '{name}' {'enabled' if enabled else 'disabled'}")

    async def enable(self, name: str) -> None:
        await self.set_enabled(name, True)

    async def disable(self, name: str) -> None:
        await self.set_enabled(name, False)

    async def toggle(self, name: str) -> bool:
        """Flip a tool's state. Returns the new state."""
        await self.set_enabled(name, not self.is_enabled(name))
        return self.is_enabled(name)

    def enabled_tools(self) -> List[BuiltinToolDefinition]:
        return [t for t in BUILTIN_TOOLS if self._enabled[t.name]]

    def schemas(self) -> List[Dict[str, Any]]:
        return [t.to_schema() for t in self.enabled_tools()]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def call(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        """Run a builtin. Never raises; failures come back as error results."""
        if name not in self.definitions:
            return ToolResult.failure(f"Tool '{name}' is not a builtin tool")
        if not self.is_enabled(name):
            return ToolResult.failure(
                f"{DISABLED_LABELS[name]} tool is currently disabled. "
                f"Enable it in the tools menu to use this feature."
            )

        logger.info(f"Calling built-in {name} tool")
        if name == "web_search":
            return await run_web_search(arguments, self.search)
        if name == "execute_code":
            return await run_execute_code(arguments, self.executor)
        if name == "execute_shell":
            return await run_execute_shell(arguments, self.executor)
        if name == "create_artifact":
            return await run_create_artifact(arguments)
        return await run_browser_action(arguments, self.browser)
