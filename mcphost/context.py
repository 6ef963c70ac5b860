"""
Application context.

Builds and owns the long-lived objects (store, registry, builtin bridge,
server manager) from Settings, so nothing in the package relies on
module-level singletons.
"""

import logging
from typing import Optional

from .builtin.bridge import BuiltinToolBridge
from .builtin.browser import BrowserController
from .builtin.code_execution import CodeExecutor
from .builtin.web_search import WebSearchService
from .catalog.manager import ServerManager
from .config import Settings
from .storage.registry import ServerRegistry
from .storage.sql_store import SQLServerStore

logger = logging.getLogger(__name__)


class AppContext:
    """
    Wiring for one mcphost session.

    Example:
        async with AppContext(settings) as ctx:
            await ctx.manager.start_all_servers()
            print(ctx.manager.tool_schemas())
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[CodeExecutor] = None,
        browser: Optional[BrowserController] = None,
        search_transport=None,
    ):
        self.settings = settings or Settings()
        self.store = SQLServerStore(self.settings.database_url)
        self.registry = ServerRegistry(self.store, self.settings.legacy_config_path)
        self.search = WebSearchService(self.settings.search, transport=search_transport)
        self.bridge = BuiltinToolBridge(
            store=self.store,
            search=self.search,
            executor=executor,
            browser=browser,
        )
        self.manager = ServerManager(
            self.registry,
            builtins=self.bridge,
            request_timeout=self.settings.request_timeout,
            tool_timeout=self.settings.tool_timeout,
            stop_timeout=self.settings.stop_timeout,
            progress_expiry=self.settings.progress_expiry,
            strict_schemas=self.settings.strict_schemas,
            client_name=self.settings.client_name,
            client_version=self.settings.client_version,
        )
        self.manager.workspace_roots = list(self.settings.workspace_roots)
        self._started = False

    async def start(self) -> None:
        """Connect the store and load the registry and builtin states."""
        if self._started:
            return
        await self.store.connect()
        servers = await self.registry.load()
        await self.bridge.load()
        self._started = True
        logger.info(f"Loaded {len(servers)} configured servers")

    async def close(self) -> None:
        """Stop every server, then release the store."""
        await self.manager.stop_all()
        await self.store.close()
        self._started = False

    async def __aenter__(self) -> 'AppContext':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
