"""
Server registry.

Thin CRUD layer over a ServerStore holding an in-memory view of the
configured servers, plus the one-time import of the legacy flat file.
"""

import logging
import pathlib
from typing import Dict, List, Optional, Union

from ..connection.types import ServerDescriptor
from .adapter import ServerStore
from .errors import MigrationError, StorageError
from .legacy import load_legacy_servers

logger = logging.getLogger(__name__)


class ServerRegistry:
    """
    Configured servers, persisted through a ServerStore.

    Args:
        store: Backing store (must already be connected)
        legacy_path: Location of a legacy mcp-servers.json to import from

    Example:
        registry = ServerRegistry(store, legacy_path='~/.mcphost/mcp-servers.json')
        servers = await registry.load()
        await registry.add(descriptor)
    """

    def __init__(self, store: ServerStore, legacy_path: Optional[Union[str, pathlib.Path]] = None):
        self.store = store
        self.legacy_path = pathlib.Path(legacy_path).expanduser() if legacy_path else None
        self.migrated_from_legacy = False
        self._servers: Dict[str, ServerDescriptor] = {}

    def _read_legacy(self) -> List[ServerDescriptor]:
        if self.legacy_path is None:
            return []
        try:
            return load_legacy_servers(self.legacy_path)
        except MigrationError as e:
            logger.warning(f"Ignoring legacy servers file: {e}")
            return []

    def _set_cache(self, servers: List[ServerDescriptor]) -> None:
        self._servers = {server.id: server for server in servers}

    async def load(self) -> List[ServerDescriptor]:
        """
        Load servers, importing the legacy file on first run.

        Configs that worked before are never lost: if the store cannot
        be read, or the import cannot be persisted, the legacy servers
        are returned directly.

        Returns:
            All configured servers
        """
        try:
            servers = await self.store.list_servers()
        except StorageError as e:
            logger.error(f"Failed to load servers from store: {e}")
            servers = self._read_legacy()
            if servers:
                logger.warning(f"Recovered {len(servers)} servers from legacy file")
            self._set_cache(servers)
            return servers

        if not servers:
            legacy = self._read_legacy()
            if legacy:
                servers = await self._migrate(legacy)

        self._set_cache(servers)
        return self.list()

    async def _migrate(self, legacy: List[ServerDescriptor]) -> List[ServerDescriptor]:
        logger.info(f"Migrating {len(legacy)} servers from {self.legacy_path}")
        try:
            imported = 0
            for server in legacy:
                if await self.store.get_server(server.id) is not None:
                    continue
                await self.store.save_server(server)
                imported += 1
            servers = await self.store.list_servers()
        except StorageError as e:
            logger.error(f"Failed to persist migrated servers, using legacy file directly: {e}")
            return legacy

        self.migrated_from_legacy = True
        logger.info(f"Migrated {imported} servers; legacy file kept as backup")
        return servers

    def list(self) -> List[ServerDescriptor]:
        return sorted(self._servers.values(), key=lambda s: s.name.lower())

    def get(self, server_id: str) -> Optional[ServerDescriptor]:
        return self._servers.get(server_id)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._servers

    def __len__(self) -> int:
        return len(self._servers)

    async def add(self, descriptor: ServerDescriptor) -> None:
        """
        Persist a new server.

        Raises:
            ValueError: If a server with the same id exists
            StorageError: If it cannot be persisted
        """
        if descriptor.id in self._servers:
            raise ValueError(f"Server '{descriptor.id}' already exists")
        await self.store.save_server(descriptor)
        self._servers[descriptor.id] = descriptor
        logger.info(f"Added server {descriptor.name} ({descriptor.id})")

    async def update(self, descriptor: ServerDescriptor) -> ServerDescriptor:
        """
        Replace an existing server wholesale.

        Returns:
            The previous descriptor

        Raises:
            ValueError: If the server does not exist
            StorageError: If it cannot be persisted
        """
        previous = self._servers.get(descriptor.id)
        if previous is None:
            raise ValueError(f"Server '{descriptor.id}' does not exist")
        await self.store.save_server(descriptor)
        self._servers[descriptor.id] = descriptor
        logger.info(f"Updated server {descriptor.name} ({descriptor.id})")
        return previous

    async def remove(self, server_id: str) -> bool:
        """Delete a server. Returns False if it was not configured."""
        if server_id not in self._servers:
            return False
        await self.store.delete_server(server_id)
        del self._servers[server_id]
        logger.info(f"Removed server {server_id}")
        return True
