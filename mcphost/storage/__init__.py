"""
Persisted server configuration.

This module provides the ServerStore interface, its SQLAlchemy
implementation, the ServerRegistry built on top of them, and discovery
of servers configured in other MCP clients.
"""

from .adapter import ServerStore
from .discovery import (
    DiscoveredServer,
    ServerDiscovery,
    discover_servers,
    import_discovered,
    import_server,
)
from .errors import (
    IntegrityError,
    MigrationError,
    QueryError,
    StorageConnectionError,
    StorageError,
)
from .legacy import LEGACY_FILENAME, load_legacy_servers, write_legacy_servers
from .registry import ServerRegistry
from .sql_store import SQLServerStore

__all__ = [
    'ServerStore',
    'SQLServerStore',
    'ServerRegistry',
    'DiscoveredServer',
    'ServerDiscovery',
    'discover_servers',
    'import_discovered',
    'import_server',
    'LEGACY_FILENAME',
    'load_legacy_servers',
    'write_legacy_servers',
    'StorageError',
    'StorageConnectionError',
    'QueryError',
    'MigrationError',
    'IntegrityError',
]
