"""
Abstract store for persisted server configuration.

This module defines the ServerStore abstract base class that storage
implementations inherit from. The registry only ever talks to this
interface, so tests and embedders can substitute their own store.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..connection.types import ServerDescriptor


class ServerStore(ABC):
    """
    Abstract CRUD interface over ServerDescriptor records and settings.

    Attributes:
        logger: Logger instance for storage events
        is_connected: Storage connection status

    Example:
        >>> store = SQLServerStore(':memory:')
        >>> await store.connect()
        >>> await store.save_server(descriptor)
        >>> servers = await store.list_servers()
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize store.

        Args:
            logger: Optional logger instance. If None, creates default logger.
        """
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the store and create missing tables.

        Raises:
            StorageConnectionError: If the store cannot be opened
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
        pass

    # ========================================================================
    # Servers
    # ========================================================================

    @abstractmethod
    async def list_servers(self) -> List[ServerDescriptor]:
        """
        All persisted servers, ordered by name.

        Raises:
            QueryError: If the servers cannot be read
        """
        pass

    @abstractmethod
    async def get_server(self, server_id: str) -> Optional[ServerDescriptor]:
        pass

    @abstractmethod
    async def save_server(self, descriptor: ServerDescriptor) -> None:
        """
        Insert or replace a server.

        Raises:
            QueryError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_server(self, server_id: str) -> bool:
        """Delete a server. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def count_servers(self) -> int:
        pass

    # ========================================================================
    # Settings
    # ========================================================================

    @abstractmethod
    async def get_setting(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        """
        Persist a JSON-serializable setting.

        Raises:
            IntegrityError: If value is not JSON-serializable
        """
        pass
