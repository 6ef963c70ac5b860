"""
SQLAlchemy-backed server store.

Uses SQLAlchemy 2.0 ORM with async support. SQLite (via aiosqlite) is
the default; any async SQLAlchemy URL works.
"""

import json
import pathlib
import urllib.parse
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ..connection.types import ServerDescriptor
from .adapter import ServerStore
from .errors import IntegrityError, QueryError, StorageConnectionError
from .models import Base, MCPServerRecord, Setting


def to_database_url(database_url: str) -> str:
    """
    Normalize a file path or ':memory:' into an async SQLAlchemy URL.

    URLs that already name a driver are returned unchanged.
    """
    if database_url.startswith(('sqlite+', 'postgresql+', 'mysql+')):
        return database_url
    if database_url == ':memory:':
        return 'sqlite+aiosqlite:///:memory:'
    path_obj = pathlib.Path(database_url).expanduser()
    if not path_obj.is_absolute():
        path_obj = path_obj.resolve()
    encoded_path = urllib.parse.quote(path_obj.as_posix(), safe='/:')
    return f'sqlite+aiosqlite:///{encoded_path}'


class SQLServerStore(ServerStore):
    """
    ServerStore on an async SQLAlchemy engine.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Factory for creating async sessions
        database_url: Database connection URL

    Example:
        store = SQLServerStore('~/.mcphost/mcphost.db')
        await store.connect()
        await store.save_server(descriptor)
        await store.close()
    """

    def __init__(self, database_url: str = 'sqlite+aiosqlite:///mcphost.db', logger=None):
        """
        Initialize engine and session factory.

        Args:
            database_url: SQLAlchemy URL, file path or ':memory:'
            logger: Optional logger instance
        """
        super().__init__(logger)
        self.database_url = to_database_url(database_url)
        self.is_postgresql = self.database_url.startswith('postgresql')

        engine_kwargs = {}
        if self.database_url.endswith(':memory:'):
            # Every pooled connection to :memory: would be a separate database
            from sqlalchemy.pool import StaticPool
            engine_kwargs['poolclass'] = StaticPool

        self.engine = create_async_engine(self.database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def connect(self) -> None:
        if self._is_connected:
            return
        if self.database_url.startswith('sqlite'):
            db_path = self.database_url.split(':///', 1)[-1]
            if db_path and db_path != ':memory:':
                pathlib.Path(urllib.parse.unquote(db_path)).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StorageConnectionError(f"Cannot open {self.database_url}: {e}") from e
        self._is_connected = True
        self.logger.info('Server store connected (%s)', self.database_url)

    async def close(self) -> None:
        if not self._is_connected:
            self.logger.debug('Server store already closed or never connected')
            return
        try:
            await self.engine.dispose()
            self.logger.info('Server store closed')
        finally:
            self._is_connected = False

    @asynccontextmanager
    async def _get_session(self):
        """
        Get async session (context manager).

        Commits on success, rolls back on exception, and translates
        SQLAlchemy failures into QueryError.

        Yields:
            AsyncSession: Database session
        """
        if not self._is_connected:
            raise StorageConnectionError('Server store is not connected')
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise QueryError(str(e)) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ========================================================================
    # Servers
    # ========================================================================

    async def list_servers(self) -> List[ServerDescriptor]:
        async with self._get_session() as session:
            result = await session.execute(select(MCPServerRecord).order_by(MCPServerRecord.name))
            records = result.scalars().all()

        servers = []
        for record in records:
            try:
                servers.append(record.to_descriptor())
            except ValueError as e:
                raise QueryError(f"Cannot decode server '{record.id}': {e}") from e
        return servers

    async def get_server(self, server_id: str) -> Optional[ServerDescriptor]:
        async with self._get_session() as session:
            record = await session.get(MCPServerRecord, server_id)
        if record is None:
            return None
        try:
            return record.to_descriptor()
        except ValueError as e:
            raise QueryError(f"Cannot decode server '{server_id}': {e}") from e

    async def save_server(self, descriptor: ServerDescriptor) -> None:
        try:
            values = MCPServerRecord.columns_for(descriptor)
        except (TypeError, ValueError) as e:
            raise IntegrityError(f"Server '{descriptor.id}' is not serializable: {e}") from e

        updates = {k: v for k, v in values.items() if k != 'id'}
        insert = pg_insert if self.is_postgresql else sqlite_insert
        stmt = insert(MCPServerRecord).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=['id'], set_=updates)

        async with self._get_session() as session:
            await session.execute(stmt)
        self.logger.debug('Saved server %s', descriptor.id)

    async def delete_server(self, server_id: str) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                delete(MCPServerRecord).where(MCPServerRecord.id == server_id)
            )
            return result.rowcount > 0

    async def count_servers(self) -> int:
        async with self._get_session() as session:
            result = await session.execute(select(func.count()).select_from(MCPServerRecord))
            return result.scalar() or 0

    # ========================================================================
    # Settings
    # ========================================================================

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._get_session() as session:
            record = await session.get(Setting, key)
        if record is None:
            return default
        return json.loads(record.value_json)

    async def set_setting(self, key: str, value: Any) -> None:
        try:
            value_json = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise IntegrityError(f"Setting '{key}' is not JSON-serializable: {e}") from e

        insert = pg_insert if self.is_postgresql else sqlite_insert
        stmt = insert(Setting).values(key=key, value_json=value_json)
        stmt = stmt.on_conflict_do_update(index_elements=['key'], set_={'value_json': value_json})

        async with self._get_session() as session:
            await session.execute(stmt)
