"""
SQLAlchemy ORM Models
=====================

Schema for persisted configuration:
- MCPServerRecord: one row per configured tool-provider server
- Setting: JSON key/value settings (builtin tool enable states, ...)

Usage:
    from mcphost.storage.models import Base, MCPServerRecord

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
"""

import json
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..connection.types import DiscoverySource, ServerDescriptor

# ============================================================================
# Base Class
# ============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


# ============================================================================
# Server Configuration
# ============================================================================

class MCPServerRecord(Base):
    """
    Persisted ServerDescriptor.

    args and env are stored as JSON text; env is NULL when the server
    has no environment overrides.
    """
    __tablename__ = 'mcp_servers'

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    command: Mapped[str] = mapped_column(Text, nullable=False)

    args: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="[]",
        comment="JSON array of command-line arguments"
    )

    path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    env: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="JSON object of environment overrides"
    )

    working_directory: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source_config: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DiscoverySource.MANUAL.value,
        comment="Where the configuration came from (manual, cursor, ...)"
    )

    def __repr__(self) -> str:
        return f"<MCPServerRecord(id='{self.id}', name='{self.name}')>"

    @classmethod
    def from_descriptor(cls, descriptor: ServerDescriptor) -> 'MCPServerRecord':
        return cls(**cls.columns_for(descriptor))

    @staticmethod
    def columns_for(descriptor: ServerDescriptor) -> dict:
        """Column values for a descriptor, as used by inserts and upserts."""
        return {
            'id': descriptor.id,
            'name': descriptor.name,
            'description': descriptor.description,
            'command': descriptor.command,
            'args': json.dumps(list(descriptor.args)),
            'path': descriptor.path,
            'env': json.dumps(descriptor.env, sort_keys=True) if descriptor.env is not None else None,
            'working_directory': descriptor.working_directory,
            'source_config': descriptor.source.value,
        }

    def to_descriptor(self) -> ServerDescriptor:
        """
        Decode the row.

        Raises:
            ValueError: If args/env JSON is invalid
        """
        args = json.loads(self.args) if self.args else []
        env = json.loads(self.env) if self.env else None
        if not isinstance(args, list) or (env is not None and not isinstance(env, dict)):
            raise ValueError(f"Corrupt args/env for server '{self.id}'")
        return ServerDescriptor(
            id=self.id,
            name=self.name,
            description=self.description or "",
            command=self.command,
            args=tuple(str(a) for a in args),
            path=self.path,
            env=env,
            working_directory=self.working_directory,
            source=DiscoverySource.parse(self.source_config),
        )


# ============================================================================
# Settings
# ============================================================================

class Setting(Base):
    """Application setting stored as JSON."""
    __tablename__ = 'settings'

    key: Mapped[str] = mapped_column(String(255), primary_key=True)

    value_json: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON-serialized value"
    )

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}')>"
