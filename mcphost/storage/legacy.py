"""
Legacy flat-file server configuration.

Older releases kept servers in a JSON file (mcp-servers.json) holding a
list of camelCase server objects. The file is only read; after import
it stays on disk as a backup.
"""

import json
import logging
import pathlib
from typing import List, Union

from ..connection.types import ServerDescriptor
from .errors import MigrationError

logger = logging.getLogger(__name__)

LEGACY_FILENAME = 'mcp-servers.json'


def load_legacy_servers(path: Union[str, pathlib.Path]) -> List[ServerDescriptor]:
    """
    Read servers from a legacy file.

    Entries that cannot be decoded are skipped with a warning.

    Args:
        path: Location of mcp-servers.json

    Returns:
        Decoded servers; empty if the file does not exist

    Raises:
        MigrationError: If the file exists but is unreadable or not a list
    """
    path = pathlib.Path(path).expanduser()
    if not path.exists():
        return []

    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MigrationError(f"Cannot read legacy servers file {path}: {e}") from e

    if not isinstance(data, list):
        raise MigrationError(f"Legacy servers file {path} does not contain a list")

    servers = []
    for entry in data:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping malformed legacy server entry: {entry!r}")
            continue
        try:
            servers.append(ServerDescriptor.from_dict(entry))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping legacy server entry {entry.get('id')!r}: {e}")
    return servers


def write_legacy_servers(path: Union[str, pathlib.Path], servers: List[ServerDescriptor]) -> None:
    """Write servers in the legacy format (used to export a backup)."""
    path = pathlib.Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([s.to_dict() for s in servers], indent=2), encoding='utf-8')
