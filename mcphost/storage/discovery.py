"""
Server discovery from other MCP clients' config files.

Desktop assistants and editors keep their MCP servers in JSON files of
the shape ``{"mcpServers": {"<name>": {"command": ..., "args": [...]}}}``.
This module reads the known locations plus a project ``.mcp.json``,
flags servers that are already configured here (same command and
argument set), and converts the rest into ServerDescriptors for import.

Example:
    found = discover_servers(registry.list())
    added = await import_discovered(registry, found)
"""

import json
import logging
import os
import pathlib
import sys
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..connection.errors import LaunchError
from ..connection.stdio import resolve_command
from ..connection.types import DiscoverySource, ServerDescriptor

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILENAME = '.mcp.json'

SECURITY_WARNING = 'Command contains potentially dangerous patterns'

# Shell metacharacters that have no business in a plain command line
DANGEROUS_PATTERNS = (';', '|', '&', '$', '`', '(', ')', '{', '}', '<', '>', '\n')

SHELL_COMMANDS = ('sh', 'bash', 'zsh')

BLOCKED_DIRECTORIES = ('/System', '/usr', '/bin', '/sbin', '/var', '/etc', '/private')

CLINE_SETTINGS = 'Code/User/globalStorage/saoudrizwan.claude-dev/settings/cline_mcp_settings.json'


# ============================================================================
# Discovered Servers
# ============================================================================

class DetectedRuntime(Enum):
    """Runtime guessed from a server's command."""
    PYTHON = 'python'
    NODE = 'node'
    BUN = 'bun'
    DENO = 'deno'
    SHELL = 'shell'
    BINARY = 'binary'

    @classmethod
    def from_command(cls, command: str) -> 'DetectedRuntime':
        cmd = command.lower()
        if 'python' in cmd:
            return cls.PYTHON
        if 'node' in cmd:
            return cls.NODE
        if 'bun' in cmd:
            return cls.BUN
        if 'deno' in cmd:
            return cls.DENO
        if cmd.endswith('.sh'):
            return cls.SHELL
        return cls.BINARY


@dataclass(frozen=True)
class DiscoveredServer:
    """
    A server found in another client's config file.

    Attributes:
        id: "<source>:<name>", unique across scanned files
        name: Key of the entry in mcpServers
        command: Executable
        args: Command-line arguments
        env: Environment overrides, if any
        working_directory: The entry's "cwd", if any
        source: Which client the file belongs to
        source_path: File the entry was read from
        already_imported: A configured server has the same signature
        security_warning: Set when the command line looks unsafe
    """
    id: str
    name: str
    command: str
    args: Tuple[str, ...]
    source: DiscoverySource
    source_path: str
    env: Optional[Dict[str, str]] = None
    working_directory: Optional[str] = None
    already_imported: bool = False
    security_warning: Optional[str] = None

    @property
    def runtime(self) -> DetectedRuntime:
        return DetectedRuntime.from_command(self.command)

    @property
    def signature(self) -> str:
        return server_signature(self.command, self.args)


def server_signature(command: str, args: Iterable[str]) -> str:
    """Identity used to spot the same server configured twice (argument order ignored)."""
    return ':'.join([command, *sorted(args)])


# ============================================================================
# Validation
# ============================================================================

def is_command_safe(command: str, args: Sequence[str] = ()) -> bool:
    """
    False if the command line contains shell metacharacters or runs a
    shell with -c.
    """
    for part in (command, *args):
        if any(pattern in part for pattern in DANGEROUS_PATTERNS):
            return False

    if os.path.basename(command) in SHELL_COMMANDS and '-c' in args:
        return False
    return True


def validate_command(command: str) -> bool:
    """True if the command resolves to an executable."""
    try:
        resolve_command(command)
    except LaunchError:
        return False
    return True


def validate_working_directory(path: Optional[str],
                               blocked: Sequence[str] = BLOCKED_DIRECTORIES) -> Optional[str]:
    """
    Resolve a working directory, rejecting missing and system paths.

    Returns:
        The canonical path, or None if it is unusable
    """
    if not path:
        return None
    try:
        resolved = pathlib.Path(path).expanduser().resolve()
    except (OSError, RuntimeError):
        return None
    if not resolved.is_dir():
        return None
    text = str(resolved)
    for prefix in blocked:
        if text == prefix or text.startswith(prefix.rstrip('/') + '/'):
            return None
    return text


# ============================================================================
# Scanning
# ============================================================================

def default_config_locations(home: Optional[Union[str, pathlib.Path]] = None
                             ) -> List[Tuple[DiscoverySource, pathlib.Path]]:
    """Config files of known MCP clients for the current platform."""
    home = pathlib.Path(home) if home is not None else pathlib.Path.home()
    if sys.platform == 'darwin':
        app_support = home / 'Library' / 'Application Support'
    elif sys.platform == 'win32':
        app_support = pathlib.Path(os.environ.get('APPDATA', home / 'AppData' / 'Roaming'))
    else:
        app_support = pathlib.Path(os.environ.get('XDG_CONFIG_HOME', home / '.config'))

    return [
        (DiscoverySource.CLAUDE_DESKTOP, app_support / 'Claude' / 'claude_desktop_config.json'),
        (DiscoverySource.CURSOR, home / '.cursor' / 'mcp.json'),
        (DiscoverySource.CLAUDE_CODE, home / '.claude' / 'settings.json'),
        (DiscoverySource.VSCODE, app_support / CLINE_SETTINGS),
    ]


def parse_config_file(path: Union[str, pathlib.Path], source: DiscoverySource,
                      existing_signatures: Iterable[str] = ()) -> List[DiscoveredServer]:
    """
    Read the mcpServers section of one config file.

    Missing, unreadable or malformed files yield an empty list; entries
    without a string command are skipped.
    """
    path = pathlib.Path(path).expanduser()
    if not path.is_file():
        return []
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to parse MCP config at {path}: {e}")
        return []

    servers = data.get('mcpServers') if isinstance(data, dict) else None
    if not isinstance(servers, dict):
        return []

    existing = set(existing_signatures)
    discovered = []
    for name, config in servers.items():
        if not isinstance(config, dict) or not isinstance(config.get('command'), str):
            logger.debug(f"Skipping entry {name!r} in {path}: no command")
            continue

        command = config['command']
        args = config.get('args')
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            args = []
        env = config.get('env')
        if not isinstance(env, dict) or not all(isinstance(v, str) for v in env.values()):
            env = None
        cwd = config.get('cwd')

        discovered.append(DiscoveredServer(
            id=f"{source.value}:{name}",
            name=name,
            command=command,
            args=tuple(args),
            source=source,
            source_path=str(path),
            env=env,
            working_directory=cwd if isinstance(cwd, str) else None,
            already_imported=server_signature(command, args) in existing,
            security_warning=None if is_command_safe(command, args) else SECURITY_WARNING,
        ))
    return discovered


class ServerDiscovery:
    """
    Scans known config locations for importable servers.

    Args:
        locations: (source, path) pairs to read (platform defaults if None)
        project_dir: Directory checked for a .mcp.json (cwd if None)
    """

    def __init__(self, locations: Optional[List[Tuple[DiscoverySource, pathlib.Path]]] = None,
                 project_dir: Optional[Union[str, pathlib.Path]] = None):
        self.locations = locations if locations is not None else default_config_locations()
        self.project_dir = pathlib.Path(project_dir) if project_dir is not None else pathlib.Path.cwd()

    def discover(self, existing: Iterable[ServerDescriptor] = ()) -> List[DiscoveredServer]:
        signatures = {server_signature(s.command, s.args) for s in existing}
        found: List[DiscoveredServer] = []
        for source, path in self.locations:
            found.extend(parse_config_file(path, source, signatures))
        found.extend(parse_config_file(self.project_dir / PROJECT_CONFIG_FILENAME,
                                       DiscoverySource.DOTFILE, signatures))
        logger.info(f"Discovered {len(found)} MCP servers in external config files")
        return found


def discover_servers(existing: Iterable[ServerDescriptor] = (), **kwargs) -> List[DiscoveredServer]:
    """Shorthand for ServerDiscovery(**kwargs).discover(existing)."""
    return ServerDiscovery(**kwargs).discover(existing)


def group_by_source(servers: Iterable[DiscoveredServer]) -> Dict[DiscoverySource, List[DiscoveredServer]]:
    """Group by source, largest group first, servers sorted by name."""
    groups: Dict[DiscoverySource, List[DiscoveredServer]] = {}
    for server in servers:
        groups.setdefault(server.source, []).append(server)
    ordered = sorted(groups.items(), key=lambda item: -len(item[1]))
    return {source: sorted(items, key=lambda s: s.name) for source, items in ordered}


# ============================================================================
# Import
# ============================================================================

def import_server(discovered: DiscoveredServer) -> ServerDescriptor:
    """Convert a discovered server into a new descriptor with a fresh id."""
    working_directory = validate_working_directory(discovered.working_directory)
    if discovered.working_directory and working_directory is None:
        logger.warning(
            f"Dropping working directory {discovered.working_directory!r} "
            f"of {discovered.name}: missing or not allowed"
        )
    return ServerDescriptor(
        id=str(uuid.uuid4()),
        name=discovered.name,
        description=f"Imported from {discovered.source.display_name}",
        command=discovered.command,
        args=discovered.args,
        env=dict(discovered.env) if discovered.env else None,
        working_directory=working_directory,
        source=discovered.source,
    )


async def import_discovered(registry, servers: Iterable[DiscoveredServer]) -> List[ServerDescriptor]:
    """
    Add discovered servers to a ServerRegistry.

    Servers whose signature is already configured (including ones added
    earlier in the same batch) are skipped.

    Returns:
        The descriptors that were added
    """
    signatures = {server_signature(s.command, s.args) for s in registry.list()}
    added = []
    for discovered in servers:
        if discovered.signature in signatures:
            logger.debug(f"Skipping {discovered.name}: already configured")
            continue
        if discovered.security_warning:
            logger.warning(f"Importing {discovered.name} from {discovered.source_path}: {discovered.security_warning}")
        descriptor = import_server(discovered)
        await registry.add(descriptor)
        signatures.add(discovered.signature)
        added.append(descriptor)
    logger.info(f"Imported {len(added)} discovered servers")
    return added
