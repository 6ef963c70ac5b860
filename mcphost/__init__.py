"""
mcphost - client host for Model Context Protocol tool servers.

Launches MCP servers as child processes, speaks JSON-RPC over their
stdio, and merges the tools, resources and prompts they expose into one
catalog alongside a few builtin tools.
"""

__version__ = '1.0.0'

from .builtin import BuiltinToolBridge
from .catalog import ServerManager, ToolCatalog
from .config import Settings, configure_logger, load_settings
from .connection import MCPError, ServerConnection, ServerDescriptor, ToolResult
from .context import AppContext
from .storage import ServerRegistry, SQLServerStore

__all__ = [
    '__version__',
    'AppContext',
    'Settings',
    'load_settings',
    'configure_logger',
    'ServerConnection',
    'ServerDescriptor',
    'ToolResult',
    'MCPError',
    'ServerManager',
    'ToolCatalog',
    'BuiltinToolBridge',
    'ServerRegistry',
    'SQLServerStore',
]
