"""
Catalog of discovered capabilities and the manager supervising servers.
"""

from .catalog import ToolCatalog
from .manager import ServerManager
from .progress import ProgressTracker

__all__ = [
    'ToolCatalog',
    'ServerManager',
    'ProgressTracker',
]
