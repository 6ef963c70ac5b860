"""
Tool Catalog
============

Aggregated, owner-tagged view of every tool, resource and prompt
discovered across running servers. Descriptors are keyed by
(owner_id, name-or-uri). An owner's subset is only ever replaced
wholesale, never merged, so deletions on the server side propagate.

The catalog itself does no locking; the ServerManager serializes every
mutation.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple, TypeVar

from ..connection.types import Prompt, Resource, Tool

logger = logging.getLogger(__name__)

Key = Tuple[str, str]
D = TypeVar('D', Tool, Resource, Prompt)


def _replace(collection: Dict[Key, D], owner_id: str, items: Iterable[D]) -> int:
    for key in [k for k in collection if k[0] == owner_id]:
        del collection[key]
    count = 0
    for item in items:
        if item.owner_id != owner_id:
            raise ValueError(f"Descriptor {item.key} does not belong to '{owner_id}'")
        collection[item.key] = item
        count += 1
    return count


class ToolCatalog:
    """
    Discovered capabilities of all live servers.

    Attributes:
        enabled: Ids of owners whose descriptors are in the catalog
        errors: Last error string per server id, for display
    """

    def __init__(self):
        self._tools: Dict[Key, Tool] = {}
        self._resources: Dict[Key, Resource] = {}
        self._prompts: Dict[Key, Prompt] = {}
        self.enabled: Set[str] = set()
        self.errors: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_owner(self, owner_id: str, tools: Iterable[Tool],
                  resources: Iterable[Resource] = (), prompts: Iterable[Prompt] = ()) -> None:
        """Register a newly started owner with its full discovery results."""
        self.replace_tools(owner_id, tools)
        self.replace_resources(owner_id, resources)
        self.replace_prompts(owner_id, prompts)
        self.enabled.add(owner_id)
        self.errors.pop(owner_id, None)

    def replace_tools(self, owner_id: str, tools: Iterable[Tool]) -> int:
        count = _replace(self._tools, owner_id, tools)
        logger.debug(f"Catalog now holds {count} tools from {owner_id}")
        return count

    def replace_resources(self, owner_id: str, resources: Iterable[Resource]) -> int:
        return _replace(self._resources, owner_id, resources)

    def replace_prompts(self, owner_id: str, prompts: Iterable[Prompt]) -> int:
        return _replace(self._prompts, owner_id, prompts)

    def purge(self, owner_id: str) -> None:
        """Drop every descriptor owned by owner_id and disable it."""
        _replace(self._tools, owner_id, ())
        _replace(self._resources, owner_id, ())
        _replace(self._prompts, owner_id, ())
        self.enabled.discard(owner_id)

    def set_error(self, owner_id: str, message: str) -> None:
        self.errors[owner_id] = message

    def clear_error(self, owner_id: str) -> None:
        self.errors.pop(owner_id, None)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_tool(self, name: str) -> Optional[Tool]:
        """First tool with this name; servers are searched in id order."""
        matches = [tool for key, tool in sorted(self._tools.items()) if key[1] == name]
        if len(matches) > 1:
            logger.debug(f"Tool '{name}' is provided by {len(matches)} servers, using {matches[0].owner_id}")
        return matches[0] if matches else None

    def find_resource(self, uri: str) -> Optional[Resource]:
        for key, resource in sorted(self._resources.items()):
            if key[1] == uri:
                return resource
        return None

    def find_prompt(self, name: str) -> Optional[Prompt]:
        for key, prompt in sorted(self._prompts.items()):
            if key[1] == name:
                return prompt
        return None

    def tools(self, owner_id: Optional[str] = None) -> List[Tool]:
        return [t for k, t in sorted(self._tools.items()) if owner_id is None or k[0] == owner_id]

    def resources(self, owner_id: Optional[str] = None) -> List[Resource]:
        return [r for k, r in sorted(self._resources.items()) if owner_id is None or k[0] == owner_id]

    def prompts(self, owner_id: Optional[str] = None) -> List[Prompt]:
        return [p for k, p in sorted(self._prompts.items()) if owner_id is None or k[0] == owner_id]

    def owners(self) -> Set[str]:
        """Ids of every owner holding at least one descriptor."""
        return {k[0] for k in (*self._tools, *self._resources, *self._prompts)}

    def __len__(self) -> int:
        return len(self._tools)
