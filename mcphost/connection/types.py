"""
MCP Type Definitions
====================

Data types shared by the connection, catalog and storage layers:
server descriptors, discovered capability descriptors, call results and
the connection state machine.
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .values import JSONValue

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of a server connection."""
    NOT_STARTED = "not_started"
    STARTING = "starting"
    INITIALIZING = "initializing"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DISCONNECTED = "disconnected"  # Process exited without stop()


class DiscoverySource(Enum):
    """Where a server configuration came from."""
    MANUAL = "manual"
    CLAUDE_DESKTOP = "claude_desktop"
    CURSOR = "cursor"
    CLAUDE_CODE = "claude_code"
    VSCODE = "vscode"
    DOTFILE = "dotfile"

    @property
    def display_name(self) -> str:
        return SOURCE_DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, tag: Optional[str]) -> 'DiscoverySource':
        """Decode a stored tag. Unknown tags fall back to MANUAL."""
        if not tag:
            return cls.MANUAL
        try:
            return cls(tag)
        except ValueError:
            logger.warning(f"Unknown discovery source '{tag}', treating as manual")
            return cls.MANUAL


SOURCE_DISPLAY_NAMES = {
    DiscoverySource.MANUAL: "Manual",
    DiscoverySource.CLAUDE_DESKTOP: "Claude Desktop",
    DiscoverySource.CURSOR: "Cursor",
    DiscoverySource.CLAUDE_CODE: "Claude Code",
    DiscoverySource.VSCODE: "VS Code",
    DiscoverySource.DOTFILE: "Project Config",
}


# ============================================================================
# Server Configuration
# ============================================================================

@dataclass(frozen=True)
class ServerDescriptor:
    """
    Configuration of one tool-provider server.

    Immutable; edits produce a new descriptor via dataclasses.replace().

    Attributes:
        id: Stable unique identifier
        name: Display name
        description: Human-readable description
        command: Executable name or path
        args: Command-line arguments
        path: Legacy working directory (used when working_directory is unset)
        env: Environment overrides merged over the current environment
        working_directory: Directory the process is started in
        source: Where the configuration was discovered
    """
    id: str
    name: str
    command: str
    description: str = ""
    args: Tuple[str, ...] = ()
    path: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    working_directory: Optional[str] = None
    source: DiscoverySource = DiscoverySource.MANUAL

    def __post_init__(self):
        # Accept lists from callers but store a tuple
        if not isinstance(self.args, tuple):
            object.__setattr__(self, 'args', tuple(self.args))

    @property
    def cwd(self) -> Optional[str]:
        """Directory to launch in: working_directory, else path."""
        return self.working_directory or self.path or None

    def to_dict(self) -> Dict[str, Any]:
        """camelCase dictionary, as written to the legacy servers file."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "command": self.command,
            "args": list(self.args),
            "path": self.path,
            "env": dict(self.env) if self.env is not None else None,
            "workingDirectory": self.working_directory,
            "sourceConfig": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerDescriptor':
        """
        Build a descriptor from a camelCase or snake_case dictionary.

        Raises:
            ValueError: If id, name or command is missing
        """
        for required in ("id", "name", "command"):
            if not data.get(required):
                raise ValueError(f"Server entry missing '{required}'")
        source = data.get("sourceConfig", data.get("source"))
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=data.get("description") or "",
            command=str(data["command"]),
            args=tuple(str(a) for a in data.get("args") or ()),
            path=data.get("path"),
            env={str(k): str(v) for k, v in data["env"].items()} if data.get("env") else None,
            working_directory=data.get("workingDirectory", data.get("working_directory")),
            source=DiscoverySource.parse(source),
        )


# ============================================================================
# Negotiated Capabilities
# ============================================================================

@dataclass
class ServerCapabilities:
    """Feature flags the server declared during initialize."""
    tools: bool = False
    tools_list_changed: bool = False
    resources: bool = False
    resources_subscribe: bool = False
    resources_list_changed: bool = False
    prompts: bool = False
    prompts_list_changed: bool = False
    logging: bool = False
    sampling: bool = False
    roots: bool = False

    @classmethod
    def from_dict(cls, caps: Dict[str, Any]) -> 'ServerCapabilities':
        def section(name: str) -> Dict[str, Any]:
            value = caps.get(name)
            return value if isinstance(value, dict) else {}

        return cls(
            tools="tools" in caps,
            tools_list_changed=bool(section("tools").get("listChanged")),
            resources="resources" in caps,
            resources_subscribe=bool(section("resources").get("subscribe")),
            resources_list_changed=bool(section("resources").get("listChanged")),
            prompts="prompts" in caps,
            prompts_list_changed=bool(section("prompts").get("listChanged")),
            logging="logging" in caps,
            sampling="sampling" in caps,
            roots="roots" in caps,
        )


# ============================================================================
# Discovered Capabilities
# ============================================================================

@dataclass(frozen=True)
class Tool:
    """A tool exposed by a server."""
    name: str
    description: str
    input_schema: JSONValue
    owner_id: str
    owner_name: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.name)

    @property
    def qualified_id(self) -> str:
        return f"{self.owner_id}:{self.name}"

    def to_schema(self) -> Dict[str, Any]:
        """Tool description in the form handed to an LLM provider."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema.to_python(),
        }


@dataclass(frozen=True)
class Resource:
    """A readable resource exposed by a server."""
    uri: str
    name: str
    owner_id: str
    owner_name: str
    description: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.uri)


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: Optional[str] = None
    required: bool = False


@dataclass(frozen=True)
class Prompt:
    """A prompt template exposed by a server."""
    name: str
    owner_id: str
    owner_name: str
    description: Optional[str] = None
    arguments: Tuple[PromptArgument, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.name)


# ============================================================================
# Call Results
# ============================================================================

@dataclass
class ContentItem:
    """
    One content block of a tool result.

    Attributes:
        type: Block type (text, image, audio, resource, artifact)
        text: Text payload
        data: Base64 payload for binary blocks
        mime_type: MIME type for binary blocks
        uri: Resource uri for embedded resources
    """
    type: str
    text: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None
    uri: Optional[str] = None

    @classmethod
    def from_text(cls, text: str) -> 'ContentItem':
        return cls(type="text", text=text)

    @classmethod
    def from_dict(cls, block: Dict[str, Any]) -> 'ContentItem':
        block_type = str(block.get("type", "text"))
        if block_type == "resource" and isinstance(block.get("resource"), dict):
            resource = block["resource"]
            return cls(
                type=block_type,
                text=resource.get("text"),
                data=resource.get("blob"),
                mime_type=resource.get("mimeType"),
                uri=resource.get("uri"),
            )
        return cls(
            type=block_type,
            text=block.get("text"),
            data=block.get("data"),
            mime_type=block.get("mimeType"),
            uri=block.get("uri"),
        )


@dataclass
class ToolResult:
    """
    Result of a tool invocation.

    Failures are reported here rather than raised. When is_error is set
    because of a client-side failure, error holds the exception.
    """
    content: List[ContentItem] = field(default_factory=list)
    is_error: bool = False
    error: Optional[Exception] = None

    @classmethod
    def failure(cls, message: str, error: Optional[Exception] = None) -> 'ToolResult':
        return cls(content=[ContentItem.from_text(message)], is_error=True, error=error)

    @classmethod
    def success(cls, text: str) -> 'ToolResult':
        return cls(content=[ContentItem.from_text(text)])

    @property
    def text(self) -> str:
        """All text blocks joined with newlines."""
        return "\n".join(item.text for item in self.content if item.text)


@dataclass
class ResourceContent:
    """Contents of a resource. Exactly one of text and blob is set."""
    uri: str
    mime_type: Optional[str] = None
    text: Optional[str] = None
    blob: Optional[bytes] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceContent':
        blob = data.get("blob")
        return cls(
            uri=str(data.get("uri", "")),
            mime_type=data.get("mimeType"),
            text=data.get("text"),
            blob=base64.b64decode(blob) if isinstance(blob, str) else None,
        )


@dataclass
class PromptMessage:
    role: str
    content: str


@dataclass
class PromptResult:
    description: Optional[str]
    messages: List[PromptMessage] = field(default_factory=list)


# ============================================================================
# Server-Initiated Traffic
# ============================================================================

@dataclass
class Progress:
    """Progress of a long-running request, keyed by its token."""
    token: str
    progress: float
    total: Optional[float] = None
    message: Optional[str] = None
    updated_at: float = field(default_factory=time.monotonic)

    @property
    def is_complete(self) -> bool:
        return self.total is not None and self.progress >= self.total


@dataclass
class LogMessage:
    """A notifications/message log entry sent by a server."""
    level: str
    logger: Optional[str] = None
    data: Any = None


@dataclass
class SamplingRequest:
    """A sampling/createMessage request issued by a server."""
    id: Any
    messages: List[Dict[str, Any]]
    model_preferences: Optional[Dict[str, Any]] = None
    system_prompt: Optional[str] = None
    include_context: Optional[str] = None
    max_tokens: Optional[int] = None

    @classmethod
    def from_params(cls, request_id: Any, params: Dict[str, Any]) -> 'SamplingRequest':
        max_tokens = params.get("maxTokens")
        return cls(
            id=request_id,
            messages=list(params["messages"]),
            model_preferences=params.get("modelPreferences"),
            system_prompt=params.get("systemPrompt"),
            include_context=params.get("includeContext"),
            max_tokens=max_tokens if isinstance(max_tokens, int) else None,
        )


@dataclass(frozen=True)
class Root:
    """A workspace root advertised to servers through roots/list."""
    uri: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        root = {"uri": self.uri}
        if self.name:
            root["name"] = self.name
        return root
