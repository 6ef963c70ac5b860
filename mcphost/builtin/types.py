"""
Builtin Tool Definitions
========================

Type definitions describing the builtin tools and their parameters.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ParameterType(Enum):
    """Supported parameter types for tool parameters."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ToolCategory(Enum):
    CORE = "core"
    WEB = "web"
    CODE = "code"
    ARTIFACTS = "artifacts"


@dataclass
class ToolParameter:
    """
    Definition of a tool parameter.

    Attributes:
        name: Parameter name
        type: Parameter type
        description: Human-readable description
        required: Whether parameter is required
        default: Default value if not provided
        enum: List of allowed values (optional)
        items: JSON schema of array items (optional)
        minimum: Lower bound for numbers (optional)
        maximum: Upper bound for numbers (optional)
    """
    name: str
    type: ParameterType
    description: str
    required: bool = True
    default: Any = None
    enum: Optional[List[Any]] = None
    items: Optional[Dict[str, Any]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass
class BuiltinToolDefinition:
    """
    A builtin tool served locally instead of by a server.

    Attributes:
        name: Reserved tool name
        display_name: Name shown in tool menus
        description: What the tool does
        category: Tool category for organization
        enabled_by_default: Initial state before any saved preference
        parameters: List of tool parameters
    """
    name: str
    display_name: str
    description: str
    category: ToolCategory
    enabled_by_default: bool = True
    parameters: List[ToolParameter] = field(default_factory=list)

    def input_schema(self) -> Dict[str, Any]:
        """JSON Schema of the tool's arguments."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: Dict[str, Any] = {
                "type": param.type.value,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.items:
                prop["items"] = param.items
            if param.default is not None:
                prop["default"] = param.default
            if param.minimum is not None:
                prop["minimum"] = param.minimum
            if param.maximum is not None:
                prop["maximum"] = param.maximum

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    def to_schema(self) -> Dict[str, Any]:
        """Schema in the same shape as Tool.to_schema() for server tools."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }
