"""
Tagged JSON Values
==================

JSONValue is an explicit sum type for the heterogeneous JSON carried in
tool schemas, tool arguments and protocol results. Every value knows its
kind, so nothing untyped travels between the codec and the catalog.

Example:
    >>> schema = JSONValue.from_python({"type": "object", "properties": {}})
    >>> schema.kind
    <ValueKind.OBJECT: 'object'>
    >>> schema.to_json()
    '{"type":"object","properties":{}}'
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple


class ValueKind(Enum):
    """Kinds of JSON value."""
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


@dataclass(frozen=True, eq=True)
class JSONValue:
    """
    A single JSON value tagged with its kind.

    Arrays hold a tuple of JSONValue and objects hold a dict mapping
    string keys to JSONValue. Scalars hold the plain Python value.

    Attributes:
        kind: Which JSON kind this value is
        value: Payload for the kind
    """
    kind: ValueKind
    value: Any = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def null(cls) -> 'JSONValue':
        return cls(ValueKind.NULL, None)

    @classmethod
    def empty_object(cls) -> 'JSONValue':
        return cls(ValueKind.OBJECT, {})

    @classmethod
    def from_python(cls, obj: Any) -> 'JSONValue':
        """
        Convert a plain Python value into a JSONValue.

        Args:
            obj: None, bool, int, float, str, list/tuple or dict with
                string keys (nested arbitrarily), or a JSONValue

        Returns:
            The tagged value

        Raises:
            ValueError: If obj (or anything nested in it) has no JSON form
        """
        if isinstance(obj, JSONValue):
            return obj
        if obj is None:
            return cls(ValueKind.NULL, None)
        # bool before int, bool is an int subclass
        if isinstance(obj, bool):
            return cls(ValueKind.BOOL, obj)
        if isinstance(obj, int):
            return cls(ValueKind.INT, obj)
        if isinstance(obj, float):
            if math.isnan(obj) or math.isinf(obj):
                raise ValueError(f"Cannot represent {obj!r} in JSON")
            return cls(ValueKind.FLOAT, obj)
        if isinstance(obj, str):
            return cls(ValueKind.STRING, obj)
        if isinstance(obj, (list, tuple)):
            return cls(ValueKind.ARRAY, tuple(cls.from_python(item) for item in obj))
        if isinstance(obj, dict):
            members = {}
            for key, item in obj.items():
                if not isinstance(key, str):
                    raise ValueError(f"JSON object keys must be strings, got {type(key).__name__}")
                members[key] = cls.from_python(item)
            return cls(ValueKind.OBJECT, members)
        raise ValueError(f"Cannot represent {type(obj).__name__} in JSON")

    @classmethod
    def from_json(cls, text: str) -> 'JSONValue':
        """
        Parse JSON text.

        Raises:
            ValueError: On malformed JSON or NaN/Infinity literals
        """
        return cls.from_python(json.loads(text, parse_constant=_reject_constant))

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_python(self) -> Any:
        """Convert back to plain Python (dict, list, str, int, float, bool, None)."""
        if self.kind is ValueKind.ARRAY:
            return [item.to_python() for item in self.value]
        if self.kind is ValueKind.OBJECT:
            return {key: item.to_python() for key, item in self.value.items()}
        return self.value

    def to_json(self) -> str:
        """Serialize to compact JSON text."""
        return json.dumps(self.to_python(), separators=(',', ':'),
                          ensure_ascii=False, allow_nan=False)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    @property
    def is_object(self) -> bool:
        return self.kind is ValueKind.OBJECT

    @property
    def is_array(self) -> bool:
        return self.kind is ValueKind.ARRAY

    def get(self, key: str, default: Optional['JSONValue'] = None) -> Optional['JSONValue']:
        """Look up an object member; returns default for non-objects."""
        if self.kind is not ValueKind.OBJECT:
            return default
        return self.value.get(key, default)

    def items(self) -> Iterator[Tuple[str, 'JSONValue']]:
        if self.kind is not ValueKind.OBJECT:
            return iter(())
        return iter(self.value.items())

    def elements(self) -> Iterator['JSONValue']:
        if self.kind is not ValueKind.ARRAY:
            return iter(())
        return iter(self.value)


def as_object(value: Optional[JSONValue]) -> Dict[str, Any]:
    """Plain dict for an object value, empty dict for anything else."""
    if value is None or not value.is_object:
        return {}
    return value.to_python()
