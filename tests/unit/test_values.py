"""
Unit tests for tagged JSON values

Tests cover:
- Conversion from plain Python values
- Rejection of values with no JSON form
- Accessors on objects and arrays
"""

import pytest

from mcphost.connection.values import JSONValue, ValueKind, as_object


class TestFromPython:
    """Test building values from Python objects."""

    def test_scalars_are_tagged(self):
        assert JSONValue.from_python(None).kind is ValueKind.NULL
        assert JSONValue.from_python(True).kind is ValueKind.BOOL
        assert JSONValue.from_python(3).kind is ValueKind.INT
        assert JSONValue.from_python(2.5).kind is ValueKind.FLOAT
        assert JSONValue.from_python("x").kind is ValueKind.STRING

    def test_bool_is_not_int(self):
        assert JSONValue.from_python(False).kind is ValueKind.BOOL

    def test_nested_structure_roundtrip(self):
        schema = {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        }
        value = JSONValue.from_python(schema)
        assert value.kind is ValueKind.OBJECT
        assert value.get("required").kind is ValueKind.ARRAY
        assert value.to_python() == schema

    def test_tuple_becomes_array(self):
        value = JSONValue.from_python((1, 2))
        assert value.is_array
        assert [v.value for v in value.elements()] == [1, 2]

    def test_existing_value_passes_through(self):
        value = JSONValue.from_python({"a": 1})
        assert JSONValue.from_python(value) is value

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), object(), {1: "x"}, [set()]])
    def test_unrepresentable_values_rejected(self, bad):
        with pytest.raises(ValueError):
            JSONValue.from_python(bad)


class TestJsonText:
    """Test parsing and serializing JSON text."""

    def test_to_json_is_compact(self):
        value = JSONValue.from_python({"a": [1, "b"]})
        assert value.to_json() == '{"a":[1,"b"]}'

    def test_from_json_rejects_nan_literal(self):
        with pytest.raises(ValueError):
            JSONValue.from_json('{"x": NaN}')

    def test_from_json_rejects_malformed(self):
        with pytest.raises(ValueError):
            JSONValue.from_json('{"x": ')

    def test_unicode_preserved(self):
        value = JSONValue.from_json('{"name": "caf\\u00e9"}')
        assert value.to_json() == '{"name":"café"}'


class TestAccessors:
    """Test accessors on non-matching kinds."""

    def test_get_on_non_object_returns_default(self):
        value = JSONValue.from_python([1])
        assert value.get("x") is None

    def test_items_on_array_is_empty(self):
        assert list(JSONValue.from_python([1]).items()) == []

    def test_elements_on_object_is_empty(self):
        assert list(JSONValue.from_python({"a": 1}).elements()) == []

    def test_null_and_empty_object(self):
        assert JSONValue.null().is_null
        assert JSONValue.empty_object().to_python() == {}

    def test_as_object(self):
        assert as_object(None) == {}
        assert as_object(JSONValue.from_python([1])) == {}
        assert as_object(JSONValue.from_python({"a": 1})) == {"a": 1}

    def test_equality_by_content(self):
        assert JSONValue.from_python({"a": [1]}) == JSONValue.from_json('{"a":[1]}')
