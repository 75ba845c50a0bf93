"""
Typed value codec.

Values are stored in a single JSONB column as {"value": ..., "type": ...}.
The type tag records the concrete scalar kind so that sized integers and
floats come back as the same numpy type they were written as.
"""

import json
from enum import Enum
from typing import Any, Dict, Mapping, Union

import numpy as np

from offline_store.errors import ValueDecodeError


class ValueType(Enum):
    """Closed set of scalar kinds with an exact round trip."""

    INT = "int"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    BOOL = "bool"


_NUMPY_TAGS = {
    np.int8: ValueType.INT8,
    np.int16: ValueType.INT16,
    np.int32: ValueType.INT32,
    np.int64: ValueType.INT64,
    np.float32: ValueType.FLOAT32,
    np.float64: ValueType.FLOAT64,
}

_INTEGER_CASTS = {
    ValueType.INT: int,
    ValueType.INT8: np.int8,
    ValueType.INT16: np.int16,
    ValueType.INT32: np.int32,
    ValueType.INT64: np.int64,
}


def type_tag(value: Any) -> str:
    """Return the wire tag for a value's concrete type."""
    # bool before int: bool is an int subclass
    if isinstance(value, (bool, np.bool_)):
        return ValueType.BOOL.value
    for np_type, tag in _NUMPY_TAGS.items():
        if type(value) is np_type:
            return tag.value
    if isinstance(value, int):
        return ValueType.INT.value
    if isinstance(value, float):
        return ValueType.FLOAT64.value
    if isinstance(value, str):
        return ValueType.STRING.value
    return type(value).__name__


def to_document(value: Any) -> Dict[str, Any]:
    """Build the envelope stored in the value column."""
    tag = type_tag(value)
    raw = value.item() if isinstance(value, np.generic) else value
    if tag == ValueType.STRING.value:
        raw = str(raw)
    return {"value": raw, "type": tag}


def encode(value: Any) -> str:
    return json.dumps(to_document(value))


def _load(document: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(document, (str, bytes, bytearray, memoryview)):
        if isinstance(document, memoryview):
            document = document.tobytes()
        try:
            document = json.loads(document)
        except ValueError as e:
            raise ValueDecodeError(f"value document is not valid JSON: {e}") from e
    if not isinstance(document, Mapping):
        raise ValueDecodeError(f"value document must be an object, got {type(document).__name__}")
    if "value" not in document or "type" not in document:
        raise ValueDecodeError("value document must contain 'value' and 'type'")
    if not isinstance(document["type"], str):
        raise ValueDecodeError("value document 'type' must be a string")
    return document


def cast_value(raw: Any, tag: str) -> Any:
    """Narrow a generically decoded JSON value back to its tagged type."""
    try:
        kind = ValueType(tag)
    except ValueError:
        return raw

    if kind in _INTEGER_CASTS:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValueDecodeError(f"expected a number for type {tag}, got {raw!r}")
        # Float encodings are truncated toward zero.
        number = int(raw)
        cast = _INTEGER_CASTS[kind]
        if cast is not int:
            info = np.iinfo(cast)
            if not info.min <= number <= info.max:
                raise ValueDecodeError(f"{raw!r} is out of range for type {tag}")
        return cast(number)
    if kind is ValueType.FLOAT32:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValueDecodeError(f"expected a number for type {tag}, got {raw!r}")
        return np.float32(raw)
    if kind is ValueType.FLOAT64:
        return raw
    if kind is ValueType.STRING:
        if not isinstance(raw, str):
            raise ValueDecodeError(f"expected a string, got {raw!r}")
        return raw
    if not isinstance(raw, bool):
        raise ValueDecodeError(f"expected a bool, got {raw!r}")
    return raw


def decode(document: Union[str, bytes, Mapping[str, Any], None]) -> Any:
    """
    Restore a value from its stored document.

    SQL NULL (None) stays None, which is how a missing feature value in
    a training set row is reported.
    """
    if document is None:
        return None
    doc = _load(document)
    return cast_value(doc["value"], doc["type"])
