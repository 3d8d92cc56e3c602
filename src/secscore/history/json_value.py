"""Tagged JSON values.

Parsed documents are converted once into ``JsonValue`` nodes so that the
validator and normalizer branch on an explicit ``JsonKind`` instead of
probing Python types all over the place.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from secscore.history.errors import ParseError


class JsonKind(StrEnum):
    OBJECT = "Object"
    ARRAY = "Array"
    NUMBER = "Number"
    STRING = "String"
    OTHER = "Other"


@dataclass(frozen=True)
class JsonValue:
    """One node of a parsed JSON document.

    ``value`` holds ``dict[str, JsonValue]`` for objects, ``tuple[JsonValue, ...]``
    for arrays, ``int | float`` for numbers, ``str`` for strings and
    ``bool | None`` for everything else.
    """

    kind: JsonKind
    value: Any

    @classmethod
    def from_python(cls, raw: Any) -> JsonValue:
        # bool is an int subclass, so it must be checked first
        if raw is None or isinstance(raw, bool):
            return cls(JsonKind.OTHER, raw)
        # inf and nan have no JSON representation
        if isinstance(raw, float) and not math.isfinite(raw):
            return cls(JsonKind.OTHER, raw)
        if isinstance(raw, (int, float)):
            return cls(JsonKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(JsonKind.STRING, raw)
        if isinstance(raw, dict):
            return cls(JsonKind.OBJECT, {str(k): cls.from_python(v) for k, v in raw.items()})
        if isinstance(raw, (list, tuple)):
            return cls(JsonKind.ARRAY, tuple(cls.from_python(item) for item in raw))
        raise TypeError(f"Not a JSON value: {type(raw).__name__}")

    def to_python(self) -> Any:
        if self.kind == JsonKind.OBJECT:
            return {k: v.to_python() for k, v in self.value.items()}
        if self.kind == JsonKind.ARRAY:
            return [item.to_python() for item in self.value]
        return self.value

    def get(self, key: str) -> JsonValue | None:
        """Member lookup; ``None`` when absent or when this is not an object."""
        if self.kind != JsonKind.OBJECT:
            return None
        return self.value.get(key)

    @property
    def is_number(self) -> bool:
        return self.kind == JsonKind.NUMBER


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: {text}")
    return value


def parse_json(text: str) -> JsonValue:
    """Parse JSON text into a tagged tree.

    Raises:
        ParseError: malformed JSON, NaN/Infinity literals, floats that overflow
            to infinity, or nesting too deep.
    """
    try:
        raw = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except (json.JSONDecodeError, ValueError, RecursionError) as exc:
        raise ParseError(f"Invalid JSON: {exc}") from exc
    try:
        return JsonValue.from_python(raw)
    except RecursionError as exc:
        raise ParseError("JSON document nested too deeply") from exc
