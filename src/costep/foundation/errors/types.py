"""Type aliases shared by error payloads and structured log entries."""

from __future__ import annotations

from typing import Any, Union

# Any for recursive slots to keep Pydantic schema resolution flat
JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]

__all__ = ["JsonPrimitive", "JsonValue", "JsonDict"]
