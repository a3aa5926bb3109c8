"""
Template-language helpers: intrinsic detection, string concatenation, and
token-aware JSON rendering.
"""

from __future__ import annotations

import json
from typing import Any

from .errors import TokenResolutionError


def is_intrinsic(value: Any) -> bool:
    """Return True for ``{"Ref": ...}``, ``{"Condition": ...}`` and ``{"Fn::*": ...}``."""
    if not isinstance(value, dict) or len(value) != 1:
        return False
    key = next(iter(value))
    return key in ("Ref", "Condition") or key.startswith("Fn::")


def _is_join(value: Any, delimiter: str) -> bool:
    return (
        is_intrinsic(value)
        and "Fn::Join" in value
        and isinstance(value["Fn::Join"], list)
        and len(value["Fn::Join"]) == 2
        and value["Fn::Join"][0] == delimiter
        and isinstance(value["Fn::Join"][1], list)
    )


def number_to_string(value: float | int) -> str:
    """Render a number the way it appears in a template string."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def minimal_join(delimiter: str, values: list[Any]) -> list[Any]:
    """
    Flatten nested joins with the same delimiter and merge adjacent literals.

    Args:
        delimiter: Join delimiter
        values: Resolved values

    Returns:
        The shortest equivalent list of join parts
    """
    flattened: list[Any] = []
    for value in values:
        if _is_join(value, delimiter):
            flattened.extend(minimal_join(delimiter, value["Fn::Join"][1]))
        else:
            flattened.append(value)

    merged: list[Any] = []
    for value in flattened:
        if isinstance(value, str) and merged and isinstance(merged[-1], str):
            merged[-1] = merged[-1] + delimiter + value
        else:
            merged.append(value)
    return merged


def concat(parts: list[Any]) -> Any:
    """
    Concatenate resolved string fragments.

    Literal strings are merged; anything else is kept as a deploy-time value
    inside an ``Fn::Join`` with an empty delimiter.

    Raises:
        TokenResolutionError: If a fragment resolved to a list
    """
    normalized: list[Any] = []
    for part in parts:
        if part is None:
            continue
        if isinstance(part, bool):
            normalized.append("true" if part else "false")
        elif isinstance(part, (int, float)):
            normalized.append(number_to_string(part))
        elif isinstance(part, list):
            raise TokenResolutionError(
                f"Found a list where a string was expected; a list token cannot be "
                f"concatenated into a string: {json.dumps(part)}"
            )
        elif isinstance(part, str) and not part:
            continue
        else:
            normalized.append(part)

    joined = minimal_join("", normalized)
    if not joined:
        return ""
    if len(joined) == 1:
        return joined[0]
    return {"Fn::Join": ["", joined]}


# =============================================================================
# Token-aware JSON
# =============================================================================


def _json_fragments(value: Any, parts: list[Any]) -> None:
    if is_intrinsic(value):
        parts.append('"')
        if _is_join(value, ""):
            for piece in value["Fn::Join"][1]:
                if isinstance(piece, str):
                    parts.append(json.dumps(piece)[1:-1])
                else:
                    parts.append(piece)
        else:
            parts.append(value)
        parts.append('"')
    elif isinstance(value, dict):
        parts.append("{")
        for index, (key, item) in enumerate(value.items()):
            if index:
                parts.append(",")
            parts.append(json.dumps(key) + ":")
            _json_fragments(item, parts)
        parts.append("}")
    elif isinstance(value, list):
        parts.append("[")
        for index, item in enumerate(value):
            if index:
                parts.append(",")
            _json_fragments(item, parts)
        parts.append("]")
    else:
        parts.append(json.dumps(value))


def _contains_intrinsic(value: Any) -> bool:
    if is_intrinsic(value):
        return True
    if isinstance(value, dict):
        return any(_contains_intrinsic(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_intrinsic(v) for v in value)
    return False


def to_json(resolved: Any, space: int | None = None) -> Any:
    """
    Render an already-resolved value as JSON.

    Deploy-time values end up inside an ``Fn::Join`` that assembles the JSON
    text during deployment. Indentation only applies when the result is a
    plain string.
    """
    if not _contains_intrinsic(resolved):
        return json.dumps(resolved, indent=space)
    parts: list[Any] = []
    _json_fragments(resolved, parts)
    return concat(parts)
