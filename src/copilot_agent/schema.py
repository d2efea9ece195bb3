"""
Tool input-schema normalization.

Providers reject a whole request when a single tool schema falls outside the
JSON Schema 2020-12 subset they accept, so every schema passes through
`normalize_schema` before it reaches an adapter. The function never raises:
anything it cannot repair is dropped or replaced with a default.

Example
-------
>>> normalize_schema({
...   "type": "object",
...   "nullable": True,
...   "$schema": "http://json-schema.org/draft-07/schema#",
...   "properties": {"q": {"type": "text", "pattern": "[a-z"}},
...   "required": ["q", ""],
... })
{'type': 'object', 'properties': {'q': {'type': 'string'}}, 'required': ['q']}
"""

from __future__ import annotations

import logging
import re
from typing import Any, Final

__all__ = ["ALLOWED_KEYS", "PRIMITIVE_TYPES", "normalize_schema", "repair_pattern"]

_logger = logging.getLogger(__name__)

PRIMITIVE_TYPES: Final[frozenset[str]] = frozenset(
    {"string", "number", "integer", "boolean", "object", "array", "null"}
)

ALLOWED_KEYS: Final[frozenset[str]] = frozenset(
    {
        "type",
        "properties",
        "required",
        "items",
        "description",
        "enum",
        "const",
        "default",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "multipleOf",
        "minLength",
        "maxLength",
        "pattern",
        "format",
        "minItems",
        "maxItems",
        "uniqueItems",
        "additionalProperties",
        "anyOf",
        "oneOf",
        "allOf",
        "not",
        "$ref",
        "title",
    }
)

_DRAFT_07_KEYS: Final = frozenset({"$schema", "prefixItems", "additionalItems", "definitions"})
_COMBINATORS: Final = ("anyOf", "oneOf", "allOf")
# Keys whose empty value is meaningful and must survive the final pass.
_KEEP_EMPTY: Final = frozenset({"properties", "default"})

# A backslash that does not start a recognised escape sequence.
_LONE_BACKSLASH = re.compile(r"\\(?![\\/bfnrtdDsSwWAZzBuxv.^$*+?()\[\]{}|\-'\"0-9])")


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


def _normalize_type(value: Any) -> Any:
    if isinstance(value, str):
        if value == "":
            _logger.warning("Empty string schema type, defaulting to object")
            return "object"
        if value not in PRIMITIVE_TYPES:
            _logger.warning("Invalid schema type %r, defaulting to string", value)
            return "string"
        return value
    if isinstance(value, list):
        # Union types collapse to the first concrete member.
        names = [t for t in value if isinstance(t, str) and t in PRIMITIVE_TYPES]
        concrete = [t for t in names if t != "null"]
        if concrete:
            return concrete[0]
        return names[0] if names else "string"
    _logger.warning("Unsupported schema type value %r, defaulting to string", value)
    return "string"


def _is_valid_pattern(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except (re.error, OverflowError):
        return False
    return True


def repair_pattern(pattern: Any) -> str | None:
    """Return *pattern* if it compiles, an escaped repair if that compiles, else None."""
    if not isinstance(pattern, str):
        return None
    if _is_valid_pattern(pattern):
        return pattern
    fixed = _LONE_BACKSLASH.sub(r"\\\\", pattern)
    if fixed != pattern and _is_valid_pattern(fixed):
        _logger.warning("Repaired invalid regex pattern", extra={"pattern": pattern})
        return fixed
    _logger.warning("Dropping invalid regex pattern", extra={"pattern": pattern})
    return None


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (dict, list)) and len(value) == 0


def _clean(schema: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in schema.items():
        if key in ALLOWED_KEYS:
            cleaned[key] = value
        elif key in _DRAFT_07_KEYS:
            _logger.warning("Removing draft-07 property from schema", extra={"property": key})

    cleaned["type"] = _normalize_type(cleaned["type"]) if "type" in cleaned else "object"

    properties = cleaned.get("properties")
    if isinstance(properties, dict):
        cleaned["properties"] = {
            str(name): _clean_nested(sub) for name, sub in properties.items()
        }
    elif "properties" in cleaned:
        del cleaned["properties"]

    if "items" in cleaned:
        items = cleaned["items"]
        if cleaned["type"] != "array":
            del cleaned["items"]
        elif isinstance(items, list):
            cleaned["items"] = [_clean_nested(item) for item in items]
        else:
            cleaned["items"] = _clean_nested(items)

    if "required" in cleaned:
        required = cleaned["required"]
        if isinstance(required, list):
            kept = [r for r in dict.fromkeys(r for r in required if isinstance(r, str)) if r]
            if kept:
                cleaned["required"] = kept
            else:
                del cleaned["required"]
        else:
            del cleaned["required"]

    for key in _COMBINATORS:
        if key in cleaned:
            if isinstance(cleaned[key], list):
                cleaned[key] = [_clean_nested(sub) for sub in cleaned[key]]
            else:
                del cleaned[key]

    if "not" in cleaned:
        cleaned["not"] = _clean_nested(cleaned["not"])

    additional = cleaned.get("additionalProperties")
    if isinstance(additional, dict) and additional:
        cleaned["additionalProperties"] = _clean_nested(cleaned["additionalProperties"])

    if "pattern" in cleaned:
        pattern = repair_pattern(cleaned["pattern"])
        if pattern is None:
            del cleaned["pattern"]
        else:
            cleaned["pattern"] = pattern

    for key in list(cleaned):
        value = cleaned[key]
        if key == "default":
            if value is None:
                del cleaned[key]
        elif key in _KEEP_EMPTY:
            continue
        elif _is_empty(value):
            del cleaned[key]

    return cleaned


def _clean_nested(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        # Bare values such as `true` or a type name are not usable sub-schemas.
        if isinstance(value, str) and value in PRIMITIVE_TYPES:
            return {"type": value}
        return {"type": "string"}
    return _clean(value)


def normalize_schema(raw: Any) -> dict[str, Any]:
    """
    Sanitize an arbitrary tool parameter schema into the provider-accepted subset.

    Always returns a new dict whose ``type`` is one of the seven primitive
    type names. Safe to call on its own output.
    """
    if not isinstance(raw, dict) or not raw:
        return _empty_schema()
    try:
        return _clean(raw)
    except RecursionError:
        _logger.warning("Schema nesting too deep, replacing with an empty object schema")
        return _empty_schema()
