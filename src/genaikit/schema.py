"""
Python type to Gemini ``Schema`` conversion.

Gemini accepts an OpenAPI-flavoured subset of JSON Schema: no ``$ref``, no
``title``/``default``, and ``nullable`` instead of a ``null`` branch. Schemas
are produced with pydantic and then rewritten into that subset.
"""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

_DROPPED_KEYS = frozenset(
    {"title", "default", "$schema", "$defs", "additionalProperties", "examples"}
)


def to_gemini_schema(json_schema: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a pydantic JSON schema into the subset the Gemini API accepts.

    Raises:
        ValueError: If the schema is recursive.
    """
    definitions = json_schema.get("$defs", {})
    return _convert(json_schema, definitions, ())


def _convert(
    node: dict[str, Any],
    definitions: dict[str, Any],
    seen: tuple[str, ...],
) -> dict[str, Any]:
    if "$ref" in node:
        name = node["$ref"].rsplit("/", 1)[-1]
        if name in seen:
            raise ValueError(f"Recursive schema is not supported: {name}")
        merged = {**definitions[name], **{k: v for k, v in node.items() if k != "$ref"}}
        return _convert(merged, definitions, (*seen, name))

    any_of = node.get("anyOf")
    if any_of:
        branches = [branch for branch in any_of if branch.get("type") != "null"]
        if len(branches) == 1 and len(branches) < len(any_of):
            result = _convert(branches[0], definitions, seen)
            result["nullable"] = True
            if "description" in node:
                result.setdefault("description", node["description"])
            return result

    result: dict[str, Any] = {}
    for key, value in node.items():
        if key in _DROPPED_KEYS:
            continue
        if key == "properties":
            result[key] = {
                name: _convert(schema, definitions, seen) for name, schema in value.items()
            }
        elif key == "items":
            result[key] = _convert(value, definitions, seen)
        elif key == "anyOf":
            result[key] = [_convert(branch, definitions, seen) for branch in value]
        elif key == "const":
            result["enum"] = [value]
        else:
            result[key] = value
    return result


def schema_for(python_type: Any) -> dict[str, Any]:
    """Return the Gemini schema describing ``python_type``."""
    return to_gemini_schema(TypeAdapter(python_type).json_schema())
