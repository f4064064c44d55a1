"""Expand a camera's `output` field map into a strict `response_format` block.

A camera may declare the shape of the answer it wants back::

    output:
      person_present: boolean
      count: {type: integer, description: "number of people"}
      vehicles:
        type: array
        items:
          type: object
          properties:
            color: string
            plate: string

Each value is either a bare JSON type name or a JSON-schema fragment. The
expansion closes every object node (`additionalProperties: false`) and marks
all of its declared keys as required, which strict structured-output endpoints
demand.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from .schema import ConfigError

_JSON_TYPES = {"string", "number", "integer", "boolean", "object", "array", "null"}
_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")


def build_response_format(camera: str, output: Any) -> dict[str, Any]:
    if not isinstance(output, dict) or not output:
        raise ConfigError(f"cameras.{camera}.output must be a non-empty mapping")
    schema = _close_object(
        {"type": "object", "properties": output}, f"cameras.{camera}.output"
    )
    return {
        "type": "json_schema",
        "json_schema": {
            "name": schema_name(camera),
            "strict": True,
            "schema": schema,
        },
    }


def schema_name(camera: str) -> str:
    return _NAME_RE.sub("_", f"{camera}_response")[:64]


def _expand_node(node: Any, path: str) -> dict[str, Any]:
    if isinstance(node, str):
        node = {"type": node}
    if not isinstance(node, dict):
        raise ConfigError(f"{path} must be a type name or a mapping")
    node = copy.deepcopy(node)
    node_type = node.get("type")
    if node_type is None and "properties" in node:
        node_type = node["type"] = "object"
    if isinstance(node_type, list):
        bad = [t for t in node_type if t not in _JSON_TYPES]
    else:
        bad = [] if node_type in _JSON_TYPES else [node_type]
    if bad:
        raise ConfigError(f"{path}.type has unsupported value {bad[0]!r}")
    if node_type == "object" or (
        isinstance(node_type, list) and "object" in node_type
    ):
        return _close_object(node, path)
    if node_type == "array" or (isinstance(node_type, list) and "array" in node_type):
        if "items" not in node:
            raise ConfigError(f"{path}.items is required for array fields")
        node["items"] = _expand_node(node["items"], f"{path}.items")
    return node


def _close_object(node: dict[str, Any], path: str) -> dict[str, Any]:
    props = node.get("properties") or {}
    if not isinstance(props, dict):
        raise ConfigError(f"{path}.properties must be a mapping")
    node["properties"] = {
        str(key): _expand_node(value, f"{path}.{key}") for key, value in props.items()
    }
    node["required"] = list(node["properties"].keys())
    node["additionalProperties"] = False
    return node


__all__ = ["build_response_format", "schema_name"]
