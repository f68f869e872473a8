"""Deterministic cache keys.

A cache key is ``"<endpoint>(<canonical JSON of args>)"``. Canonical JSON
sorts object keys and uses compact separators, so two structurally equal
argument objects always produce the same key no matter how or in which
order they were built.

Mapping keys are compared by their JSON text, as they would be sent over
the wire: ``{1: "a"}`` and ``{"1": "a"}`` share a key, and mixed int and
str keys are allowed.
"""

from __future__ import annotations

import dataclasses
import enum
import json
from typing import Any

from pydantic import BaseModel


def _to_plain(value: Any) -> Any:
    """Convert *value* into JSON-serialisable builtins."""
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump(mode="json"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical(dataclasses.asdict(value))
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, tuple):
        return list(value)
    return str(value)


def _key(key: Any) -> str:
    if isinstance(key, enum.Enum):
        key = key.value
    if isinstance(key, str):
        return key
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    return str(_to_plain(key))


def _canonical(value: Any) -> Any:
    """Give every mapping in *value* string keys."""
    if isinstance(value, dict):
        return {_key(key): _canonical(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    return value


def serialize_args(args: Any) -> str:
    """Serialise endpoint arguments canonically."""
    return json.dumps(_canonical(args), sort_keys=True, separators=(",", ":"), default=_to_plain)


def make_cache_key(endpoint_name: str, args: Any) -> str:
    """Build the cache key for *endpoint_name* called with *args*."""
    return f"{endpoint_name}({serialize_args(args)})"
