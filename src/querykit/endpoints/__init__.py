"""Endpoint declarations for querykit.

- :class:`EndpointDefinition` -- one query or mutation: request builder,
  response transform, and the cache tags it provides or invalidates.
- :class:`EndpointRegistry` -- the name-keyed table the cache store resolves
  endpoints from.
- :func:`query` / :func:`mutation` -- factories for definitions.
- :func:`create_default_registry` -- every endpoint of the shop backend.
"""

from querykit.endpoints.registry import (
    EndpointDefinition,
    EndpointKind,
    EndpointRegistry,
    mutation,
    query,
)
from querykit.endpoints.shop import create_default_registry

__all__ = [
    "EndpointDefinition",
    "EndpointKind",
    "EndpointRegistry",
    "create_default_registry",
    "mutation",
    "query",
]
