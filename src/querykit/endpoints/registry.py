"""Endpoint definitions and the registry that holds them.

An :class:`EndpointDefinition` declares one backend operation: how to turn
arguments into a :class:`~querykit.models.RequestSpec`, how to transform
the raw response, and which cache tags it provides (queries) or invalidates
(mutations). Definitions are immutable and registered once at startup with
an :class:`EndpointRegistry`, which the cache store consults by name.

Request builders must be pure functions of their arguments -- cache keys
are derived from the arguments alone, so hidden state in a builder would
make two equal keys describe different requests.

See Also:
    :mod:`querykit.endpoints.shop` for the table of the shop backend.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from querykit.exceptions import ConfigError, EndpointNotFoundError, InvalidUsageError
from querykit.models import RequestSpec
from querykit.tags import Tag, TagLike, coerce_tags

A = TypeVar("A")
D = TypeVar("D")

ProvidesSpec = Union[Sequence[TagLike], Callable[[Any, Any], Iterable[TagLike]]]
InvalidatesSpec = Union[Sequence[TagLike], Callable[[Any], Iterable[TagLike]]]


class EndpointKind(str, enum.Enum):
    """Whether an endpoint reads (cached) or writes (invalidates)."""

    QUERY = "query"
    MUTATION = "mutation"


def _identity(raw: Any) -> Any:
    return raw


@dataclass(frozen=True)
class EndpointDefinition(Generic[A, D]):
    """A named query or mutation against the backend.

    Attributes:
        name: Unique identifier, also the prefix of the cache key.
        kind: :attr:`EndpointKind.QUERY` or :attr:`EndpointKind.MUTATION`.
        build_request: Pure function from args to the wire request.
        transform: Maps the decoded response body to the endpoint's data.
        provides: Tags attached to a query's cache entry -- either a
            static sequence or ``callable(data, args)`` evaluated on each
            successful response.
        invalidates: Tags a successful mutation invalidates -- a static
            sequence or ``callable(args)`` for per-id invalidation.
        description: One-line summary shown by ``querykit endpoints``.
    """

    name: str
    kind: EndpointKind
    build_request: Callable[[A], RequestSpec]
    transform: Callable[[Any], D] = _identity
    provides: ProvidesSpec = ()
    invalidates: InvalidatesSpec = ()
    description: str = ""

    @property
    def is_query(self) -> bool:
        return self.kind == EndpointKind.QUERY

    def provided_tags(self, data: Optional[D], args: A) -> frozenset[Tag]:
        """Tags for a cache entry holding *data*.

        Response-derived tags are only computed for successful results;
        pass ``data=None`` for a failed fetch to get the static tags only.
        """
        if callable(self.provides):
            if data is None:
                return frozenset()
            return coerce_tags(self.provides(data, args))
        return coerce_tags(self.provides)

    def invalidated_tags(self, args: A) -> frozenset[Tag]:
        if callable(self.invalidates):
            return coerce_tags(self.invalidates(args))
        return coerce_tags(self.invalidates)


def query(
    name: str,
    build_request: Callable[[A], RequestSpec],
    *,
    transform: Callable[[Any], D] = _identity,
    provides: ProvidesSpec = (),
    description: str = "",
) -> EndpointDefinition[A, D]:
    """Declare a cached read endpoint."""
    return EndpointDefinition(
        name=name,
        kind=EndpointKind.QUERY,
        build_request=build_request,
        transform=transform,
        provides=provides,
        description=description,
    )


def mutation(
    name: str,
    build_request: Callable[[A], RequestSpec],
    *,
    transform: Callable[[Any], D] = _identity,
    invalidates: InvalidatesSpec = (),
    description: str = "",
) -> EndpointDefinition[A, D]:
    """Declare a write endpoint."""
    return EndpointDefinition(
        name=name,
        kind=EndpointKind.MUTATION,
        build_request=build_request,
        transform=transform,
        invalidates=invalidates,
        description=description,
    )


class EndpointRegistry:
    """Name-keyed table of endpoint definitions.

    Example::

        registry = EndpointRegistry()
        registry.define(query("get_orders", lambda _: RequestSpec(path="orders/"),
                              provides=["Orders"]))
        spec = registry.request_for("get_orders", None)
    """

    def __init__(self) -> None:
        self._endpoints: dict[str, EndpointDefinition[Any, Any]] = {}

    def define(self, endpoint: EndpointDefinition[Any, Any]) -> EndpointDefinition[Any, Any]:
        """Register *endpoint*.

        Raises:
            ConfigError: If an endpoint with the same name already exists.
        """
        if endpoint.name in self._endpoints:
            raise ConfigError(f"Endpoint '{endpoint.name}' is already defined")
        self._endpoints[endpoint.name] = endpoint
        return endpoint

    def define_all(self, endpoints: Iterable[EndpointDefinition[Any, Any]]) -> None:
        for endpoint in endpoints:
            self.define(endpoint)

    def resolve(
        self,
        name: str,
        args: Any = None,
        *,
        kind: Optional[EndpointKind] = None,
        validate: bool = False,
    ) -> EndpointDefinition[Any, Any]:
        """Look up an endpoint by name.

        Args:
            name: The endpoint name.
            args: The arguments the caller is about to use; only inspected
                when *validate* is set.
            kind: When given, the endpoint must be of this kind.
            validate: Build the request from *args* once and reject the
                call if that fails.

        Raises:
            EndpointNotFoundError: If no endpoint is registered as *name*.
            InvalidUsageError: If the endpoint is not of *kind*, or *args*
                do not build a request.
        """
        endpoint = self._endpoints.get(name)
        if endpoint is None:
            available = ", ".join(sorted(self._endpoints)) or "(none)"
            raise EndpointNotFoundError(
                f"No endpoint named '{name}'. Available endpoints: {available}"
            )
        if kind is not None and endpoint.kind != kind:
            raise InvalidUsageError(
                f"Endpoint '{name}' is a {endpoint.kind.value}, not a {kind.value}"
            )
        if validate:
            try:
                endpoint.build_request(args)
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidUsageError(f"Invalid arguments for '{name}': {exc!r}") from exc
        return endpoint

    def request_for(self, name: str, args: Any = None) -> RequestSpec:
        """Build the wire request for calling *name* with *args*."""
        return self.resolve(name).build_request(args)

    def names(self, kind: Optional[EndpointKind] = None) -> list[str]:
        return sorted(
            name for name, endpoint in self._endpoints.items()
            if kind is None or endpoint.kind == kind
        )

    def __contains__(self, name: object) -> bool:
        return name in self._endpoints

    def __iter__(self) -> Iterator[EndpointDefinition[Any, Any]]:
        return iter(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)
