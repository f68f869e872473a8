"""Value types returned by every backend call.

The data-access core never lets a failed request escape as an exception.
Instead each call yields a :class:`Result` carrying either data or a
:class:`RequestError` normalised from whatever shape the transport or the
backend produced. UI code branches on :attr:`Result.ok`; edge code such as
the CLI can call :meth:`Result.unwrap` to turn a failure into the matching
:class:`~querykit.exceptions.QuerykitError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from querykit.exceptions import (
    AuthError,
    ClientError,
    ConnectionError_,
    NotFoundError,
    QuerykitError,
    ServerError,
)

T = TypeVar("T")

UNAUTHORIZED = 401


@dataclass(frozen=True)
class RequestError:
    """A failed request.

    Attributes:
        status: The HTTP status code, or ``None`` when no response was
            received (connection refused, timeout, DNS failure).
        detail: The backend's human-readable message (``detail`` or
            ``error`` field), or the transport error text.
        body: The decoded error body, kept for callers that need field
            level validation messages.
    """

    status: Optional[int] = None
    detail: Optional[str] = None
    body: Any = None

    @property
    def is_unauthorized(self) -> bool:
        return self.status == UNAUTHORIZED

    @property
    def is_transport(self) -> bool:
        return self.status is None

    def __str__(self) -> str:
        prefix = "Transport error" if self.status is None else f"HTTP {self.status}"
        return f"{prefix}: {self.detail}" if self.detail else prefix

    def to_exception(self) -> QuerykitError:
        """Map this error to the exception class matching its status."""
        message = str(self)
        if self.status is None:
            return ConnectionError_(message)
        if self.status in (401, 403):
            return AuthError(message)
        if self.status == 404:
            return NotFoundError(message)
        if self.status >= 500:
            return ServerError(message)
        return ClientError(message)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either the data of a successful call or its :class:`RequestError`."""

    data: Optional[T] = None
    error: Optional[RequestError] = None

    @classmethod
    def success(cls, data: Optional[T]) -> Result[T]:
        return cls(data=data)

    @classmethod
    def failure(cls, error: RequestError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_unauthorized(self) -> bool:
        return self.error is not None and self.error.is_unauthorized

    def unwrap(self) -> Optional[T]:
        """Return the data, or raise the error as a :class:`~querykit.exceptions.QuerykitError`."""
        if self.error is not None:
            raise self.error.to_exception()
        return self.data
