"""Exceptions raised by querykit.

Request failures are values inside the library (see
:class:`~querykit.client.result.Result`). Exceptions are reserved for
mistakes in the calling code or the configuration, and for the CLI edge,
where :meth:`~querykit.client.result.Result.unwrap` turns a failed result
into one of the classes below::

    QuerykitError              1
    +-- ConfigError            1
    +-- InvalidUsageError      2
    |   +-- EndpointNotFoundError
    +-- AuthError              3
    +-- NotFoundError          4
    +-- ServerError            5
    +-- ConnectionError_       6
    +-- ClientError            7

The number is the class's ``exit_code`` (see :mod:`querykit.exit_codes`).
"""

from querykit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CLIENT_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
)


class QuerykitError(Exception):
    """Root of the hierarchy; ``str(exc)`` is what the CLI prints."""

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(QuerykitError):
    """Unreadable settings file, or an endpoint table defining a name twice."""


class InvalidUsageError(QuerykitError):
    """An endpoint used the wrong way: a query run as a mutation, or bad args."""

    exit_code = EXIT_INVALID_USAGE


class EndpointNotFoundError(InvalidUsageError):
    """No endpoint with the requested name is registered."""


class AuthError(QuerykitError):
    """The backend answered 401/403 and the session could not be refreshed."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(QuerykitError):
    exit_code = EXIT_NOT_FOUND


class ServerError(QuerykitError):
    exit_code = EXIT_SERVER_ERROR


class ClientError(QuerykitError):
    """A 4xx other than 401, 403 and 404, usually field validation on a write."""

    exit_code = EXIT_CLIENT_ERROR


class ConnectionError_(QuerykitError):
    """No response at all. The underscore keeps the builtin ``ConnectionError`` visible."""

    exit_code = EXIT_CONNECTION_ERROR
