"""Process exit codes of the ``querykit`` CLI.

Each :class:`~querykit.exceptions.QuerykitError` subclass carries one of
these, and :meth:`~querykit.client.result.RequestError.to_exception` picks
the subclass from the HTTP status, so scripts can branch on ``$?``::

    querykit query get_orders || case $? in
        3) querykit login "$USER" ;;
        6) echo "backend unreachable" ;;
    esac
"""

EXIT_GENERIC_FAILURE = 1
"""Unclassified failure, including invalid configuration files."""

EXIT_INVALID_USAGE = 2
"""Bad arguments: unknown endpoint, wrong endpoint kind, args the builder rejects."""

EXIT_AUTH_FAILURE = 3
"""401/403 that survived a refresh attempt, or no session at all."""

EXIT_NOT_FOUND = 4
"""HTTP 404."""

EXIT_SERVER_ERROR = 5
"""HTTP 5xx."""

EXIT_CONNECTION_ERROR = 6
"""No response: connection refused, DNS failure, timeout."""

EXIT_CLIENT_ERROR = 7
"""Any other 4xx, typically a validation error on a write."""
