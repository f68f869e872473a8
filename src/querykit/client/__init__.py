"""HTTP execution layer for querykit.

Classes:
    :class:`RequestExecutor` -- performs one backend call through
    :class:`httpx.AsyncClient` and normalises the outcome.
    :class:`Result` / :class:`RequestError` -- the values every call
    resolves to; failures are never raised past this layer.
"""

from querykit.client.executor import RequestExecutor
from querykit.client.result import RequestError, Result

__all__ = ["RequestExecutor", "RequestError", "Result"]
