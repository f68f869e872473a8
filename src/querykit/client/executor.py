"""Asynchronous request executor -- one HTTP call in, one :class:`Result` out.

This module provides :class:`RequestExecutor`, the leaf of the data-access
layer. It wraps :class:`httpx.AsyncClient`, turns a
:class:`~querykit.models.RequestSpec` into a wire request, attaches the
bearer credential it is handed, and normalises every outcome -- success,
backend error, or transport failure -- into a
:class:`~querykit.client.result.Result`. It has no knowledge of caching or
of how credentials are obtained.

See Also:
    :class:`~querykit.auth.interceptor.AuthInterceptor`, the only caller
    in normal operation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from querykit.client.result import RequestError, Result
from querykit.models import HTTPMethod, RequestConfig, RequestSpec

logger = logging.getLogger(__name__)


class RequestExecutor:
    """Performs backend calls and normalises their outcome.

    Transport errors, and 5xx responses to ``GET`` requests, are retried
    up to ``config.max_retries`` times with exponential backoff (1 s, 2 s,
    4 s, ...). Writes are never retried on a 5xx since the backend may have
    applied them.

    Args:
        base_url: Backend root that every ``RequestSpec.path`` is resolved
            against.
        config: Timeout, SSL verification, and retry settings.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        async with RequestExecutor("http://localhost:8000/api/") as executor:
            result = await executor.execute(RequestSpec(path="products/"))
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._config = config or RequestConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.retry_delay: float = 1.0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> RequestExecutor:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        spec: RequestSpec,
        access_token: Optional[str] = None,
    ) -> Result[Any]:
        """Send *spec* to the backend and normalise the outcome.

        Args:
            spec: The request to send.
            access_token: Bearer credential to attach. Ignored when
                ``spec.authenticated`` is ``False``.

        Returns:
            A successful :class:`Result` holding the decoded JSON body
            (``None`` for an empty body), or a failed one holding a
            :class:`RequestError`. Never raises for request failures.
        """
        headers = {"Accept": "application/json"}
        if access_token and spec.authenticated:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await self._send_with_retry(spec, headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("%s %s failed: %s", spec.method.value, spec.path, exc)
            return Result.failure(RequestError(status=None, detail=str(exc) or type(exc).__name__))
        except (TypeError, ValueError) as exc:
            # httpx could not encode the body or params
            logger.debug("%s %s not sent: %s", spec.method.value, spec.path, exc)
            return Result.failure(RequestError(status=None, detail=f"Could not encode request: {exc}"))

        logger.debug("%s %s -> %s", spec.method.value, spec.path, response.status_code)
        body = _decode_body(response)
        if response.is_success:
            return Result.success(body)
        return Result.failure(
            RequestError(
                status=response.status_code,
                detail=_extract_detail(body, response),
                body=body,
            )
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send_with_retry(
        self,
        spec: RequestSpec,
        headers: dict[str, str],
    ) -> httpx.Response:
        """Send the request, retrying transport errors and GET 5xx responses.

        Raises:
            httpx.HTTPError: When the last attempt still fails at the
                transport level.
        """
        client = self._ensure_client()
        max_retries = self._config.max_retries

        kwargs: dict[str, Any] = {
            "method": spec.method.value,
            "url": spec.path.lstrip("/"),
            "headers": headers,
        }
        if spec.params:
            kwargs["params"] = {k: v for k, v in spec.params.items() if v is not None}
        if spec.body is not None:
            kwargs["json"] = spec.body

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(**kwargs)
            except httpx.TransportError as exc:
                if attempt >= max_retries:
                    raise
                delay = self.retry_delay * 2 ** attempt
                logger.debug(
                    "Connection error: %s, retrying in %ss (attempt %d/%d)",
                    exc, delay, attempt + 1, max_retries,
                )
                await asyncio.sleep(delay)
                continue

            if (
                response.status_code >= 500
                and spec.method == HTTPMethod.GET
                and attempt < max_retries
            ):
                delay = self.retry_delay * 2 ** attempt
                logger.debug(
                    "Server error %d, retrying in %ss (attempt %d/%d)",
                    response.status_code, delay, attempt + 1, max_retries,
                )
                await asyncio.sleep(delay)
                continue

            return response

        raise AssertionError("unreachable")  # pragma: no cover


def _decode_body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to text; empty bodies decode to ``None``."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _extract_detail(body: Any, response: httpx.Response) -> Optional[str]:
    """Pull a human-readable message out of an error body.

    Understands ``{"detail": ...}``, ``{"error": ...}``, and
    ``{"message": ...}`` bodies as well as DRF field-validation bodies such
    as ``{"username": ["This field is required."]}``.
    """
    if isinstance(body, dict):
        for key in ("detail", "error", "message"):
            value = body.get(key)
            if value:
                return str(value)
        for field, messages in body.items():
            if isinstance(messages, list) and messages:
                return f"{field}: {messages[0]}"
            if isinstance(messages, str):
                return f"{field}: {messages}"
        return None
    if isinstance(body, list) and body:
        return str(body[0])
    if isinstance(body, str) and body:
        return body[:200]
    return response.reason_phrase or None
