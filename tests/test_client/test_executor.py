"""Tests for the request executor and the Result value types."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from querykit.client import RequestError, RequestExecutor, Result
from querykit.exceptions import (
    AuthError,
    ClientError,
    ConnectionError_,
    NotFoundError,
    ServerError,
)
from querykit.models import HTTPMethod, RequestConfig, RequestSpec


BASE_URL = "http://shop.test/api/"


# ---------------------------------------------------------------------------
# Successful calls
# ---------------------------------------------------------------------------


class TestExecuteSuccess:
    async def test_decodes_json_body(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/", json={"count": 1, "results": [{"id": 1}]})

        result = await executor.execute(RequestSpec(path="products/"))

        assert result.ok
        assert result.data == {"count": 1, "results": [{"id": 1}]}

    async def test_leading_slash_is_relative_to_base_url(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/", json=[])

        await executor.execute(RequestSpec(path="/products/"))

        assert str(backend.requests[0].url) == BASE_URL + "products/"

    async def test_empty_body_decodes_to_none(self, backend, executor: RequestExecutor) -> None:
        backend.on("DELETE", "admin/users/3/", lambda request: httpx.Response(204))

        result = await executor.execute(RequestSpec(method=HTTPMethod.DELETE, path="admin/users/3/"))

        assert result.ok
        assert result.data is None

    async def test_params_drop_none_values(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/search/", json=[])

        await executor.execute(
            RequestSpec(path="products/search/", params={"q": "tea", "category": None, "page": 1})
        )

        params = dict(backend.requests[0].url.params)
        assert params == {"q": "tea", "page": "1"}

    async def test_body_sent_as_json(self, backend, executor: RequestExecutor) -> None:
        backend.on("POST", "orders/checkout/", json={"id": 9})

        await executor.execute(
            RequestSpec(method=HTTPMethod.POST, path="orders/checkout/", body={"cart_items": [1, 2]})
        )

        request = backend.requests[0]
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"cart_items": [1, 2]}


class TestBearerHeader:
    async def test_attached_when_token_given(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "orders/orders-list/", json=[])

        await executor.execute(RequestSpec(path="orders/orders-list/"), "tok")

        assert backend.requests[0].headers["Authorization"] == "Bearer tok"

    async def test_absent_without_token(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/", json=[])

        await executor.execute(RequestSpec(path="products/"))

        assert "Authorization" not in backend.requests[0].headers

    async def test_never_sent_for_unauthenticated_spec(self, backend, executor: RequestExecutor) -> None:
        backend.on("POST", "users/login/", json={})

        await executor.execute(
            RequestSpec(method=HTTPMethod.POST, path="users/login/", authenticated=False),
            "tok",
        )

        assert "Authorization" not in backend.requests[0].headers


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestExecuteFailure:
    async def test_detail_field(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "orders/orders-details/5/", json={"detail": "Not found."}, status=404)

        result = await executor.execute(RequestSpec(path="orders/orders-details/5/"))

        assert not result.ok
        assert result.error == RequestError(status=404, detail="Not found.", body={"detail": "Not found."})

    async def test_error_field(self, backend, executor: RequestExecutor) -> None:
        backend.on("POST", "users/login/", json={"error": "Invalid credentials"}, status=400)

        result = await executor.execute(RequestSpec(method=HTTPMethod.POST, path="users/login/"))

        assert result.error.detail == "Invalid credentials"

    async def test_drf_field_errors(self, backend, executor: RequestExecutor) -> None:
        backend.on(
            "POST", "users/register/",
            json={"username": ["This field is required."]}, status=400,
        )

        result = await executor.execute(RequestSpec(method=HTTPMethod.POST, path="users/register/"))

        assert result.error.status == 400
        assert result.error.detail == "username: This field is required."

    async def test_non_json_body_uses_text(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/", lambda request: httpx.Response(502, text="Bad Gateway"))

        result = await executor.execute(RequestSpec(path="products/"))

        assert result.error.status == 502
        assert result.error.detail == "Bad Gateway"

    async def test_transport_error_has_no_status(self, backend, executor: RequestExecutor) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend.on("GET", "products/", refuse)

        result = await executor.execute(RequestSpec(path="products/"))

        assert result.error.is_transport
        assert result.error.status is None
        assert "connection refused" in result.error.detail

    async def test_unencodable_body_is_a_value(self, backend, executor: RequestExecutor) -> None:
        spec = RequestSpec(method=HTTPMethod.POST, path="orders/checkout/", body={"total": Decimal("9.99")})

        result = await executor.execute(spec)

        assert result.error.is_transport
        assert "Could not encode request" in result.error.detail
        assert backend.requests == []

    async def test_invalid_url_is_a_value(self, backend, executor: RequestExecutor) -> None:
        result = await executor.execute(RequestSpec(path="products/\x00/"))

        assert result.error.is_transport
        assert backend.requests == []

    async def test_unauthorized_flag(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "users/profile/", json={"detail": "Token expired"}, status=401)

        result = await executor.execute(RequestSpec(path="users/profile/"), "old")

        assert result.is_unauthorized


class TestRetry:
    async def _executor(self, backend, max_retries: int) -> RequestExecutor:
        executor = RequestExecutor(
            BASE_URL, RequestConfig(max_retries=max_retries), transport=backend.transport
        )
        executor.retry_delay = 0
        return executor

    async def test_get_5xx_retried_until_success(self, backend) -> None:
        statuses = iter([503, 503, 200])
        backend.on("GET", "products/", lambda request: httpx.Response(next(statuses), json=[]))

        async with await self._executor(backend, max_retries=2) as executor:
            result = await executor.execute(RequestSpec(path="products/"))

        assert result.ok
        assert backend.hits("GET", "products/") == 3

    async def test_retries_exhausted_returns_last_error(self, backend) -> None:
        backend.on("GET", "products/", json={"detail": "down"}, status=503)

        async with await self._executor(backend, max_retries=1) as executor:
            result = await executor.execute(RequestSpec(path="products/"))

        assert result.error.status == 503
        assert backend.hits("GET", "products/") == 2

    async def test_writes_not_retried_on_5xx(self, backend) -> None:
        backend.on("POST", "orders/checkout/", json={"detail": "boom"}, status=500)

        async with await self._executor(backend, max_retries=3) as executor:
            result = await executor.execute(RequestSpec(method=HTTPMethod.POST, path="orders/checkout/"))

        assert result.error.status == 500
        assert backend.hits("POST", "orders/checkout/") == 1

    async def test_transport_errors_retried(self, backend) -> None:
        attempts = []

        def flaky(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"ok": True})

        backend.on("POST", "delivery/optimize-route/", flaky)

        async with await self._executor(backend, max_retries=1) as executor:
            result = await executor.execute(
                RequestSpec(method=HTTPMethod.POST, path="delivery/optimize-route/")
            )

        assert result.data == {"ok": True}
        assert len(attempts) == 2

    async def test_no_retry_by_default(self, backend, executor: RequestExecutor) -> None:
        backend.on("GET", "products/", json={}, status=500)

        await executor.execute(RequestSpec(path="products/"))

        assert backend.hits("GET", "products/") == 1


# ---------------------------------------------------------------------------
# Result values
# ---------------------------------------------------------------------------


class TestResult:
    def test_success_unwraps_to_data(self) -> None:
        assert Result.success([1, 2]).unwrap() == [1, 2]

    @pytest.mark.parametrize(
        ("status", "exc_type"),
        [
            (None, ConnectionError_),
            (401, AuthError),
            (403, AuthError),
            (404, NotFoundError),
            (400, ClientError),
            (409, ClientError),
            (500, ServerError),
            (503, ServerError),
        ],
    )
    def test_unwrap_maps_status_to_exception(self, status, exc_type) -> None:
        result = Result.failure(RequestError(status=status, detail="nope"))

        with pytest.raises(exc_type, match="nope"):
            result.unwrap()

    def test_exception_carries_exit_code(self) -> None:
        exc = RequestError(status=404).to_exception()
        assert exc.exit_code == 4

    def test_error_str(self) -> None:
        assert str(RequestError(status=400, detail="bad")) == "HTTP 400: bad"
        assert str(RequestError(detail="refused")) == "Transport error: refused"
        assert str(RequestError(status=500)) == "HTTP 500"
