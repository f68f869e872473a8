"""Tests for the assembled Api facade: login, logout, and session-driven cache resets."""

from __future__ import annotations

import json

import httpx
import pytest

from querykit.api import Api
from querykit.auth import CredentialSession
from querykit.models import Role, SessionConfig, Settings

BASE_URL = "http://shop.test/api/"

LOGIN_RESPONSE = {
    "user": {"id": 7, "username": "bob", "email": "bob@example.com", "is_delivery_person": True},
    "access": "access-bob",
    "refresh": "refresh-bob",
}


@pytest.fixture
async def api(settings: Settings, backend) -> Api:
    """An Api with an empty in-memory session."""
    api = Api(settings, transport=backend.transport)
    yield api
    await api.aclose()


@pytest.fixture
async def logged_in_api(settings: Settings, backend, session: CredentialSession) -> Api:
    api = Api(settings, session=session, transport=backend.transport)
    yield api
    await api.aclose()


class TestLogin:
    async def test_login_starts_session(self, api: Api, backend) -> None:
        backend.on("POST", "users/login/", json=LOGIN_RESPONSE)

        result = await api.login("bob", "secret")

        assert result.ok
        assert result.data.username == "bob"
        assert result.data.role is Role.DELIVERY
        snapshot = api.snapshot()
        assert snapshot.is_authenticated
        assert snapshot.role is Role.DELIVERY
        assert api.session.access_token == "access-bob"
        assert api.session.refresh_token == "refresh-bob"

        request = backend.requests[0]
        assert json.loads(request.content) == {"username": "bob", "password": "secret"}
        assert "Authorization" not in request.headers

    async def test_admin_flag_wins(self, api: Api, backend) -> None:
        payload = dict(LOGIN_RESPONSE, user={"id": 1, "username": "root", "is_admin": True, "is_delivery_person": True})
        backend.on("POST", "users/login/", json=payload)

        result = await api.login("root", "pw")

        assert result.data.role is Role.ADMIN

    async def test_rejected_login_leaves_session_empty(self, api: Api, backend) -> None:
        backend.on("POST", "users/login/", status=401, json={"detail": "No active account found"})

        result = await api.login("bob", "wrong")

        assert not result.ok
        assert result.error.status == 401
        assert result.error.detail == "No active account found"
        assert not api.snapshot().is_authenticated
        assert backend.hits("POST", "users/refresh/") == 0

    async def test_response_without_access_token(self, api: Api, backend) -> None:
        backend.on("POST", "users/login/", json={"user": {"username": "bob"}})

        result = await api.login("bob", "secret")

        assert not result.ok
        assert "access token" in result.error.detail
        assert not api.snapshot().is_authenticated

    async def test_google_login(self, api: Api, backend) -> None:
        backend.on("POST", "users/google/", json=LOGIN_RESPONSE)

        result = await api.google_login("id-token")

        assert result.ok
        assert json.loads(backend.requests[0].content) == {"token": "id-token"}
        assert api.snapshot().user.username == "bob"

    async def test_login_drops_previous_users_data(self, logged_in_api: Api, backend) -> None:
        backend.on("GET", "orders/orders-list/", json={"count": 0, "results": []})
        backend.on("POST", "users/login/", json=LOGIN_RESPONSE)
        await logged_in_api.query("get_orders")
        assert len(logged_in_api.cache) == 1

        await logged_in_api.login("bob", "secret")

        assert len(logged_in_api.cache) == 0

    async def test_register_does_not_log_in(self, api: Api, backend) -> None:
        backend.on("POST", "users/register/", status=201, json={"id": 9, "username": "carol"})

        result = await api.register(username="carol", email="c@example.com", password="pw")

        assert result.ok
        assert result.data["username"] == "carol"
        assert not api.snapshot().is_authenticated


class TestLogout:
    async def test_logout_clears_session_and_cache(self, logged_in_api: Api, backend) -> None:
        backend.on("GET", "orders/orders-list/", json={"count": 0, "results": []})
        backend.on("GET", "products/", json={"count": 0, "results": []})
        changes = []
        logged_in_api.on_session_change(changes.append)
        await logged_in_api.query("get_orders")

        logged_in_api.logout()

        assert changes == [None]
        assert not logged_in_api.snapshot().is_authenticated
        assert len(logged_in_api.cache) == 0

        await logged_in_api.query("get_products")
        assert backend.authorization_headers("products/") == [None]

    async def test_failed_refresh_resets_cache(self, logged_in_api: Api, backend) -> None:
        backend.on("GET", "orders/orders-list/", json={"count": 1, "results": [{"id": 1}]})
        backend.on("POST", "users/refresh/", status=401, json={"detail": "Token is invalid or expired"})
        orders = logged_in_api.subscribe("get_orders")
        await orders.wait()
        assert orders.data["count"] == 1

        backend.on("GET", "orders/orders-list/", status=401, json={"detail": "Token expired"})
        orders.refetch()
        await logged_in_api.cache.settle()

        assert not logged_in_api.snapshot().is_authenticated
        assert len(logged_in_api.cache) == 0
        assert orders.released
        assert orders.error.status == 401
        assert backend.hits("POST", "users/refresh/") == 1

    async def test_refresh_uses_registry_endpoint(self, logged_in_api: Api, backend) -> None:
        calls = {"n": 0}

        def orders(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if request.headers["Authorization"] == "Bearer access-1":
                return httpx.Response(401, json={"detail": "expired"})
            return httpx.Response(200, json={"count": 0, "results": []})

        backend.on("GET", "orders/orders-list/", orders)
        backend.on("POST", "users/refresh/", json={"access": "access-2"})

        result = await logged_in_api.query("get_orders")

        assert result.ok
        assert calls["n"] == 2
        assert json.loads(backend.requests[1].content) == {"refresh": "refresh-1"}
        assert logged_in_api.session.access_token == "access-2"
        assert logged_in_api.session.refresh_token == "refresh-1"


class TestPersistence:
    async def test_session_survives_restart(self, isolated_config, backend) -> None:
        settings = Settings(base_url=BASE_URL, session=SessionConfig(persist=True, profile="test"))
        backend.on("POST", "users/login/", json=LOGIN_RESPONSE)

        async with Api(settings, transport=backend.transport) as first:
            await first.login("bob", "secret")

        async with Api(settings, transport=backend.transport) as second:
            snapshot = second.snapshot()
            assert snapshot.is_authenticated
            assert snapshot.user.username == "bob"
            assert second.session.access_token == "access-bob"

            second.logout()

        async with Api(settings, transport=backend.transport) as third:
            assert not third.snapshot().is_authenticated
