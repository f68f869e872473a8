"""Shared test fixtures for querykit.

Provides an in-process fake of the shop backend served through
:class:`httpx.MockTransport`, ready-wired executor/session/interceptor/cache
fixtures, config isolation, and output reset. Fixtures are discovered by
pytest and available to every test module without imports.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from querykit.auth import AuthInterceptor, CredentialSession
from querykit.cache import CacheStore
from querykit.client import RequestExecutor
from querykit.endpoints import EndpointRegistry, create_default_registry
from querykit.models import (
    CacheConfig,
    Credentials,
    Role,
    SessionConfig,
    Settings,
    User,
)
from querykit.output import reset_output


BASE_URL = "http://shop.test/api/"


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """Routes ``(method, path)`` to canned responses and records every request.

    Paths are relative to :data:`BASE_URL`, e.g. ``"orders/orders-list/"``.
    A handler receives the :class:`httpx.Request` and returns an
    :class:`httpx.Response`, or a coroutine producing one so that tests can
    hold a request in flight. Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        handler: Optional[Callable[[httpx.Request], Any]] = None,
        *,
        json: Any = None,
        status: int = 200,
    ) -> None:
        if handler is None:

            def handler(request: httpx.Request, _json: Any = json, _status: int = status) -> httpx.Response:
                return httpx.Response(_status, json=_json)

        self._routes[(method.upper(), path)] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/")
        handler = self._routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found."})
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def hits(self, method: str, path: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method.upper() and r.url.path.removeprefix("/api/") == path
        )

    def authorization_headers(self, path: str) -> list[Optional[str]]:
        return [
            r.headers.get("Authorization") for r in self.requests
            if r.url.path.removeprefix("/api/") == path
        ]


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until *predicate* holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager caches sys.stdout/sys.stderr at creation time; after a
    CliRunner invocation those streams are closed.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the XDG directories into tmp_path and chdir there.

    Also clears ``QUERYKIT_BASE_URL`` so the environment never leaks into
    precedence tests.
    """
    monkeypatch.setattr("querykit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("QUERYKIT_BASE_URL", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def customer() -> User:
    return User(id=1, username="alice", email="alice@example.com", role=Role.CUSTOMER)


@pytest.fixture
def session(customer: User) -> CredentialSession:
    """An in-memory session logged in as a customer with ``access-1``/``refresh-1``."""
    return CredentialSession(
        Credentials(user=customer, access_token="access-1", refresh_token="refresh-1")
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(base_url=BASE_URL, session=SessionConfig(persist=False))


@pytest.fixture
async def executor(backend: FakeBackend) -> RequestExecutor:
    executor = RequestExecutor(BASE_URL, transport=backend.transport)
    executor.retry_delay = 0
    yield executor
    await executor.aclose()


@pytest.fixture
def interceptor(executor: RequestExecutor, session: CredentialSession) -> AuthInterceptor:
    return AuthInterceptor(executor, session)


@pytest.fixture
def registry() -> EndpointRegistry:
    return create_default_registry()


@pytest.fixture
async def store(registry: EndpointRegistry, interceptor: AuthInterceptor) -> CacheStore:
    store = CacheStore(registry, interceptor, CacheConfig(keep_unused_for=60))
    yield store
    await store.aclose()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """``await wait_until(predicate)`` yields to the loop until *predicate* holds."""
    return _wait_until
