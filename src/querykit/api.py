"""The assembled data-access layer.

:class:`Api` wires the executor, session, interceptor, registry and cache
together and is what UI code (and the CLI) talks to::

    async with Api(resolve_settings()) as api:
        await api.login("alice", "secret")
        with api.subscribe("get_orders") as orders:
            await orders.wait()
            print(orders.data)
        await api.mutate("checkout", {"cart_items": [...]})
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

import httpx

from querykit.auth.credential_store import SessionStore
from querykit.auth.interceptor import AuthInterceptor, default_refresh_request
from querykit.auth.session import CredentialSession
from querykit.cache.entry import Subscription
from querykit.cache.store import CacheStore
from querykit.client.executor import RequestExecutor
from querykit.client.result import RequestError, Result
from querykit.endpoints.registry import EndpointRegistry
from querykit.endpoints.shop import create_default_registry
from querykit.models import Credentials, SessionSnapshot, Settings, User

logger = logging.getLogger(__name__)

SESSION_ENDED = RequestError(status=401, detail="Session ended")


class Api:
    """Facade over the cache, the session and the endpoint registry.

    Args:
        settings: Effective settings; defaults are used when omitted.
        registry: Endpoint table; the shop backend's by default.
        session: Credential session. When omitted one is created, backed by
            a :class:`~querykit.auth.credential_store.SessionStore` if
            ``settings.session.persist`` is set.
        transport: Optional :mod:`httpx` transport for the executor.

    Whenever the session ends (logout, or a refresh the interceptor could
    not complete) the cache is reset so no user data outlives it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        registry: Optional[EndpointRegistry] = None,
        session: Optional[CredentialSession] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.registry = registry or create_default_registry()
        if session is None:
            store = SessionStore(self.settings.session.profile) if self.settings.session.persist else None
            session = CredentialSession(store=store)
        self.session = session
        self.executor = RequestExecutor(self.settings.base_url, self.settings.request, transport=transport)
        self.interceptor = AuthInterceptor(self.executor, self.session, self._refresh_request)
        self.cache = CacheStore(self.registry, self.interceptor, self.settings.cache)
        self._unsubscribe_session = self.session.subscribe(self._on_session_change)

    async def __aenter__(self) -> Api:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._unsubscribe_session()
        await self.cache.aclose()
        await self.executor.aclose()

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    def on_session_change(self, listener: Callable[[Optional[Credentials]], None]) -> Callable[[], None]:
        """Register a session listener, e.g. to redirect to a login screen."""
        return self.session.subscribe(listener)

    async def login(self, username: str, password: str) -> Result[User]:
        """Log in with a username and password and start a session."""
        return await self._start_session("login", {"username": username, "password": password})

    async def google_login(self, token: str) -> Result[User]:
        """Log in with a Google identity token and start a session."""
        return await self._start_session("google_login", {"token": token})

    async def register(self, **fields: Any) -> Result[Any]:
        return await self.cache.mutate("register", fields)

    def logout(self) -> None:
        self.session.clear()
        self.cache.reset()
        logger.info("Logged out")

    # ------------------------------------------------------------------ #
    # Data access
    # ------------------------------------------------------------------ #

    def subscribe(self, name: str, args: Any = None) -> Subscription:
        return self.cache.subscribe(name, args)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.cache.unsubscribe(subscription)

    async def query(self, name: str, args: Any = None) -> Result[Any]:
        return await self.cache.query(name, args)

    async def mutate(self, name: str, args: Any = None) -> Result[Any]:
        return await self.cache.mutate(name, args)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _refresh_request(self, refresh_token: str):
        if "refresh" in self.registry:
            return self.registry.request_for("refresh", refresh_token)
        return default_refresh_request(refresh_token)

    async def _start_session(self, name: str, args: dict[str, Any]) -> Result[User]:
        result = await self.cache.mutate(name, args)
        if not result.ok:
            return Result.failure(result.error)

        data = result.data if isinstance(result.data, dict) else {}
        access = data.get("access")
        if not access:
            return Result.failure(
                RequestError(detail="Login response did not include an access token", body=result.data)
            )

        user = User.from_login(data.get("user") or {})
        # data cached for a previous user must not leak into the new session
        self.cache.reset()
        self.session.set(Credentials(user=user, access_token=access, refresh_token=data.get("refresh")))
        logger.info("Logged in as %s (%s)", user.username, user.role.value if user.role else "unknown")
        return Result.success(user)

    def _on_session_change(self, credentials: Optional[Credentials]) -> None:
        if credentials is None:
            self.cache.reset(SESSION_ENDED)
