"""Auth interceptor -- bearer injection plus single-flight refresh-and-retry.

Every query and mutation goes through :meth:`AuthInterceptor.run`. It reads
the access token from the :class:`~querykit.auth.session.CredentialSession`,
sends the request through the :class:`~querykit.client.executor.RequestExecutor`,
and when the backend answers 401 it refreshes the session and retries the
request once.

Refreshes are single-flight: however many requests fail with 401 at the
same time, exactly one refresh request is outstanding and every failed
request waits on it. A refresh failure, or a second 401 after a successful
refresh, ends the session so the UI can send the user back to a login
screen.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Optional

from querykit.auth.session import CredentialSession
from querykit.client.executor import RequestExecutor
from querykit.client.result import Result
from querykit.models import HTTPMethod, RequestSpec

logger = logging.getLogger(__name__)

REFRESH_PATH = "users/refresh/"


def default_refresh_request(refresh_token: str) -> RequestSpec:
    """``POST users/refresh/ {refresh}``, sent without a bearer token."""
    return RequestSpec(
        method=HTTPMethod.POST,
        path=REFRESH_PATH,
        body={"refresh": refresh_token},
        authenticated=False,
    )


class AuthInterceptor:
    """Wraps a :class:`~querykit.client.executor.RequestExecutor` with session handling.

    Args:
        executor: Performs the actual HTTP calls.
        session: Source of the access and refresh tokens; updated on
            refresh and cleared when the session cannot be recovered.
        refresh_request: Builds the refresh call from a refresh token.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        session: CredentialSession,
        refresh_request: Callable[[str], RequestSpec] = default_refresh_request,
    ) -> None:
        self._executor = executor
        self._session = session
        self._refresh_request = refresh_request
        self._refresh_task: Optional[asyncio.Future[bool]] = None

    @property
    def session(self) -> CredentialSession:
        return self._session

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def run(self, spec: RequestSpec) -> Result[Any]:
        """Send *spec*, refreshing the session and retrying once on a 401.

        Returns:
            The :class:`~querykit.client.result.Result` of the request, or
            of its single retry. When the refresh fails the original 401
            result is returned.
        """
        token = self._session.access_token if spec.authenticated else None
        result = await self._executor.execute(spec, token)
        if not spec.authenticated or not result.is_unauthorized:
            return result

        if not await self._ensure_refreshed(token):
            return result

        retry = await self._executor.execute(spec, self._session.access_token)
        if retry.is_unauthorized:
            logger.info("%s %s rejected again after refresh, ending session", spec.method.value, spec.path)
            self._session.clear()
        return retry

    async def _ensure_refreshed(self, rejected_token: Optional[str]) -> bool:
        """Make sure the session holds a token newer than *rejected_token*.

        Joins the refresh in flight, or starts one. When another task
        already replaced the rejected token, returns immediately.
        """
        if self._refresh_task is None:
            current = self._session.access_token
            if current is not None and current != rejected_token:
                return True
            self._refresh_task = asyncio.ensure_future(self._refresh())
            self._refresh_task.add_done_callback(self._refresh_finished)
        # shield: a cancelled waiter must not cancel the refresh the others share
        return await asyncio.shield(self._refresh_task)

    def _refresh_finished(self, task: asyncio.Future[bool]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self) -> bool:
        refresh_token = self._session.refresh_token
        if not refresh_token:
            logger.info("Access token rejected and no refresh token available, ending session")
            self._session.clear()
            return False

        logger.debug("Refreshing access token")
        result = await self._executor.execute(self._refresh_request(refresh_token))

        if self._session.refresh_token != refresh_token:
            # logout or a new login happened while the refresh was in flight
            return self._session.access_token is not None

        data = result.data if result.ok and isinstance(result.data, dict) else {}
        access = data.get("access")
        if not access:
            logger.info("Token refresh failed (%s), ending session", result.error or "no access token")
            self._session.clear()
            return False

        self._session.update_tokens(access, data.get("refresh"))
        logger.info("Access token refreshed")
        return True
