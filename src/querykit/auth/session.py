"""The credential session -- the only shared mutable state in querykit.

A :class:`CredentialSession` holds one :class:`~querykit.models.Credentials`
value (or nothing). It is read by every outgoing request and written only
by login, refresh success, and logout. Every write replaces the whole value,
so a reader between two suspension points never sees a half-updated
session.

Sessions are explicit objects rather than a module-level singleton: the
:class:`~querykit.auth.interceptor.AuthInterceptor` is handed one, which
keeps it testable with a throwaway session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from querykit.auth.credential_store import SessionStore
from querykit.models import Credentials, SessionSnapshot, User

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Credentials]], None]


class CredentialSession:
    """Holds the current user, access token, and refresh token.

    Args:
        credentials: Initial credentials. When omitted and a *store* is
            given, the session is restored from the store.
        store: Optional persistence. Every change is written through;
            :meth:`clear` deletes the stored file.

    Example::

        session = CredentialSession()
        session.subscribe(lambda creds: print("logged in" if creds else "logged out"))
        session.set(Credentials(access_token="a", refresh_token="r"))
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        store: Optional[SessionStore] = None,
    ) -> None:
        self._store = store
        self._listeners: list[SessionListener] = []
        if credentials is None and store is not None:
            credentials = self._restore(store)
        self._credentials = credentials

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def current(self) -> Optional[Credentials]:
        return self._credentials

    @property
    def access_token(self) -> Optional[str]:
        return self._credentials.access_token if self._credentials else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._credentials.refresh_token if self._credentials else None

    @property
    def user(self) -> Optional[User]:
        return self._credentials.user if self._credentials else None

    @property
    def is_authenticated(self) -> bool:
        return self._credentials is not None

    def snapshot(self) -> SessionSnapshot:
        """Return the read-only view exposed to UI code."""
        user = self.user
        return SessionSnapshot(
            is_authenticated=self.is_authenticated,
            role=user.role if user else None,
            user=user,
        )

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def set(self, credentials: Credentials) -> None:
        """Replace the whole session value."""
        self._replace(credentials)

    def update_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> Credentials:
        """Replace the tokens after a refresh, keeping the user.

        When *refresh_token* is ``None`` (the backend did not rotate it) the
        previous refresh token is kept.
        """
        previous = self._credentials
        credentials = Credentials(
            user=previous.user if previous else None,
            access_token=access_token,
            refresh_token=refresh_token or (previous.refresh_token if previous else None),
        )
        self._replace(credentials)
        return credentials

    def clear(self) -> None:
        """End the session. A no-op when it is already empty."""
        if self._credentials is None:
            return
        self._replace(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call *listener* with the new value after every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _replace(self, credentials: Optional[Credentials]) -> None:
        self._credentials = credentials
        if self._store is not None:
            if credentials is None:
                self._store.clear()
            else:
                self._store.save(credentials)
        for listener in list(self._listeners):
            try:
                listener(credentials)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    @staticmethod
    def _restore(store: SessionStore) -> Optional[Credentials]:
        credentials = store.load()
        if credentials is None:
            return None
        if credentials.user is not None and credentials.user.role is None:
            logger.warning("Stored session at %s has a user without a role, discarding it", store.path)
            store.clear()
            return None
        return credentials
