"""Session and authentication handling for querykit.

- :class:`CredentialSession` -- the current user, access token, and refresh
  token; the only shared mutable state in the package.
- :class:`SessionStore` -- persists a session between runs.
- :class:`AuthInterceptor` -- injects the bearer token into every request
  and performs single-flight refresh-and-retry on 401.

Typical usage::

    from querykit.auth import AuthInterceptor, CredentialSession

    session = CredentialSession(store=SessionStore("default"))
    interceptor = AuthInterceptor(executor, session)
    result = await interceptor.run(spec)
"""

from querykit.auth.credential_store import SessionStore
from querykit.auth.interceptor import AuthInterceptor, default_refresh_request
from querykit.auth.session import CredentialSession

__all__ = [
    "AuthInterceptor",
    "CredentialSession",
    "SessionStore",
    "default_refresh_request",
]
