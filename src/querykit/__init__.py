"""querykit -- a cached, session-aware data-access layer for a REST shop backend.

UI code declares interest in backend resources by endpoint name; querykit
fetches them once, caches the results, refetches exactly the affected
queries after a write, and keeps the user's session alive by refreshing an
expired access token behind the scenes.

Typical use::

    from querykit import Api

    async with Api() as api:
        await api.login("alice", "secret")
        orders = await api.query("get_orders")

Modules:
    api: The :class:`Api` facade wiring everything together.
    client: Request executor and the :class:`Result` value types.
    auth: Credential session, its persistence, and the auth interceptor.
    endpoints: Endpoint definitions, registry, and the shop endpoint table.
    cache: Query cache, subscriptions, cache keys, and invalidation.
    tags: Cache tags and the tag index.
    config: XDG-aware settings resolution.
    app: The ``querykit`` developer CLI.
"""

from querykit.api import Api
from querykit.client.result import RequestError, Result
from querykit.tags import Tag

__version__ = "0.1.0"

__all__ = ["Api", "RequestError", "Result", "Tag", "__version__"]
