"""Endpoint table for the shop backend.

Declares every query and mutation the UI uses against the Django REST shop
API: authentication, the product catalogue, orders and checkout, payments,
delivery tasks, and the admin screens. Call :func:`create_default_registry`
to get a registry pre-loaded with all of them.

Tag types: ``User``, ``Products``, ``ProductDetail``, ``Categories``,
``Orders``, ``Payments``, ``Deliveries``, ``Users``, ``Branches``. List
queries provide the list-level tag plus one tag per returned item, so a
mutation invalidating a single item also refreshes every list showing it.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

from querykit.auth.interceptor import default_refresh_request
from querykit.endpoints.registry import (
    EndpointDefinition,
    EndpointRegistry,
    mutation,
    query,
)
from querykit.models import HTTPMethod, RequestSpec
from querykit.tags import Tag

DEFAULT_PAGE_SIZE = 12


# ------------------------------------------------------------------ #
# Request helpers
# ------------------------------------------------------------------ #


def _args(args: Any) -> dict[str, Any]:
    return dict(args or {})


def _compact(**params: Any) -> dict[str, Any]:
    """Drop unset filters so they never reach the query string."""
    return {key: value for key, value in params.items() if value}


def _get(path: str, params: Optional[dict[str, Any]] = None) -> RequestSpec:
    return RequestSpec(method=HTTPMethod.GET, path=path, params=params or {})


def _send(method: HTTPMethod, path: str, body: Any = None, authenticated: bool = True) -> RequestSpec:
    return RequestSpec(method=method, path=path, body=body, authenticated=authenticated)


def _paging(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "page": args.get("page", 1),
        "page_size": args.get("page_size", DEFAULT_PAGE_SIZE),
    }


def _without_id(args: Any) -> dict[str, Any]:
    return {key: value for key, value in _args(args).items() if key != "id"}


# ------------------------------------------------------------------ #
# Response helpers
# ------------------------------------------------------------------ #


def unwrap_results(response: Any) -> Any:
    """Return ``results`` of a paginated body, or the body itself."""
    if isinstance(response, dict) and "results" in response:
        return response["results"]
    return response


def _list_tags(tag_type: str) -> Callable[[Any, Any], list[Tag]]:
    """Provide the list tag plus one tag per item of a (paginated) list body."""

    def provides(data: Any, args: Any) -> list[Tag]:
        tags = [Tag(tag_type)]
        items = unwrap_results(data)
        if isinstance(items, list):
            tags.extend(
                Tag(tag_type, item["id"])
                for item in items
                if isinstance(item, dict) and item.get("id") is not None
            )
        return tags

    return provides


def _id_tag(tag_type: str) -> Callable[[Any, Any], list[Tag]]:
    """Provide ``Tag(tag_type, id)`` taking the id from the response, else the args."""

    def provides(data: Any, args: Any) -> list[Tag]:
        item_id = data.get("id") if isinstance(data, dict) else None
        return [Tag(tag_type, item_id if item_id is not None else args)]

    return provides


def _invalidate_item(tag_type: str) -> Callable[[Any], list[Tag]]:
    def invalidates(args: Any) -> list[Tag]:
        return [Tag(tag_type, _args(args)["id"])]

    return invalidates


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #

AUTH_ENDPOINTS: list[EndpointDefinition[Any, Any]] = [
    mutation(
        "register",
        lambda args: _send(HTTPMethod.POST, "users/register/", _args(args), authenticated=False),
        description="Create an account {username, email, password}.",
    ),
    mutation(
        "login",
        lambda args: _send(HTTPMethod.POST, "users/login/", _args(args), authenticated=False),
        description="Exchange {username, password} for {user, access, refresh}.",
    ),
    mutation(
        "google_login",
        lambda args: _send(HTTPMethod.POST, "users/google/", _args(args), authenticated=False),
        description="Exchange a Google {token} for {user, access, refresh}.",
    ),
    mutation(
        "refresh",
        default_refresh_request,
        description="Exchange a refresh token for a new access token.",
    ),
    query(
        "get_profile",
        lambda _: _get("users/profile/"),
        provides=["User"],
        description="The logged-in user's profile.",
    ),
    mutation(
        "update_profile",
        lambda args: _send(HTTPMethod.PUT, "users/profile/update/", _args(args)),
        invalidates=["User"],
        description="Update profile fields.",
    ),
]

CATALOGUE_ENDPOINTS: list[EndpointDefinition[Any, Any]] = [
    query(
        "get_products",
        lambda args: _get("products/", _paging(_args(args))),
        provides=["Products"],
        description="Paginated product list {page, page_size}.",
    ),
    query(
        "get_offers",
        lambda args: _get(
            "products/offers/",
            {
                **_paging(_args(args)),
                **_compact(
                    category=_args(args).get("category"),
                    min_discount=_args(args).get("min_discount"),
                    max_price=_args(args).get("max_price"),
                    sort_by=_args(args).get("sort_by"),
                ),
            },
        ),
        provides=["Products"],
        description="Discounted products {page, page_size, category, min_discount, max_price, sort_by}.",
    ),
    query(
        "search_products",
        lambda args: _get(
            "products/search/",
            {
                "q": _args(args).get("q", ""),
                **_compact(
                    category=_args(args).get("category"),
                    min_price=_args(args).get("min_price"),
                    max_price=_args(args).get("max_price"),
                    sort_by=_args(args).get("sort_by"),
                ),
                **_paging(_args(args)),
            },
        ),
        provides=["Products"],
        description="Full-text product search {q, category, min_price, max_price, sort_by, page}.",
    ),
    query(
        "get_product_by_id",
        lambda product_id: _get(f"products/{product_id}/"),
        provides=lambda data, product_id: [Tag("ProductDetail", product_id)],
        description="One product with its details.",
    ),
    query(
        "get_categories",
        lambda _: _get("categories/"),
        transform=unwrap_results,
        provides=["Categories"],
        description="All categories.",
    ),
    query(
        "get_category_detail",
        lambda category_id: _get(f"categories/{category_id}/"),
        provides=lambda data, category_id: [Tag("Categories", category_id)],
        description="A category and its products.",
    ),
]

ORDER_ENDPOINTS: list[EndpointDefinition[Any, Any]] = [
    query(
        "get_orders",
        lambda _: _get("orders/orders-list/"),
        provides=_list_tags("Orders"),
        description="The current user's orders.",
    ),
    query(
        "get_order",
        lambda order_id: _get(f"orders/orders-details/{order_id}/"),
        provides=_id_tag("Orders"),
        description="One order.",
    ),
    mutation(
        "checkout",
        lambda args: _send(HTTPMethod.POST, "orders/checkout/", _args(args)),
        invalidates=["Orders", "Payments", "Deliveries"],
        description="Place an order {cart_items, phone_number, latitude, longitude}.",
    ),
    query(
        "get_payments",
        lambda args: _get("payments/", _compact(**_args(args))),
        provides=_list_tags("Payments"),
        description="Payments visible to the current user.",
    ),
]

DELIVERY_ENDPOINTS: list[EndpointDefinition[Any, Any]] = [
    query(
        "get_delivery_tasks",
        lambda args: _get(
            "delivery/tasks/",
            {**_paging(_args(args)), **_compact(status=_args(args).get("status"))},
        ),
        provides=_list_tags("Deliveries"),
        description="Delivery tasks assigned to the current courier {status, page}.",
    ),
    query(
        "get_delivery_task_detail",
        lambda task_id: _get(f"delivery/tasks/{task_id}/"),
        provides=_id_tag("Deliveries"),
        description="One delivery task.",
    ),
    mutation(
        "update_delivery_task",
        lambda args: _send(HTTPMethod.PATCH, f"delivery/tasks/{_args(args)['id']}/", _without_id(args)),
        invalidates=_invalidate_item("Deliveries"),
        description="Update a delivery task {id, status, ...}.",
    ),
    mutation(
        "optimize_route",
        lambda args: _send(HTTPMethod.POST, "delivery/optimize-route/", _args(args)),
        description="Compute a delivery route for a set of tasks.",
    ),
]

ADMIN_ENDPOINTS: list[EndpointDefinition[Any, Any]] = [
    query(
        "get_admin_users",
        lambda args: _get("admin/users/", _compact(**_args(args))),
        provides=_list_tags("Users"),
        description="All users (admin).",
    ),
    mutation(
        "create_admin_user",
        lambda args: _send(HTTPMethod.POST, "admin/users/", _args(args)),
        invalidates=["Users"],
        description="Create a user (admin).",
    ),
    mutation(
        "update_admin_user",
        lambda args: _send(HTTPMethod.PUT, f"admin/users/{_args(args)['id']}/", _without_id(args)),
        invalidates=_invalidate_item("Users"),
        description="Update a user (admin) {id, ...}.",
    ),
    mutation(
        "delete_admin_user",
        lambda args: _send(HTTPMethod.DELETE, f"admin/users/{_args(args)['id']}/"),
        invalidates=_invalidate_item("Users"),
        description="Delete a user (admin) {id}.",
    ),
    query(
        "get_admin_orders",
        lambda args: _get("admin/orders/", _compact(**_args(args))),
        provides=_list_tags("Orders"),
        description="All orders (admin) {status, page}.",
    ),
    mutation(
        "create_admin_order",
        lambda args: _send(HTTPMethod.POST, "admin/orders/", _args(args)),
        invalidates=["Orders", "Payments", "Deliveries"],
        description="Create an order on behalf of a customer (admin).",
    ),
    mutation(
        "update_admin_order",
        lambda args: _send(HTTPMethod.PUT, f"admin/orders/{_args(args)['id']}/", _without_id(args)),
        invalidates=_invalidate_item("Orders"),
        description="Update an order (admin) {id, ...}.",
    ),
    mutation(
        "delete_admin_order",
        lambda args: _send(HTTPMethod.DELETE, f"admin/orders/{_args(args)['id']}/"),
        invalidates=_invalidate_item("Orders"),
        description="Delete an order (admin) {id}.",
    ),
    query(
        "get_admin_products",
        lambda args: _get("admin/products/", _compact(**_args(args))),
        provides=_list_tags("Products"),
        description="All products including inactive ones (admin).",
    ),
    query(
        "get_admin_branches",
        lambda args: _get("admin/branches/", _compact(**_args(args))),
        provides=_list_tags("Branches"),
        description="Store branches (admin).",
    ),
]


def create_default_registry() -> EndpointRegistry:
    """Create an :class:`EndpointRegistry` pre-loaded with every shop endpoint."""
    registry = EndpointRegistry()
    registry.define_all(AUTH_ENDPOINTS)
    registry.define_all(CATALOGUE_ENDPOINTS)
    registry.define_all(ORDER_ENDPOINTS)
    registry.define_all(DELIVERY_ENDPOINTS)
    registry.define_all(ADMIN_ENDPOINTS)
    return registry
