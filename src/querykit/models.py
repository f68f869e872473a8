"""Canonical Pydantic models shared across all querykit modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`SessionConfig`,
    :class:`OutputConfig`, and :class:`Settings`.

**Session models** -- the credential state shared by every request:
    :class:`Role`, :class:`User`, :class:`Credentials`, and
    :class:`SessionSnapshot`.

**Request models** -- the wire description produced by endpoint builders:
    :class:`HTTPMethod` and :class:`RequestSpec`.

All models use Pydantic v2. Value types that must never be mutated after
construction (credentials, request specs) are declared ``frozen``.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP settings applied to every backend call."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0,
        description="Retry attempts for transport errors and 5xx responses to GETs",
    )


class CacheConfig(BaseModel):
    """Query cache settings."""

    keep_unused_for: float = Field(
        default=60.0,
        description="Seconds an entry survives after its last subscriber leaves",
    )


class SessionConfig(BaseModel):
    """Credential session persistence settings."""

    persist: bool = Field(
        default=True, description="Persist the session between runs"
    )
    profile: str = Field(
        default="default", description="Name of the stored session file"
    )


class OutputConfig(BaseModel):
    """Default CLI output format, used when no format flag is given."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class Settings(BaseModel):
    """User-wide configuration persisted at ``~/.config/querykit/config.json``.

    Loaded and saved by :func:`~querykit.config.load_settings` and
    :func:`~querykit.config.save_settings`. See
    :func:`~querykit.config.resolve_settings` for the precedence chain
    (CLI flag, environment, project file, user file, defaults).
    """

    base_url: str = Field(
        default="http://localhost:8000/api/",
        description="Backend root; endpoint paths are resolved against it",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Session ---


class Role(str, enum.Enum):
    """Coarse permission level derived from the backend's user flags."""

    ADMIN = "admin"
    DELIVERY = "delivery"
    CUSTOMER = "customer"


class User(BaseModel):
    """The backend's user payload.

    Only the fields the data-access layer reasons about are declared; any
    other profile fields the backend sends are preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[int] = None
    username: str = ""
    email: Optional[str] = None
    is_admin: bool = False
    is_delivery_person: bool = False
    phone_number: Optional[str] = None
    role: Optional[Role] = None

    @staticmethod
    def derive_role(is_admin: bool, is_delivery_person: bool) -> Role:
        """Map the backend's flags to a :class:`Role`, admin taking precedence."""
        if is_admin:
            return Role.ADMIN
        if is_delivery_person:
            return Role.DELIVERY
        return Role.CUSTOMER

    @classmethod
    def from_login(cls, payload: dict[str, Any]) -> User:
        """Build a user from a login response, filling in defaults and the role."""
        data = dict(payload)
        data["is_admin"] = bool(data.get("is_admin") or False)
        data["is_delivery_person"] = bool(data.get("is_delivery_person") or False)
        data["role"] = cls.derive_role(data["is_admin"], data["is_delivery_person"])
        return cls.model_validate(data)


class Credentials(BaseModel):
    """The whole credential value held by a :class:`~querykit.auth.session.CredentialSession`.

    Always replaced as a unit so that no reader can observe a new access
    token paired with a stale refresh token.
    """

    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    access_token: str
    refresh_token: Optional[str] = None


class SessionSnapshot(BaseModel):
    """Read-only view of the session handed to UI code."""

    model_config = ConfigDict(frozen=True)

    is_authenticated: bool = False
    role: Optional[Role] = None
    user: Optional[User] = None


# --- Requests ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods an endpoint builder may produce."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RequestSpec(BaseModel):
    """Wire description of one backend call, fully determined by endpoint args.

    ``path`` is relative to :attr:`Settings.base_url`. ``authenticated``
    is ``False`` for the calls that establish a session (login, register,
    refresh): they never carry a bearer token and a 401 from them is final.
    """

    model_config = ConfigDict(frozen=True)

    method: HTTPMethod = HTTPMethod.GET
    path: str
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    authenticated: bool = True
