"""scrapequeue core domain models.

Pydantic models for everything that crosses the Blacklight wire boundary:
queue items, the active-session probe, and credential leases.  All models
are **frozen** so a fetched queue item cannot be mutated mid-run.

Credential payloads are a tagged union discriminated on ``kind``:

* :class:`EmailPasswordPayload` — LinkedIn / TechFetch style logins.
* :class:`CookieJarPayload` — Glassdoor style browser-session cookies.

The backend does not send ``kind`` itself; :func:`parse_credential` inspects
the raw body once, at the boundary, and builds the right variant.

Typical usage::

    from scrapequeue.core.models import QueueItem, parse_credential

    item = QueueItem.model_validate(response.json())
    lease = parse_credential("glassdoor", body)
    if isinstance(lease.payload, CookieJarPayload):
        ...
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "JobRecord",
    "Role",
    "PlatformInfo",
    "QueueItem",
    "ActiveSessionInfo",
    "ActiveSessionStatus",
    "Cookie",
    "EmailPasswordPayload",
    "CookieJarPayload",
    "CredentialPayload",
    "CredentialLease",
    "parse_credential",
]

logger = logging.getLogger(__name__)

#: A scraped job as returned by a scraper.  Opaque to the orchestrator apart
#: from :func:`~scrapequeue.orchestrator.formatter.format_job_for_backend`.
JobRecord = dict[str, Any]

_WIRE_CONFIG = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

# ---------------------------------------------------------------------------
# Queue item
# ---------------------------------------------------------------------------


class Role(BaseModel):
    """The role half of a queue item."""

    model_config = _WIRE_CONFIG

    id: str
    name: str = Field(..., min_length=1)
    aliases: list[str] = Field(default_factory=list)
    category: str | None = None
    candidate_count: int | None = None


class PlatformInfo(BaseModel):
    """One entry of a queue item's platform list.

    ``requires_credential`` is ``None`` when the backend does not say; the
    orchestrator then falls back to the scraper's own declaration.
    """

    model_config = _WIRE_CONFIG

    name: str = Field(..., min_length=1)
    display_name: str | None = None
    requires_credential: bool | None = None

    @field_validator("name")
    @classmethod
    def _lowercase_name(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def label(self) -> str:
        """Display name for log lines, falling back to the platform key."""
        return self.display_name or self.name


class QueueItem(BaseModel):
    """A role + location + platform list fetched from the queue.

    Attributes:
        session_id: Backend session opened for this item.
        role: Role to search for.
        location: Free-text location (e.g. ``"New York"``).
        platforms: Platforms to scrape, in the order they must be processed.
    """

    model_config = _WIRE_CONFIG

    session_id: str = Field(..., min_length=1)
    role: Role
    location: str
    platforms: list[PlatformInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Active session probe
# ---------------------------------------------------------------------------


class ActiveSessionInfo(BaseModel):
    model_config = _WIRE_CONFIG

    session_id: str | None = None
    role_name: str | None = None
    location: str | None = None
    platforms_completed: int | None = None
    platforms_total: int | None = None


class ActiveSessionStatus(BaseModel):
    """Body of ``GET /api/scraper/queue/current-session``."""

    model_config = _WIRE_CONFIG

    has_active_session: bool = False
    session: ActiveSessionInfo | None = None


# ---------------------------------------------------------------------------
# Credential payloads
# ---------------------------------------------------------------------------

_SAME_SITE_MAP: dict[str, str] = {
    "no_restriction": "None",
    "unspecified": "Lax",
    "strict": "Strict",
    "lax": "Lax",
}


class Cookie(BaseModel):
    """A browser cookie ready to be loaded into a browser context.

    Accepts both the snake_case field names and the camelCase keys produced
    by browser cookie-export extensions (``httpOnly``, ``sameSite``,
    ``expirationDate``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str
    value: str
    domain: str | None = None
    path: str = "/"
    http_only: bool = Field(default=False, validation_alias=AliasChoices("http_only", "httpOnly"))
    secure: bool = False
    same_site: str = Field(default="Lax", validation_alias=AliasChoices("same_site", "sameSite"))
    expires: int | None = Field(
        default=None, validation_alias=AliasChoices("expires", "expirationDate")
    )

    @field_validator("path", mode="before")
    @classmethod
    def _default_path(cls, v: object) -> object:
        return v or "/"

    @field_validator("http_only", "secure", mode="before")
    @classmethod
    def _none_is_false(cls, v: object) -> object:
        return False if v is None else v

    @field_validator("same_site", mode="before")
    @classmethod
    def _normalise_same_site(cls, v: object) -> str:
        if not v:
            return "Lax"
        text = str(v)
        return _SAME_SITE_MAP.get(text.lower(), text)

    @field_validator("expires", mode="before")
    @classmethod
    def _floor_expiry(cls, v: object) -> object:
        if v is None or v == "":
            return None
        if isinstance(v, float):
            return math.floor(v)
        return v


class EmailPasswordPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["email_password"] = "email_password"
    email: str
    password: str = Field(..., repr=False)


class CookieJarPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cookie_jar"] = "cookie_jar"
    cookies: list[Cookie] = Field(default_factory=list)


CredentialPayload = Annotated[
    EmailPasswordPayload | CookieJarPayload,
    Field(discriminator="kind"),
]


class CredentialLease(BaseModel):
    """A credential checked out from the backend for one platform.

    Attributes:
        platform: Platform the lease was issued for.
        credential_id: Backend identifier, used in the release endpoints.
        payload: The secret material, as a tagged variant.
        label: Non-secret name for log lines (credential name or email).
    """

    model_config = ConfigDict(frozen=True)

    platform: str
    credential_id: str
    payload: CredentialPayload
    label: str


# ---------------------------------------------------------------------------
# Boundary parsing
# ---------------------------------------------------------------------------


def _cookies_from_legacy(raw: dict[str, Any]) -> list[Cookie]:
    """Expand the legacy ``{cookie: "a=1; b=2", csrf_token}`` shape."""
    cookie_header = raw.get("cookie") or ""
    cookies: list[Cookie] = []
    for pair in cookie_header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if not sep or not name.strip():
            continue
        cookies.append(
            Cookie(
                name=name.strip(),
                value=value.strip(),
                domain=".glassdoor.com",
                secure=True,
            )
        )
    csrf_token = raw.get("csrf_token")
    if csrf_token:
        cookies.append(
            Cookie(name="csrf_token", value=str(csrf_token), domain=".glassdoor.com", secure=True)
        )
    return cookies


def parse_credential(platform: str, data: dict[str, Any]) -> CredentialLease:
    """Build a :class:`CredentialLease` from a next-credential response body.

    Args:
        platform: Platform the credential was requested for.
        data: Decoded JSON body of ``GET …/{platform}/next``.

    Returns:
        A lease whose payload variant matches the body's shape.

    Raises:
        ValueError: If the body has no ``id`` or matches no known shape.
    """
    if not isinstance(data, dict) or data.get("id") in (None, ""):
        raise ValueError("credential body has no 'id'")

    credential_id = str(data["id"])
    raw = data.get("credentials")
    payload: EmailPasswordPayload | CookieJarPayload

    if isinstance(raw, list):
        payload = CookieJarPayload(cookies=[Cookie.model_validate(c) for c in raw])
    elif isinstance(raw, dict) and raw.get("cookie"):
        payload = CookieJarPayload(cookies=_cookies_from_legacy(raw))
    elif data.get("email") and data.get("password") is not None:
        payload = EmailPasswordPayload(email=data["email"], password=data["password"])
    else:
        raise ValueError(f"credential {credential_id} has no email/password or cookies")

    label = data.get("name") or data.get("email") or f"ID {credential_id}"
    return CredentialLease(
        platform=platform,
        credential_id=credential_id,
        payload=payload,
        label=str(label),
    )
