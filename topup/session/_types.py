"""
Session types: roles, confidence, session snapshot, events, errors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum, auto
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Role & Confidence
# ═══════════════════════════════════════════════════════════════════════════════


class Role(Enum):
    """Role claim carried in user metadata."""

    ADMIN = "admin"
    CS = "cs"
    USER = "user"

    @classmethod
    def parse(cls, raw: Any) -> Role | None:
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                return None
        return None


STAFF_ROLES = frozenset({Role.ADMIN, Role.CS})


class Confidence(IntEnum):
    """
    How much a role value can be trusted.

    Ordering matters: an applied role is only replaced by one of
    equal or higher confidence until sign-out.

        NONE     unauthenticated
        DEFAULT  no role claim present, defaulted to USER
        CLAIMS   read from session/user metadata (bootstrap, refresh)
        EXPLICIT returned by an explicit sign-in
    """

    NONE = 0
    DEFAULT = 1
    CLAIMS = 2
    EXPLICIT = 3


def role_from_metadata(
    metadata: Mapping[str, Any] | None,
    strongest: Confidence = Confidence.CLAIMS,
) -> tuple[Role, Confidence]:
    """Extract role synchronously from embedded claims."""
    role = Role.parse((metadata or {}).get("role"))
    if role is None:
        return Role.USER, Confidence.DEFAULT
    return role, strongest


class AuthState(Enum):
    """
    Session lifecycle.

        UNAUTHENTICATED → AUTHENTICATING → AUTHENTICATED(role)
        AUTHENTICATED ── TokenRefreshed ──→ AUTHENTICATED
        any ── SignedOut ──→ UNAUTHENTICATED
    """

    UNAUTHENTICATED = auto()
    AUTHENTICATING = auto()
    AUTHENTICATED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Provider Data: What the auth backend hands back
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Identity:
    """Raw session from the auth provider."""

    user_id: str
    email: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UserInfo:
    """Raw user record from the auth provider."""

    user_id: str
    email: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# Session: Owned by SessionManager
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Session:
    """
    Applied session snapshot.

    source_version is the sequence number of the update that produced it.
    """

    user_id: str
    email: str
    role: Role
    access_token: str
    expires_at: datetime | None
    source_version: int
    confidence: Confidence
    full_name: str | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SignedIn:
    session: Session


@dataclass(frozen=True, slots=True)
class SignedOut:
    pass


@dataclass(frozen=True, slots=True)
class TokenRefreshed:
    session: Session


type SessionEvent = SignedIn | SignedOut | TokenRefreshed


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class AuthErrorKind(Enum):
    """Kinds of session errors."""

    INVALID_CREDENTIALS = auto()  # Provider rejected the credentials
    UNAUTHORIZED = auto()  # Token invalid or expired, re-auth required
    TIMEOUT = auto()  # Auth backend did not answer in time
    NETWORK = auto()  # Auth backend unreachable
    CANCELLED = auto()  # Call aborted
    SERVER = auto()  # Provider returned 5xx / malformed payload
    VALIDATION = auto()  # Rejected locally


@dataclass(frozen=True, slots=True)
class AuthError:
    """Session operation error."""

    kind: AuthErrorKind
    message: str
    status: int | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Role",
    "STAFF_ROLES",
    "Confidence",
    "role_from_metadata",
    "AuthState",
    "Identity",
    "UserInfo",
    "Session",
    "SignedIn",
    "SignedOut",
    "TokenRefreshed",
    "SessionEvent",
    "AuthErrorKind",
    "AuthError",
)
