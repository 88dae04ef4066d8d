"""
Identity domain constants and value objects.

Why:
- Centralize allowed roles to avoid drift between the resolver, the guards and
  the schema tool.
- Give the rest of the code provider-neutral shapes for users and sessions so
  nothing outside the provider adapter touches GoTrue objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"
ALLOWED_ROLES = frozenset({ROLE_STUDENT, ROLE_ADMIN})

# Local cache key bridging signup and the first confirmed session.
PENDING_ROLE_KEY = "pendingRole"

ENTRY_ROUTE = "/auth"
HOME_ROUTES = {ROLE_ADMIN: "/admin", ROLE_STUDENT: "/student"}


def home_route(role: Optional[str]) -> str:
    """Return the landing route for a role; role-less callers land on the entry route."""
    return HOME_ROUTES.get(role or "", ENTRY_ROUTE)


def normalize_role(value: object) -> Optional[str]:
    """Return the role if it is one of ALLOWED_ROLES, else None."""
    if not isinstance(value, str):
        return None
    role = value.strip().lower()
    return role if role in ALLOWED_ROLES else None


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    full_name: str = ""


@dataclass(frozen=True)
class Actor:
    """Caller of a role-gated operation."""

    id: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class AuthSession:
    identity: Identity
    access_token: Optional[str] = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a provider sign-up/sign-in call.

    `identity` may be set while `session` is None: the provider created the
    account but waits for email confirmation before issuing a session.
    """

    identity: Optional[Identity]
    session: Optional[AuthSession]


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class SignUpStatus(str, Enum):
    OK = "ok"
    PENDING_CONFIRMATION = "pending_confirmation"


@dataclass(frozen=True)
class SignUpResult:
    status: SignUpStatus
    identity: Identity
    message: Optional[str] = None


class AuthError(Exception):
    """Identity provider or role bootstrap failure surfaced to the caller."""

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class SignUpValidationError(ValueError):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


__all__ = [
    "ALLOWED_ROLES",
    "ROLE_STUDENT",
    "ROLE_ADMIN",
    "PENDING_ROLE_KEY",
    "ENTRY_ROUTE",
    "HOME_ROUTES",
    "home_route",
    "normalize_role",
    "Identity",
    "Actor",
    "AuthSession",
    "AuthResult",
    "SessionStatus",
    "SignUpStatus",
    "SignUpResult",
    "AuthError",
    "SignUpValidationError",
]
