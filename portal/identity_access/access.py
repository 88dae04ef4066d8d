"""
Route guards derived from `(identity, role, loading)`.

Why:
    Both the HTTP middleware and tests need the same access decision. Keeping it
    pure (no request, no I/O) makes the rules easy to read and to verify.

Rules for protected routes:
    - loading: wait (never decide on a half-resolved session)
    - no identity: redirect to the entry route
    - role mismatch: redirect to the caller's home
    - no role assigned: redirect to the entry route
    - otherwise: allow

Public entry routes redirect an identity that already has a role to its home.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .domain import ENTRY_ROUTE, Identity, home_route


class AccessOutcome(str, Enum):
    ALLOW = "allow"
    WAIT = "wait"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOW


ALLOW = AccessDecision(AccessOutcome.ALLOW)
WAIT = AccessDecision(AccessOutcome.WAIT)


def evaluate_route_access(
    identity: Optional[Identity],
    role: Optional[str],
    loading: bool,
    required_role: Optional[str] = None,
) -> AccessDecision:
    if loading:
        return WAIT
    if identity is None:
        return AccessDecision(AccessOutcome.REDIRECT, ENTRY_ROUTE)
    if required_role is not None and role != required_role:
        if role is None:
            # No role assigned: entry route, never a home route.
            return AccessDecision(AccessOutcome.REDIRECT, ENTRY_ROUTE)
        return AccessDecision(AccessOutcome.REDIRECT, home_route(role))
    return ALLOW


def evaluate_public_route(identity: Optional[Identity], role: Optional[str], loading: bool) -> AccessDecision:
    """Entry pages: signed-in callers with a role go straight to their home."""
    if loading:
        return WAIT
    if identity is not None and role is not None:
        return AccessDecision(AccessOutcome.REDIRECT, home_route(role))
    return ALLOW


__all__ = [
    "AccessOutcome",
    "AccessDecision",
    "evaluate_route_access",
    "evaluate_public_route",
]
