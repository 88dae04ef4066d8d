"""
Session/role resolver: identity plus a single authorization role per session.

Why:
    Every role-gated operation needs `(identity, role)`. Identity comes from the
    provider, the role from `user_roles`. Providers that require email
    confirmation create the account without a session, so the role requested at
    signup cannot be written yet; it is cached locally and written on the first
    confirmed session.

State:
    `SessionState` is the single shared view of the session. Exactly one
    `SessionResolver` writes it; consumers read it by reference or subscribe to
    changes. Lifecycle: Unknown -> Loading -> {Authenticated, Anonymous}.
    Loading ends exactly once, when the initial session probe resolves. An
    Authenticated state may carry `role=None` until role resolution finishes;
    with `loading=False` that means "no role assigned".

Ordering:
    The provider listener runs inside the provider's dispatch and only records
    the session. Role resolution (and pending-role reconciliation) is scheduled
    as an asyncio task, so it starts after the dispatch returns. It runs once
    per session-become-active transition; a token refresh for the same identity
    does not re-run it. Results for an identity that is no longer active are
    dropped.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from portal.errors import UpstreamError
from .domain import (
    PENDING_ROLE_KEY,
    AuthError,
    AuthSession,
    Identity,
    SessionStatus,
    SignUpResult,
    SignUpStatus,
    SignUpValidationError,
    normalize_role,
)
from .provider import AuthProviderProtocol, SessionListener
from .roles import RoleStoreProtocol
from .stores import PendingRoleCacheProtocol

logger = logging.getLogger("portal.identity_access")

PENDING_CONFIRMATION_MESSAGE = (
    "Sign up successful. Please check your email and confirm your account before signing in."
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validate_email(email: str) -> str:
    value = (email or "").strip()
    if len(value) > 255:
        raise SignUpValidationError("email_too_long")
    if not _EMAIL_RE.match(value):
        raise SignUpValidationError("invalid_email")
    return value


def validate_sign_up(email: str, password: str, full_name: str, role: str) -> tuple[str, str, str, str]:
    """Validate sign-up input before any provider call.

    Returns the normalized (email, password, full_name, role).
    Raises SignUpValidationError with a stable code.
    """
    name = (full_name or "").strip()
    if not name:
        raise SignUpValidationError("name_required")
    if len(name) > 100:
        raise SignUpValidationError("name_too_long")
    email_norm = _validate_email(email)
    password = password or ""
    if len(password) < 6:
        raise SignUpValidationError("password_too_short")
    if len(password) > 100:
        raise SignUpValidationError("password_too_long")
    role_norm = normalize_role(role)
    if role_norm is None:
        raise SignUpValidationError("invalid_role")
    return email_norm, password, name, role_norm


def validate_sign_in(email: str, password: str) -> tuple[str, str]:
    email_norm = _validate_email(email)
    if not password:
        raise SignUpValidationError("password_required")
    return email_norm, password


@dataclass
class SessionState:
    identity: Optional[Identity] = None
    role: Optional[str] = None
    loading: bool = True
    started: bool = False

    @property
    def status(self) -> SessionStatus:
        if not self.started:
            return SessionStatus.UNKNOWN
        if self.loading:
            return SessionStatus.LOADING
        if self.identity is not None:
            return SessionStatus.AUTHENTICATED
        return SessionStatus.ANONYMOUS

    def as_dict(self) -> dict:
        user = None
        if self.identity is not None:
            user = {"id": self.identity.id, "email": self.identity.email, "full_name": self.identity.full_name}
        return {"status": self.status.value, "loading": self.loading, "user": user, "role": self.role}


StateListener = Callable[[SessionState], None]


class SessionResolver:
    """Owns one SessionState and drives it from provider events."""

    def __init__(
        self,
        provider: AuthProviderProtocol,
        roles: RoleStoreProtocol,
        pending: PendingRoleCacheProtocol,
    ) -> None:
        self.state = SessionState()
        self._provider = provider
        self._roles = roles
        self._pending = pending
        self._listeners: List[StateListener] = []
        self._unsubscribe_provider: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()
        self._active_identity_id: Optional[str] = None
        self._event_seen = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- Observers -------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a raw provider session listener (fans out from one subscription)."""
        return self._provider.on_auth_state_change(listener)

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("session state listener failed")

    # --- Lifecycle ---------------------------------------------------------------

    async def start(self) -> SessionState:
        """Subscribe to the provider and probe the current session (idempotent)."""
        if self.state.started:
            return self.state
        self._loop = asyncio.get_running_loop()
        self.state.started = True
        self.state.loading = True
        self._unsubscribe_provider = self._provider.on_auth_state_change(self._on_provider_event)
        self._publish()
        try:
            session = await self.get_current_session()
        except AuthError as exc:
            logger.warning("initial session probe failed: %s", exc.code)
            session = None
        # An event delivered while the probe was in flight is newer than the probe.
        if not self._event_seen:
            self._apply_session(session, publish=False)
        self.state.loading = False
        self._publish()
        return self.state

    async def get_current_session(self) -> Optional[AuthSession]:
        return await self._provider.get_session()

    async def settled(self) -> SessionState:
        """Wait until scheduled role resolution tasks have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self.state

    async def close(self) -> None:
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    # --- Provider events ---------------------------------------------------------

    def _on_provider_event(self, event: str, session: Optional[AuthSession]) -> None:
        self._event_seen = True
        logger.debug("auth event %s (session=%s)", event, "yes" if session else "no")
        self._apply_session(session)

    def _apply_session(self, session: Optional[AuthSession], *, publish: bool = True) -> None:
        if session is None:
            self._active_identity_id = None
            self.state.identity = None
            self.state.role = None
        else:
            identity = session.identity
            became_active = identity.id != self._active_identity_id
            self.state.identity = identity
            if became_active:
                self._active_identity_id = identity.id
                self.state.role = None
                self._schedule_role_resolution(identity)
        if publish:
            self._publish()

    def _schedule_role_resolution(self, identity: Identity) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None and (self._loop is None or running is self._loop):
            self._spawn(identity, running)
        elif self._loop is not None:
            self._loop.call_soon_threadsafe(self._spawn, identity, self._loop)
        else:
            logger.warning("role resolution skipped: no event loop available")

    def _spawn(self, identity: Identity, loop: asyncio.AbstractEventLoop) -> None:
        # create_task defers the first step to the loop, outside the caller's stack.
        task = loop.create_task(self._resolve_for(identity))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("role resolution task failed: %s", exc.__class__.__name__)

    async def _resolve_for(self, identity: Identity) -> None:
        role = await self.resolve_role(identity.id)
        if role is None:
            await self.reconcile_pending_role(identity)
            return
        if self._active_identity_id != identity.id:
            return
        self.state.role = role
        self._publish()

    # --- Role operations ---------------------------------------------------------

    async def resolve_role(self, identity_id: str) -> Optional[str]:
        """Return the durable role for `identity_id`, or None when absent.

        Absence is a valid state. Store failures are logged and reported as
        None so the session degrades to "no role assigned".
        """
        try:
            raw = await self._roles.get_role(identity_id)
        except UpstreamError as exc:
            logger.warning("role lookup failed: %s", exc.code)
            return None
        role = normalize_role(raw)
        if raw is not None and role is None:
            logger.warning("ignoring unknown role value for identity")
        return role

    async def reconcile_pending_role(self, identity: Identity) -> Optional[str]:
        """Write the cached signup role for a role-less identity (best effort).

        Behavior:
            - No cached value: nothing happens.
            - Invalid cached value: discarded.
            - Insert failure: logged, cache kept for the next session.
            - Success: cache cleared, role published when still active.
        """
        raw = self._pending.get(PENDING_ROLE_KEY)
        if raw is None:
            return None
        role = normalize_role(raw)
        if role is None:
            logger.warning("discarding invalid pending role value")
            self._pending.remove(PENDING_ROLE_KEY)
            return None
        try:
            await self._roles.insert_role(identity.id, role)
        except UpstreamError as exc:
            logger.warning("pending role insert failed, keeping cache for retry: %s", exc.code)
            return None
        self._pending.remove(PENDING_ROLE_KEY)
        logger.info("pending role applied: %s", role)
        if self._active_identity_id == identity.id:
            self.state.role = role
            self._publish()
        return role

    # --- Commands ----------------------------------------------------------------

    async def sign_up(self, email: str, password: str, full_name: str, role: str) -> SignUpResult:
        """Create an account and assign its role.

        Returns:
            SignUpResult(OK) when the provider issued a session and the role row
            was written; SignUpResult(PENDING_CONFIRMATION, message) when the
            provider waits for email confirmation (role cached locally).

        Raises:
            SignUpValidationError before any provider call on invalid input;
            AuthError on provider failure or when the role row cannot be written.
        """
        email, password, full_name, role = validate_sign_up(email, password, full_name, role)
        result = await self._provider.sign_up(email=email, password=password, full_name=full_name)
        if result.session is not None and result.identity is not None:
            try:
                await self._roles.insert_role(result.identity.id, role)
            except UpstreamError as exc:
                raise AuthError("role_assignment_failed", exc.detail or exc.code) from exc
            self._apply_session(result.session, publish=False)
            self.state.role = role
            self._publish()
            return SignUpResult(status=SignUpStatus.OK, identity=result.identity)
        if result.identity is not None:
            self._pending.set(PENDING_ROLE_KEY, role)
            return SignUpResult(
                status=SignUpStatus.PENDING_CONFIRMATION,
                identity=result.identity,
                message=PENDING_CONFIRMATION_MESSAGE,
            )
        raise AuthError("no_user_returned", "Unexpected error: No user information returned from the identity provider.")

    async def sign_in(self, email: str, password: str) -> Identity:
        """Sign in with email/password; role resolution follows from the session event."""
        email, password = validate_sign_in(email, password)
        result = await self._provider.sign_in_with_password(email=email, password=password)
        if result.session is None:
            raise AuthError("no_session", "Sign in did not return an active session.")
        if self._active_identity_id != result.session.identity.id:
            self._apply_session(result.session)
        return result.session.identity

    async def sign_out(self) -> None:
        self.state.role = None
        try:
            await self._provider.sign_out()
        finally:
            self._apply_session(None)


__all__ = [
    "SessionState",
    "SessionResolver",
    "StateListener",
    "PENDING_CONFIRMATION_MESSAGE",
    "validate_sign_up",
    "validate_sign_in",
]
