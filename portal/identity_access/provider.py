"""
Identity provider adapter (Supabase Auth / GoTrue).

Why:
    The resolver needs five provider calls (sign-up, password sign-in,
    sign-out, session probe, session-change subscription). This module wraps
    them behind a small protocol so the resolver never touches GoTrue objects
    and tests can supply an in-memory provider.

Behavior:
    - Provider results are normalized into `Identity`/`AuthSession`.
    - Exactly one subscription is registered with the underlying client for the
      lifetime of the wrapper; any number of logical listeners fan out from it.
    - Provider failures are raised as `AuthError` with a sanitized message.

Security:
    The wrapped client is created with the public anon key and holds exactly one
    user's session. Never share a wrapper between users.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, List, Optional, Protocol

from portal.errors import sanitize_error_message
from .domain import AuthError, AuthResult, AuthSession, Identity

logger = logging.getLogger("portal.identity_access")

SessionListener = Callable[[str, Optional[AuthSession]], None]


class AuthProviderProtocol(Protocol):
    async def sign_up(self, *, email: str, password: str, full_name: str) -> AuthResult: ...

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthResult: ...

    async def sign_out(self) -> None: ...

    async def get_session(self) -> Optional[AuthSession]: ...

    def on_auth_state_change(self, listener: SessionListener) -> Callable[[], None]: ...


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def identity_from_user(user: Any) -> Optional[Identity]:
    """Map a GoTrue user (object or dict) to an Identity; None when unusable."""
    uid = _attr(user, "id")
    if not uid:
        return None
    metadata = _attr(user, "user_metadata") or {}
    full_name = metadata.get("full_name") if isinstance(metadata, dict) else None
    return Identity(id=str(uid), email=str(_attr(user, "email") or ""), full_name=str(full_name or ""))


def session_from_provider(session: Any) -> Optional[AuthSession]:
    identity = identity_from_user(_attr(session, "user"))
    if identity is None:
        return None
    return AuthSession(identity=identity, access_token=_attr(session, "access_token"))


def _error_message(exc: BaseException) -> str:
    return sanitize_error_message(getattr(exc, "message", None) or str(exc)) or exc.__class__.__name__


class SupabaseAuthProvider(AuthProviderProtocol):
    """Auth provider backed by a supabase client's `.auth` namespace."""

    def __init__(self, client: Any) -> None:
        # Duck-typed supabase client, e.g., from `supabase.acreate_client(...)`.
        self._auth = getattr(client, "auth", client)
        self._listeners: List[SessionListener] = []
        self._subscription: Any = None

    async def _call(self, code: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            res = func(*args)
            if inspect.isawaitable(res):
                res = await res
            return res
        except AuthError:
            raise
        except Exception as exc:
            raise AuthError(code, _error_message(exc)) from exc

    @staticmethod
    def _result(res: Any) -> AuthResult:
        user = _attr(res, "user")
        session = session_from_provider(_attr(res, "session"))
        identity = identity_from_user(user) or (session.identity if session else None)
        return AuthResult(identity=identity, session=session)

    async def sign_up(self, *, email: str, password: str, full_name: str) -> AuthResult:
        credentials = {
            "email": email,
            "password": password,
            "options": {"data": {"full_name": full_name}},
        }
        res = await self._call("sign_up_failed", self._auth.sign_up, credentials)
        return self._result(res)

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthResult:
        res = await self._call(
            "sign_in_failed", self._auth.sign_in_with_password, {"email": email, "password": password}
        )
        return self._result(res)

    async def sign_out(self) -> None:
        await self._call("sign_out_failed", self._auth.sign_out)

    async def get_session(self) -> Optional[AuthSession]:
        res = await self._call("get_session_failed", self._auth.get_session)
        return session_from_provider(res)

    # --- Session change fan-out ------------------------------------------------

    def _dispatch(self, event: Any, session: Any) -> None:
        mapped = session_from_provider(session)
        name = str(getattr(event, "value", event))
        for listener in list(self._listeners):
            try:
                listener(name, mapped)
            except Exception:
                logger.exception("session listener failed for event %s", name)

    def on_auth_state_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a logical listener; the client subscription is created once."""
        if self._subscription is None:
            self._subscription = self._auth.on_auth_state_change(self._dispatch)
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        """Drop all listeners and release the client subscription."""
        self._listeners.clear()
        sub = self._subscription
        self._subscription = None
        unsubscribe = getattr(sub, "unsubscribe", None)
        if callable(unsubscribe):
            unsubscribe()


__all__ = [
    "AuthProviderProtocol",
    "SessionListener",
    "SupabaseAuthProvider",
    "identity_from_user",
    "session_from_provider",
]
