"""
Per-session wiring of Supabase clients, the session resolver and services.

Why:
    The Supabase client holds exactly one user's session and applies that
    user's token to every table and storage call. Each web session therefore
    owns its own client (created with the public anon key), its own resolver
    and the services bound to that client. Routes look the context up by the
    opaque session cookie.

Testing:
    `set_client_factory()` swaps the client factory (tests pass an in-memory
    fake). `SESSION_STORE` and `PENDING_ROLES` are module attributes so tests
    can reset them.

Security:
    Only the anon key is used here. The service role key is reserved for the
    bucket bootstrap and never reaches a per-user client.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from portal.assignments.repo import SupabaseAssignmentRepo
from portal.assignments.service import AssignmentService
from portal.errors import UpstreamError
from portal.identity_access.directory import StudentDirectory
from portal.identity_access.domain import Actor
from portal.identity_access.provider import SupabaseAuthProvider
from portal.identity_access.roles import SupabaseRoleStore
from portal.identity_access.session import SessionResolver, SessionState
from portal.identity_access.stores import PendingRoleStore, SessionStore
from portal.storage.supabase_adapter import SupabaseStorageAdapter
from portal.submissions.reconciler import SubmissionReconciler
from portal.submissions.repo import SupabaseSubmissionRepo
from .config import supabase_anon_key, supabase_url

logger = logging.getLogger("portal.web")

ClientFactory = Callable[[], Awaitable[Any]]


async def create_supabase_client() -> Any:
    """Create a fresh async Supabase client with the anon key."""
    url = supabase_url()
    key = supabase_anon_key()
    if not url or not key:
        raise RuntimeError("supabase_not_configured")
    from supabase import acreate_client

    return await acreate_client(url, key)


_CLIENT_FACTORY: ClientFactory = create_supabase_client

SESSION_STORE = SessionStore()
PENDING_ROLES = PendingRoleStore()


def set_client_factory(factory: Optional[ClientFactory]) -> None:
    """Override the client factory (tests), or reset with None."""
    global _CLIENT_FACTORY
    _CLIENT_FACTORY = factory or create_supabase_client


@dataclass
class PortalContext:
    client: Any
    provider: SupabaseAuthProvider
    resolver: SessionResolver
    assignments: AssignmentService
    submissions: SupabaseSubmissionRepo
    reconciler: SubmissionReconciler
    directory: StudentDirectory

    @property
    def state(self) -> SessionState:
        return self.resolver.state

    def actor(self) -> Optional[Actor]:
        identity = self.state.identity
        if identity is None:
            return None
        return Actor(id=identity.id, role=self.state.role)

    async def close(self) -> None:
        await self.resolver.close()
        self.provider.close()


async def open_context(device_id: str) -> PortalContext:
    """Build a context for one browser session and probe its auth state."""
    try:
        client = await _CLIENT_FACTORY()
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s", exc.__class__.__name__)
        raise UpstreamError.wrap("auth_client_unavailable", exc) from exc
    provider = SupabaseAuthProvider(client)
    roles = SupabaseRoleStore(client)
    resolver = SessionResolver(provider, roles, PENDING_ROLES.for_device(device_id))
    submissions = SupabaseSubmissionRepo(client)
    ctx = PortalContext(
        client=client,
        provider=provider,
        resolver=resolver,
        assignments=AssignmentService(SupabaseAssignmentRepo(client)),
        submissions=submissions,
        reconciler=SubmissionReconciler(submissions, SupabaseStorageAdapter(client)),
        directory=StudentDirectory(client, roles),
    )
    await resolver.start()
    return ctx


async def release_expired_sessions() -> int:
    PENDING_ROLES.pop_expired()
    records = SESSION_STORE.pop_expired()
    for rec in records:
        await rec.context.close()
    return len(records)


__all__ = [
    "PortalContext",
    "SESSION_STORE",
    "PENDING_ROLES",
    "create_supabase_client",
    "set_client_factory",
    "open_context",
    "release_expired_sessions",
]
