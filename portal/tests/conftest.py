"""
Pytest configuration for portal tests.

Why: Force AnyIO to use the asyncio backend (the resolver schedules role
resolution with asyncio tasks) and give every test fresh process-wide stores so
sessions and pending roles never leak between cases.
"""
from __future__ import annotations

import pytest

from portal.identity_access.stores import PendingRoleStore, SessionStore
from portal.tests.utils.fake_supabase import FakeSupabaseBackend


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    """Start each test from a dev environment without storage/proxy toggles."""
    for var in (
        "PORTAL_ENV",
        "PORTAL_TRUST_PROXY",
        "AUTO_CREATE_STORAGE_BUCKETS",
        "SUBMISSION_MAX_UPLOAD_BYTES",
        "SUBMISSIONS_BUCKET",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def backend() -> FakeSupabaseBackend:
    return FakeSupabaseBackend()


@pytest.fixture
def portal_app(monkeypatch: pytest.MonkeyPatch, backend: FakeSupabaseBackend):
    """The FastAPI app wired to the in-memory Supabase backend.

    Behavior:
        - Replaces the client factory with `backend.client_factory`.
        - Swaps in fresh SESSION_STORE / PENDING_ROLES singletons.
        - Restores the real factory afterwards.
    """
    from portal.web import main, wiring

    monkeypatch.setattr(wiring, "SESSION_STORE", SessionStore())
    monkeypatch.setattr(wiring, "PENDING_ROLES", PendingRoleStore())
    wiring.set_client_factory(backend.client_factory)
    try:
        yield main.app
    finally:
        wiring.set_client_factory(None)
