"""
In-memory stand-in for the async Supabase client used in unit tests.

Provides ``FakeSupabaseBackend`` (shared state: users, tables, objects) and
per-user ``FakeSupabaseClient`` objects exposing the subset of the client API
the portal uses:

- ``client.auth``: sign_up / sign_in_with_password / sign_out / get_session /
  on_auth_state_change (listeners are called synchronously, like GoTrue)
- ``client.table(name)``: select/insert/update/delete/upsert with eq/in_/order/
  limit and ``count="exact"``; ``await builder.execute()``
- ``client.storage.from_(bucket)``: upload / get_public_url

Every table and storage call is appended to ``backend.events`` so tests can
assert on ordering and on "no I/O happened". Failures are injected per
``(table, op)`` or per storage op via ``backend.fail_next``.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple


class FakeApiError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass
class _User:
    id: str
    email: str
    password: str
    full_name: str
    confirmed: bool

    def as_provider_user(self) -> SimpleNamespace:
        return SimpleNamespace(id=self.id, email=self.email, user_metadata={"full_name": self.full_name})


@dataclass
class FakeResponse:
    data: Any
    count: Optional[int] = None


@dataclass
class Event:
    target: str
    op: str
    payload: Any = None
    filters: List[Tuple[str, str, Any]] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)


class FakeSupabaseBackend:
    UNIQUE = {
        "user_roles": [("user_id",)],
        "submissions": [("assignment_id", "student_id")],
        "profiles": [("id",)],
    }
    # Columns typed uuid in the schema; PostgREST rejects malformed filter values.
    UUID_COLUMNS = {"assignments": ("id",)}

    def __init__(self, *, require_confirmation: bool = False, url: str = "http://supabase.test") -> None:
        self.url = url
        self.require_confirmation = require_confirmation
        self.users: Dict[str, _User] = {}
        self.tables: Dict[str, List[dict]] = {}
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.events: List[Event] = []
        self.fail_next: Dict[Tuple[str, str], Exception] = {}
        self.auth_subscriptions = 0
        self._tick = 0
        self._base_time = datetime(2025, 1, 1, tzinfo=timezone.utc)

    # --- helpers for tests -----------------------------------------------------

    def client(self) -> "FakeSupabaseClient":
        return FakeSupabaseClient(self)

    async def client_factory(self) -> "FakeSupabaseClient":
        return self.client()

    def confirm(self, email: str) -> None:
        self.users[email].confirmed = True

    def add_user(self, email: str, password: str, full_name: str, *, role: Optional[str] = None) -> _User:
        user = _User(id=str(uuid.uuid4()), email=email, password=password, full_name=full_name, confirmed=True)
        self.users[email] = user
        self.tables.setdefault("profiles", []).append({"id": user.id, "full_name": full_name, "email": email})
        if role:
            self.tables.setdefault("user_roles", []).append({"id": str(uuid.uuid4()), "user_id": user.id, "role": role})
        return user

    def events_for(self, target: str, op: Optional[str] = None) -> List[Event]:
        return [e for e in self.events if e.target == target and (op is None or e.op == op)]

    def rows(self, table: str) -> List[dict]:
        return [dict(r) for r in self.tables.get(table, [])]

    def now_iso(self) -> str:
        self._tick += 1
        return (self._base_time + timedelta(seconds=self._tick)).isoformat()

    # --- table execution -------------------------------------------------------

    def _raise_if_injected(self, target: str, op: str) -> None:
        exc = self.fail_next.pop((target, op), None)
        if exc is not None:
            raise exc

    def _check_uuid_filters(self, q: "FakeQuery") -> None:
        for _, col, value in q.filter_desc:
            if col not in self.UUID_COLUMNS.get(q.table, ()):
                continue
            for v in value if isinstance(value, list) else [value]:
                try:
                    uuid.UUID(str(v))
                except ValueError:
                    raise FakeApiError(f'invalid input syntax for type uuid: "{v}"') from None

    def _check_unique(self, table: str, candidate: dict, *, ignore: Optional[dict] = None) -> None:
        for cols in self.UNIQUE.get(table, []):
            for row in self.tables.get(table, []):
                if row is ignore:
                    continue
                if all(row.get(c) == candidate.get(c) for c in cols):
                    raise FakeApiError(f'duplicate key value violates unique constraint on {table} {cols}')

    def _insert_row(self, table: str, row: dict) -> dict:
        new = dict(row)
        new.setdefault("id", str(uuid.uuid4()))
        new.setdefault("created_at", self.now_iso())
        self._check_unique(table, new)
        self.tables.setdefault(table, []).append(new)
        return new

    def execute(self, q: "FakeQuery") -> FakeResponse:
        self.events.append(
            Event(
                target=q.table,
                op=q.op,
                payload=q.payload,
                filters=list(q.filter_desc),
                options={"on_conflict": q.on_conflict, "count": q.count},
            )
        )
        self._raise_if_injected(q.table, q.op)
        self._check_uuid_filters(q)
        table = self.tables.setdefault(q.table, [])
        matched = [r for r in table if all(f(r) for f in q.filters)]

        if q.op == "select":
            count = len(matched) if q.count else None
            if q.order_col:
                matched = sorted(matched, key=lambda r: str(r.get(q.order_col) or ""), reverse=q.order_desc)
            if q.limit_n is not None:
                matched = matched[: q.limit_n]
            return FakeResponse(data=[q.project(r) for r in matched], count=count)
        if q.op == "insert":
            payloads = q.payload if isinstance(q.payload, list) else [q.payload]
            return FakeResponse(data=[dict(self._insert_row(q.table, p)) for p in payloads])
        if q.op == "update":
            for r in matched:
                r.update(q.payload)
            return FakeResponse(data=[dict(r) for r in matched])
        if q.op == "delete":
            for r in matched:
                table.remove(r)
            return FakeResponse(data=[dict(r) for r in matched])
        if q.op == "upsert":
            cols = [c.strip() for c in (q.on_conflict or "id").split(",")]
            existing = next((r for r in table if all(r.get(c) == q.payload.get(c) for c in cols)), None)
            if existing is not None:
                existing.update(q.payload)
                return FakeResponse(data=[dict(existing)])
            return FakeResponse(data=[dict(self._insert_row(q.table, q.payload))])
        raise AssertionError(f"unsupported op {q.op}")


class FakeQuery:
    def __init__(self, backend: FakeSupabaseBackend, table: str) -> None:
        self._backend = backend
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.count: Optional[str] = None
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Callable[[dict], bool]] = []
        self.filter_desc: List[Tuple[str, str, Any]] = []
        self.order_col: Optional[str] = None
        self.order_desc = False
        self.limit_n: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self.op, self.columns, self.count = "select", columns, count
        return self

    def insert(self, row: Any) -> "FakeQuery":
        self.op, self.payload = "insert", row
        return self

    def update(self, fields: dict) -> "FakeQuery":
        self.op, self.payload = "update", dict(fields)
        return self

    def delete(self) -> "FakeQuery":
        self.op = "delete"
        return self

    def upsert(self, row: dict, on_conflict: Optional[str] = None) -> "FakeQuery":
        self.op, self.payload, self.on_conflict = "upsert", dict(row), on_conflict
        return self

    def eq(self, col: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda r: r.get(col) == value)
        self.filter_desc.append(("eq", col, value))
        return self

    def in_(self, col: str, values: List[Any]) -> "FakeQuery":
        wanted = set(values)
        self.filters.append(lambda r: r.get(col) in wanted)
        self.filter_desc.append(("in", col, list(values)))
        return self

    def order(self, col: str, desc: bool = False) -> "FakeQuery":
        self.order_col, self.order_desc = col, desc
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.limit_n = n
        return self

    def project(self, row: dict) -> dict:
        cols = [c.strip() for c in self.columns.split(",") if c.strip()]
        if not cols or "*" in cols:
            return dict(row)
        return {c: row.get(c) for c in cols}

    async def execute(self) -> FakeResponse:
        return self._backend.execute(self)


class FakeSubscription:
    def __init__(self, on_unsubscribe: Callable[[], None]) -> None:
        self._on_unsubscribe = on_unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._on_unsubscribe()


class FakeAuth:
    def __init__(self, backend: FakeSupabaseBackend) -> None:
        self._backend = backend
        self._session: Optional[SimpleNamespace] = None
        self._listeners: List[Callable[[str, Any], None]] = []

    def _emit(self, event: str, session: Any) -> None:
        for cb in list(self._listeners):
            cb(event, session)

    def _new_session(self, user: _User) -> SimpleNamespace:
        return SimpleNamespace(user=user.as_provider_user(), access_token=f"token-{uuid.uuid4().hex}")

    def on_auth_state_change(self, callback: Callable[[str, Any], None]) -> FakeSubscription:
        self._listeners.append(callback)
        self._backend.auth_subscriptions += 1

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return FakeSubscription(_remove)

    async def sign_up(self, credentials: dict) -> SimpleNamespace:
        email = credentials["email"]
        full_name = ((credentials.get("options") or {}).get("data") or {}).get("full_name", "")
        self._backend.events.append(Event(target="auth", op="sign_up", payload={"email": email}))
        self._backend._raise_if_injected("auth", "sign_up")
        if email in self._backend.users:
            raise FakeApiError("User already registered")
        user = self._backend.add_user(email, credentials["password"], full_name)
        user.confirmed = not self._backend.require_confirmation
        if not user.confirmed:
            return SimpleNamespace(user=user.as_provider_user(), session=None)
        self._session = self._new_session(user)
        self._emit("SIGNED_IN", self._session)
        return SimpleNamespace(user=user.as_provider_user(), session=self._session)

    async def sign_in_with_password(self, credentials: dict) -> SimpleNamespace:
        self._backend.events.append(Event(target="auth", op="sign_in", payload={"email": credentials["email"]}))
        user = self._backend.users.get(credentials["email"])
        if user is None or user.password != credentials["password"]:
            raise FakeApiError("Invalid login credentials")
        if not user.confirmed:
            raise FakeApiError("Email not confirmed")
        self._session = self._new_session(user)
        self._emit("SIGNED_IN", self._session)
        return SimpleNamespace(user=user.as_provider_user(), session=self._session)

    async def sign_out(self) -> None:
        self._backend.events.append(Event(target="auth", op="sign_out"))
        self._session = None
        self._emit("SIGNED_OUT", None)

    async def get_session(self) -> Optional[SimpleNamespace]:
        return self._session

    def refresh(self) -> None:
        """Simulate a token refresh for the current user."""
        if self._session is None:
            return
        self._session = SimpleNamespace(user=self._session.user, access_token=f"token-{uuid.uuid4().hex}")
        self._emit("TOKEN_REFRESHED", self._session)


class FakeBucket:
    def __init__(self, backend: FakeSupabaseBackend, bucket: str) -> None:
        self._backend = backend
        self._bucket = bucket

    async def upload(self, path: str, file: bytes, file_options: Optional[dict] = None) -> SimpleNamespace:
        self._backend.events.append(
            Event(target="storage", op="upload", payload={"bucket": self._bucket, "path": path, "size": len(file)}, options=dict(file_options or {}))
        )
        self._backend._raise_if_injected("storage", "upload")
        self._backend.objects[(self._bucket, path)] = bytes(file)
        return SimpleNamespace(path=path, full_path=f"{self._bucket}/{path}")

    async def get_public_url(self, path: str) -> str:
        self._backend.events.append(Event(target="storage", op="public_url", payload={"bucket": self._bucket, "path": path}))
        self._backend._raise_if_injected("storage", "public_url")
        return f"{self._backend.url}/storage/v1/object/public/{self._bucket}/{path}"


class FakeStorage:
    def __init__(self, backend: FakeSupabaseBackend) -> None:
        self._backend = backend

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self._backend, bucket)


class FakeSupabaseClient:
    def __init__(self, backend: FakeSupabaseBackend) -> None:
        self.backend = backend
        self.auth = FakeAuth(backend)
        self.storage = FakeStorage(backend)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.backend, name)


__all__ = [
    "FakeApiError",
    "FakeSupabaseBackend",
    "FakeSupabaseClient",
    "FakeResponse",
    "Event",
]
