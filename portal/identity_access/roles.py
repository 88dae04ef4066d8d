"""
Role records (`user_roles`) backed by Supabase PostgREST.

Why:
    Authorization in the portal is a single role per identity, stored as one
    row keyed by `user_id`. The resolver reads it after every sign-in and
    writes it at most once per identity.

Security:
    Runs with the signed-in user's token; table policies allow a user to read
    and insert only their own row. Counting and listing students is performed
    with an admin session.
"""
from __future__ import annotations

from typing import Any, List, Optional, Protocol

from portal.tables import first_row, row_count, rows, run_query

ROLES_TABLE = "user_roles"


class RoleStoreProtocol(Protocol):
    async def get_role(self, user_id: str) -> Optional[str]: ...

    async def insert_role(self, user_id: str, role: str) -> None: ...

    async def list_user_ids(self, role: str) -> List[str]: ...

    async def count(self, role: str) -> int: ...


class SupabaseRoleStore(RoleStoreProtocol):
    def __init__(self, client: Any, table: str = ROLES_TABLE) -> None:
        self._client = client
        self._table = table

    def _t(self) -> Any:
        return self._client.table(self._table)

    async def get_role(self, user_id: str) -> Optional[str]:
        """Return the raw role value for `user_id`, or None when no row exists."""
        res = await run_query(
            self._t().select("role").eq("user_id", user_id).limit(1), "role_lookup_failed"
        )
        row = first_row(res)
        return str(row["role"]) if row and row.get("role") is not None else None

    async def insert_role(self, user_id: str, role: str) -> None:
        await run_query(self._t().insert({"user_id": user_id, "role": role}), "role_insert_failed")

    async def list_user_ids(self, role: str) -> List[str]:
        res = await run_query(self._t().select("user_id").eq("role", role), "role_list_failed")
        return [str(r["user_id"]) for r in rows(res) if r.get("user_id")]

    async def count(self, role: str) -> int:
        res = await run_query(
            self._t().select("user_id", count="exact").eq("role", role), "role_count_failed"
        )
        return row_count(res)


__all__ = ["RoleStoreProtocol", "SupabaseRoleStore", "ROLES_TABLE"]
