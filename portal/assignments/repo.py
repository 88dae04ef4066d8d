"""
Assignment persistence (`assignments` table) via Supabase PostgREST.

Security:
    Table policies allow every authenticated user to read assignments and only
    admins to insert, update or delete them. The service layer checks the role
    first so callers get a clear 403 instead of an empty write.
"""
from __future__ import annotations

from typing import Any, List, Optional, Protocol

from portal.tables import first_row, rows, run_query

ASSIGNMENTS_TABLE = "assignments"
ASSIGNMENT_COLUMNS = "id, title, description, due_date, drive_link, created_by, created_at"


class AssignmentRepoProtocol(Protocol):
    async def list_assignments(self, *, order_by: str = "due_date", descending: bool = False) -> List[dict]: ...

    async def get(self, assignment_id: str) -> Optional[dict]: ...

    async def insert(self, row: dict) -> dict: ...

    async def update(self, assignment_id: str, fields: dict) -> Optional[dict]: ...

    async def delete(self, assignment_id: str) -> bool: ...


class SupabaseAssignmentRepo(AssignmentRepoProtocol):
    def __init__(self, client: Any, table: str = ASSIGNMENTS_TABLE) -> None:
        self._client = client
        self._table = table

    def _t(self) -> Any:
        return self._client.table(self._table)

    async def list_assignments(self, *, order_by: str = "due_date", descending: bool = False) -> List[dict]:
        res = await run_query(
            self._t().select(ASSIGNMENT_COLUMNS).order(order_by, desc=descending), "assignment_list_failed"
        )
        return rows(res)

    async def get(self, assignment_id: str) -> Optional[dict]:
        res = await run_query(
            self._t().select(ASSIGNMENT_COLUMNS).eq("id", assignment_id).limit(1), "assignment_get_failed"
        )
        return first_row(res)

    async def insert(self, row: dict) -> dict:
        res = await run_query(self._t().insert(row), "assignment_insert_failed")
        return first_row(res) or dict(row)

    async def update(self, assignment_id: str, fields: dict) -> Optional[dict]:
        res = await run_query(self._t().update(fields).eq("id", assignment_id), "assignment_update_failed")
        return first_row(res)

    async def delete(self, assignment_id: str) -> bool:
        res = await run_query(self._t().delete().eq("id", assignment_id), "assignment_delete_failed")
        return bool(rows(res))


__all__ = ["AssignmentRepoProtocol", "SupabaseAssignmentRepo", "ASSIGNMENTS_TABLE"]
