"""
Submission rows (`submissions` table) via Supabase PostgREST.

Invariants:
    - At most one row per (assignment_id, student_id); writes are upserts on
      that unique constraint, so a resubmission overwrites in place.
    - Absence of a row means "not submitted". No rows are written for that
      state.

Security:
    Table policies let a student insert/update only rows where
    `student_id = auth.uid()`, and read their own rows; admins read all rows.
"""
from __future__ import annotations

from typing import Any, List, Optional, Protocol

from portal.tables import rows, row_count, run_query

SUBMISSIONS_TABLE = "submissions"
SUBMISSION_CONFLICT_TARGET = "assignment_id,student_id"
SUBMISSION_COLUMNS = "id, assignment_id, student_id, status, submitted_at, file_url"


class SubmissionRepoProtocol(Protocol):
    async def upsert(self, row: dict) -> Optional[dict]: ...

    async def list_for_student(self, student_id: str) -> List[dict]: ...

    async def list_for_assignment(self, assignment_id: str) -> List[dict]: ...

    async def list_all(self) -> List[dict]: ...

    async def count_submitted(self) -> int: ...


class SupabaseSubmissionRepo(SubmissionRepoProtocol):
    def __init__(self, client: Any, table: str = SUBMISSIONS_TABLE) -> None:
        self._client = client
        self._table = table

    def _t(self) -> Any:
        return self._client.table(self._table)

    async def upsert(self, row: dict) -> Optional[dict]:
        res = await run_query(
            self._t().upsert(row, on_conflict=SUBMISSION_CONFLICT_TARGET), "submission_upsert_failed"
        )
        data = rows(res)
        return data[0] if data else None

    async def list_for_student(self, student_id: str) -> List[dict]:
        res = await run_query(
            self._t().select(SUBMISSION_COLUMNS).eq("student_id", student_id), "submission_list_failed"
        )
        return rows(res)

    async def list_for_assignment(self, assignment_id: str) -> List[dict]:
        res = await run_query(
            self._t().select(SUBMISSION_COLUMNS).eq("assignment_id", assignment_id), "submission_list_failed"
        )
        return rows(res)

    async def list_all(self) -> List[dict]:
        res = await run_query(self._t().select(SUBMISSION_COLUMNS), "submission_list_failed")
        return rows(res)

    async def count_submitted(self) -> int:
        res = await run_query(
            self._t().select("id", count="exact").eq("status", "submitted"), "submission_count_failed"
        )
        return row_count(res)


__all__ = ["SubmissionRepoProtocol", "SupabaseSubmissionRepo", "SUBMISSIONS_TABLE", "SUBMISSION_CONFLICT_TARGET"]
