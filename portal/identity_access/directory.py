"""
Student directory backed by `user_roles` and `profiles`.

Why:
    Admin views need every student (name and email) to compute completion
    rates and rosters. Role rows hold only ids; names and emails live in the
    `profiles` table populated from signup metadata.

Security:
    Runs with an admin session; table policies restrict profile reads to
    admins (and each user's own row).
"""
from __future__ import annotations

from typing import Any, Dict, List

from portal.tables import rows, run_query
from .domain import ROLE_ADMIN, ROLE_STUDENT
from .roles import RoleStoreProtocol

PROFILES_TABLE = "profiles"


class StudentDirectory:
    def __init__(self, client: Any, roles: RoleStoreProtocol, *, profiles_table: str = PROFILES_TABLE) -> None:
        self._client = client
        self._roles = roles
        self._profiles_table = profiles_table

    async def list_students(self) -> List[dict]:
        """Return `[{id, full_name, email}]` for every student, sorted by name.

        Students without a profile row are still listed (empty name/email) so
        rosters never silently drop someone.
        """
        ids = await self._roles.list_user_ids(ROLE_STUDENT)
        if not ids:
            return []
        res = await run_query(
            self._client.table(self._profiles_table).select("id, full_name, email").in_("id", ids),
            "profile_list_failed",
        )
        by_id: Dict[str, dict] = {str(r.get("id")): r for r in rows(res)}
        students = []
        for sid in ids:
            prof = by_id.get(sid) or {}
            students.append(
                {
                    "id": sid,
                    "full_name": str(prof.get("full_name") or ""),
                    "email": str(prof.get("email") or ""),
                }
            )
        students.sort(key=lambda s: (s["full_name"].lower(), s["email"].lower(), s["id"]))
        return students

    async def count_by_role(self) -> Dict[str, int]:
        return {
            ROLE_STUDENT: await self._roles.count(ROLE_STUDENT),
            ROLE_ADMIN: await self._roles.count(ROLE_ADMIN),
        }


__all__ = ["StudentDirectory", "PROFILES_TABLE"]
