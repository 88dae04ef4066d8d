"""Assignment use cases (admin authoring, shared reads).

Why:
    Keeps validation and the admin-only write rule out of the web adapter so
    both can be unit-tested without FastAPI or a database.

Permissions:
    Reads are open to any signed-in caller. Create/update/delete require the
    `admin` role and raise `PermissionError` otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Mapping
from urllib.parse import urlparse
import uuid

from portal.identity_access.domain import Actor
from .repo import AssignmentRepoProtocol

TITLE_MAX = 200
DESCRIPTION_MAX = 5000
DRIVE_LINK_MAX = 2048

ORDER_BY_DUE = "due_date"
ORDER_BY_CREATED = "created_at"


def _normalize_title(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("invalid_title")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > TITLE_MAX:
        raise ValueError("invalid_title")
    return trimmed


def _normalize_description(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("invalid_description")
    trimmed = value.strip()
    if not trimmed or len(trimmed) > DESCRIPTION_MAX:
        raise ValueError("invalid_description")
    return trimmed


def _parse_due_date(value: object) -> str:
    """Accept an ISO date or datetime; return UTC ISO-8601.

    A bare date means the start of that day (00:00 UTC). Naive datetimes are
    taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(0, 0))
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            if len(raw) == 10:
                parsed = datetime.combine(date.fromisoformat(raw), time(0, 0))
            else:
                parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValueError("invalid_due_date") from exc
    else:
        raise ValueError("invalid_due_date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def _normalize_drive_link(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("invalid_drive_link")
    trimmed = value.strip()
    if not trimmed:
        return None
    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https") or not parsed.netloc or len(trimmed) > DRIVE_LINK_MAX:
        raise ValueError("invalid_drive_link")
    return trimmed


def _require_known_id(assignment_id: str) -> None:
    # Ids are uuids; anything else cannot match a row and PostgREST rejects the filter.
    try:
        uuid.UUID(str(assignment_id))
    except ValueError as exc:
        raise LookupError("assignment_not_found") from exc


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise PermissionError("admin_required")


@dataclass
class AssignmentService:
    repo: AssignmentRepoProtocol

    async def list_assignments(self, order: str = ORDER_BY_DUE) -> List[dict]:
        """Due date ascending (student view) or creation time descending (admin view)."""
        if order == ORDER_BY_CREATED:
            return await self.repo.list_assignments(order_by=ORDER_BY_CREATED, descending=True)
        if order != ORDER_BY_DUE:
            raise ValueError("invalid_order")
        return await self.repo.list_assignments(order_by=ORDER_BY_DUE, descending=False)

    async def get(self, assignment_id: str) -> dict:
        _require_known_id(assignment_id)
        row = await self.repo.get(assignment_id)
        if row is None:
            raise LookupError("assignment_not_found")
        return row

    async def create(self, payload: Mapping[str, Any], actor: Actor) -> dict:
        _require_admin(actor)
        row = {
            "title": _normalize_title(payload.get("title")),
            "description": _normalize_description(payload.get("description")),
            "due_date": _parse_due_date(payload.get("due_date")),
            "drive_link": _normalize_drive_link(payload.get("drive_link")),
            "created_by": actor.id,
        }
        return await self.repo.insert(row)

    async def update(self, assignment_id: str, payload: Mapping[str, Any], actor: Actor) -> dict:
        """Overwrite the given fields in place; absent keys stay unchanged."""
        _require_admin(actor)
        fields: Dict[str, Any] = {}
        if "title" in payload:
            fields["title"] = _normalize_title(payload["title"])
        if "description" in payload:
            fields["description"] = _normalize_description(payload["description"])
        if "due_date" in payload:
            fields["due_date"] = _parse_due_date(payload["due_date"])
        if "drive_link" in payload:
            fields["drive_link"] = _normalize_drive_link(payload["drive_link"])
        if not fields:
            raise ValueError("empty_update")
        _require_known_id(assignment_id)
        row = await self.repo.update(assignment_id, fields)
        if row is None:
            raise LookupError("assignment_not_found")
        return row

    async def delete(self, assignment_id: str, actor: Actor) -> None:
        """Delete the assignment row only; submissions and files stay in place."""
        _require_admin(actor)
        _require_known_id(assignment_id)
        if not await self.repo.delete(assignment_id):
            raise LookupError("assignment_not_found")


__all__ = ["AssignmentService", "ORDER_BY_DUE", "ORDER_BY_CREATED"]
