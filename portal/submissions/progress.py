"""
Progress projections for the student and admin dashboards.

Why:
    Dashboards combine assignments, submission rows and the student directory.
    Keeping the projections as pure functions over plain rows lets the routes
    stay thin and lets tests cover filtering and percentages without a store.

Conventions:
    - A missing (assignment, student) row means "not-submitted".
    - Percentages round half up to whole numbers and are 0 when the
      denominator is 0.
    - Search terms are trimmed and matched case-insensitively as substrings.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .reconciler import STATUS_NOT_SUBMITTED, STATUS_SUBMITTED, submission_status

STATUS_FILTER_ALL = "all"
STATUS_FILTERS = frozenset({STATUS_FILTER_ALL, STATUS_SUBMITTED, STATUS_NOT_SUBMITTED})
RECENT_ASSIGNMENTS_LIMIT = 5


def normalize_status_filter(value: Optional[str]) -> str:
    status = (value or STATUS_FILTER_ALL).strip().lower()
    if status not in STATUS_FILTERS:
        raise ValueError("invalid_status_filter")
    return status


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def _parse_ts(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    raw = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _matches(query: str, *fields: object) -> bool:
    if not query:
        return True
    return any(query in str(f or "").lower() for f in fields)


def _by_assignment(submissions: Iterable[dict]) -> Dict[str, dict]:
    return {str(s.get("assignment_id")): s for s in submissions if s.get("assignment_id")}


def student_overview(
    assignments: List[dict],
    submissions: List[dict],
    *,
    now: Optional[datetime] = None,
    q: str = "",
    status: str = STATUS_FILTER_ALL,
) -> dict:
    """Assignments (already ordered by due date) joined with one student's rows.

    Summary counts cover every assignment, independent of search and filter.
    """
    now = now or datetime.now(timezone.utc)
    query = (q or "").strip().lower()
    status = normalize_status_filter(status)
    rows_by_asg = _by_assignment(submissions)

    items: List[dict] = []
    submitted_total = 0
    for asg in assignments:
        row = rows_by_asg.get(str(asg.get("id")))
        st = submission_status(row)
        if st == STATUS_SUBMITTED:
            submitted_total += 1
        if not _matches(query, asg.get("title"), asg.get("description")):
            continue
        if status != STATUS_FILTER_ALL and st != status:
            continue
        due = _parse_ts(asg.get("due_date"))
        items.append(
            {
                "assignment": asg,
                "status": st,
                "submitted_at": row.get("submitted_at") if row and st == STATUS_SUBMITTED else None,
                "file_url": row.get("file_url") if row and st == STATUS_SUBMITTED else None,
                "overdue": bool(due and due < now and st != STATUS_SUBMITTED),
            }
        )
    total = len(assignments)
    return {
        "items": items,
        "summary": {"total": total, "submitted": submitted_total, "pending": total - submitted_total},
    }


def admin_assignment_list(
    assignments: List[dict],
    submissions: List[dict],
    student_count: int,
    *,
    q: str = "",
    status: str = STATUS_FILTER_ALL,
) -> List[dict]:
    """Assignments with completion counts; `submitted` filter means at least one submission."""
    query = (q or "").strip().lower()
    status = normalize_status_filter(status)
    submitters: Dict[str, set] = {}
    for s in submissions:
        if submission_status(s) == STATUS_SUBMITTED:
            submitters.setdefault(str(s.get("assignment_id")), set()).add(str(s.get("student_id")))

    items: List[dict] = []
    for asg in assignments:
        if not _matches(query, asg.get("title"), asg.get("description")):
            continue
        count = len(submitters.get(str(asg.get("id")), ()))
        has_any = count > 0
        if status == STATUS_SUBMITTED and not has_any:
            continue
        if status == STATUS_NOT_SUBMITTED and has_any:
            continue
        items.append(
            {
                "assignment": asg,
                "submitted_count": count,
                "student_count": student_count,
                "completion_rate": percent(count, student_count),
            }
        )
    return items


def assignment_roster(
    students: List[dict],
    submissions: List[dict],
    *,
    q: str = "",
    status: str = STATUS_FILTER_ALL,
) -> dict:
    """Every student with their status for one assignment."""
    query = (q or "").strip().lower()
    status = normalize_status_filter(status)
    by_student = {str(s.get("student_id")): s for s in submissions if s.get("student_id")}

    items: List[dict] = []
    submitted = 0
    for stu in students:
        row = by_student.get(str(stu.get("id")))
        st = submission_status(row)
        if st == STATUS_SUBMITTED:
            submitted += 1
        if not _matches(query, stu.get("full_name"), stu.get("email")):
            continue
        if status != STATUS_FILTER_ALL and st != status:
            continue
        items.append(
            {
                "student_id": stu.get("id"),
                "full_name": stu.get("full_name") or "",
                "email": stu.get("email") or "",
                "status": st,
                "submitted_at": row.get("submitted_at") if row and st == STATUS_SUBMITTED else None,
                "file_url": row.get("file_url") if row and st == STATUS_SUBMITTED else None,
            }
        )
    return {
        "items": items,
        "submitted_count": submitted,
        "student_count": len(students),
        "completion_rate": percent(submitted, len(students)),
    }


def admin_summary(assignments: List[dict], student_count: int, submitted_count: int) -> dict:
    """Totals plus the most recent assignments (input ordered newest first)."""
    total_assignments = len(assignments)
    return {
        "total_assignments": total_assignments,
        "total_students": student_count,
        "submissions": submitted_count,
        "submission_rate": percent(submitted_count, total_assignments * student_count),
        "recent_assignments": assignments[:RECENT_ASSIGNMENTS_LIMIT],
    }


__all__ = [
    "STATUS_FILTERS",
    "normalize_status_filter",
    "percent",
    "student_overview",
    "admin_assignment_list",
    "assignment_roster",
    "admin_summary",
]
