"""
Admin API: assignment authoring and progress tracking.

Permissions:
    Every route requires the `admin` role. Writes are additionally checked by
    `AssignmentService` (PermissionError) and by table policies.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from portal.assignments.service import ORDER_BY_CREATED
from portal.errors import UpstreamError
from portal.identity_access.domain import ROLE_ADMIN, ROLE_STUDENT
from portal.submissions.progress import admin_assignment_list, admin_summary, assignment_roster
from .common import (
    PRIVATE_NO_STORE,
    bad_request,
    csrf_violation,
    error_json,
    guard_page,
    private_json,
    require_role,
    upstream_error,
)
from .security import is_same_origin

admin_router = APIRouter(tags=["Admin"])
logger = logging.getLogger("portal.web.admin")


class AssignmentCreatePayload(BaseModel):
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    due_date: Optional[str] = Field(default=None)
    drive_link: Optional[str] = Field(default=None)

    @field_validator("drive_link")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class AssignmentUpdatePayload(AssignmentCreatePayload):
    # Only fields present in the request body are written (model_dump(exclude_unset=True))
    pass


def _write_errors(exc: Exception):
    if isinstance(exc, PermissionError):
        return error_json("forbidden", status_code=403)
    if isinstance(exc, LookupError):
        return error_json("not_found", status_code=404)
    if isinstance(exc, ValueError):
        return bad_request(exc)
    if isinstance(exc, UpstreamError):
        return upstream_error(exc)
    raise exc


@admin_router.get("/admin")
async def admin_home(request: Request):
    redirect = await guard_page(request, ROLE_ADMIN)
    if redirect is not None:
        return redirect
    return private_json({"route": "/admin", **request.state.portal.state.as_dict()})


@admin_router.get("/api/admin/assignments")
async def list_assignments(request: Request, q: str = "", status: str = "all"):
    """Assignments (newest first) with submitted count and completion rate.

    Query:
        - `q`: search in title/description
        - `status`: all | submitted (at least one submission) | not-submitted
    """
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        assignments = await ctx.assignments.list_assignments(ORDER_BY_CREATED)
        rows = await ctx.submissions.list_all()
        students = await ctx.directory.list_students()
        items = admin_assignment_list(assignments, rows, len(students), q=q, status=status)
    except (ValueError, UpstreamError) as exc:
        return _write_errors(exc)
    return private_json(items)


@admin_router.post("/api/admin/assignments")
async def create_assignment(request: Request, payload: AssignmentCreatePayload):
    if not is_same_origin(request):
        return csrf_violation()
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        row = await ctx.assignments.create(payload.model_dump(), ctx.actor())
    except (PermissionError, ValueError, UpstreamError) as exc:
        return _write_errors(exc)
    return private_json(row, status_code=201)


@admin_router.patch("/api/admin/assignments/{assignment_id}")
async def update_assignment(request: Request, assignment_id: str, payload: AssignmentUpdatePayload):
    if not is_same_origin(request):
        return csrf_violation()
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        row = await ctx.assignments.update(assignment_id, payload.model_dump(exclude_unset=True), ctx.actor())
    except (PermissionError, LookupError, ValueError, UpstreamError) as exc:
        return _write_errors(exc)
    return private_json(row)


@admin_router.delete("/api/admin/assignments/{assignment_id}")
async def delete_assignment(request: Request, assignment_id: str):
    """Delete an assignment; existing submissions and files are kept."""
    if not is_same_origin(request):
        return csrf_violation()
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        await ctx.assignments.delete(assignment_id, ctx.actor())
    except (PermissionError, LookupError, UpstreamError) as exc:
        return _write_errors(exc)
    return Response(status_code=204, headers=dict(PRIVATE_NO_STORE))


@admin_router.get("/api/admin/assignments/{assignment_id}/submissions")
async def assignment_submissions(request: Request, assignment_id: str, q: str = "", status: str = "all"):
    """Every student with their status for one assignment (search by name/email)."""
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        assignment = await ctx.assignments.get(assignment_id)
        students = await ctx.directory.list_students()
        rows = await ctx.reconciler.list_for_assignment(assignment_id)
        roster = assignment_roster(students, rows, q=q, status=status)
    except (LookupError, ValueError, UpstreamError) as exc:
        return _write_errors(exc)
    return private_json({"assignment": assignment, **roster})


@admin_router.get("/api/admin/summary")
async def summary(request: Request):
    ctx, error = await require_role(request, ROLE_ADMIN)
    if error:
        return error
    try:
        assignments = await ctx.assignments.list_assignments(ORDER_BY_CREATED)
        counts = await ctx.directory.count_by_role()
        submitted = await ctx.submissions.count_submitted()
    except UpstreamError as exc:
        return _write_errors(exc)
    return private_json(admin_summary(assignments, counts.get(ROLE_STUDENT, 0), submitted))


__all__ = ["admin_router"]
