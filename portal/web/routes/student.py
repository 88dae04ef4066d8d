"""
Student API: own assignment overview and submissions.

Permissions:
    Every route requires the `student` role. The student id always comes from
    the session, never from the request, so a student can only read and write
    their own submission rows.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile

from portal.errors import UpstreamError
from portal.identity_access.domain import ROLE_STUDENT
from portal.storage.config import get_submission_max_upload_bytes
from portal.submissions.policy import UploadedFile
from portal.submissions.progress import student_overview
from portal.assignments.service import ORDER_BY_DUE
from .common import bad_request, csrf_violation, error_json, guard_page, private_json, require_role, upstream_error
from .security import is_same_origin

student_router = APIRouter(tags=["Student"])
logger = logging.getLogger("portal.web.student")


async def _overview(ctx, *, q: str = "", status: str = "all") -> dict:
    identity = ctx.state.identity
    assignments = await ctx.assignments.list_assignments(ORDER_BY_DUE)
    rows = await ctx.reconciler.list_for_student(identity.id)
    return student_overview(assignments, rows, q=q, status=status)


@student_router.get("/student")
async def student_home(request: Request):
    redirect = await guard_page(request, ROLE_STUDENT)
    if redirect is not None:
        return redirect
    return private_json({"route": "/student", **request.state.portal.state.as_dict()})


@student_router.get("/api/student/assignments")
async def list_my_assignments(request: Request, q: str = "", status: str = "all"):
    """Assignments ordered by due date with this student's status.

    Query:
        - `q`: search in title/description
        - `status`: all | submitted | not-submitted
    """
    ctx, error = await require_role(request, ROLE_STUDENT)
    if error:
        return error
    try:
        overview = await _overview(ctx, q=q, status=status)
    except ValueError as exc:
        return bad_request(exc)
    except UpstreamError as exc:
        return upstream_error(exc)
    return private_json(overview)


@student_router.get("/api/student/summary")
async def my_summary(request: Request):
    ctx, error = await require_role(request, ROLE_STUDENT)
    if error:
        return error
    try:
        overview = await _overview(ctx)
    except UpstreamError as exc:
        return upstream_error(exc)
    return private_json(overview["summary"])


async def _read_upload(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None or not (upload.filename or ""):
        return None
    # Read one byte past the limit so oversize files are detected without buffering them whole.
    body = await upload.read(get_submission_max_upload_bytes() + 1)
    return UploadedFile(filename=upload.filename or "", content_type=upload.content_type or "", body=body)


@student_router.post("/api/student/assignments/{assignment_id}/submission")
async def submit_assignment(request: Request, assignment_id: str, file: Optional[UploadFile] = File(default=None)):
    """Mark an assignment submitted, optionally attaching a PDF (multipart field `file`).

    Behavior:
        - 400 for a non-PDF or oversize file; nothing is uploaded or written.
        - 404 when the assignment does not exist.
        - Resubmitting overwrites the previous status, timestamp and file.
    """
    if not is_same_origin(request):
        return csrf_violation()
    ctx, error = await require_role(request, ROLE_STUDENT)
    if error:
        return error
    try:
        await ctx.assignments.get(assignment_id)
    except LookupError:
        return error_json("not_found", status_code=404)
    except UpstreamError as exc:
        return upstream_error(exc)
    uploaded = await _read_upload(file)
    try:
        row = await ctx.reconciler.submit(assignment_id, ctx.state.identity.id, uploaded)
    except ValueError as exc:
        return bad_request(exc)
    except UpstreamError as exc:
        logger.warning("submission failed: %s", exc.code)
        return upstream_error(exc)
    return private_json({"submission": row})


__all__ = ["student_router"]
