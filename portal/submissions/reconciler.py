"""
Submission reconciler: per (assignment, student) submission state.

Why:
    A submission touches two independent systems, the artifact bucket and the
    `submissions` table. The order and the failure behavior live here so that
    every entry point (HTTP route, tests) gets the same guarantees.

Behavior:
    - Validation (PDF only, size limit) happens before any I/O.
    - Upload strictly precedes the row upsert; a failed upload writes nothing.
    - The upsert targets the unique (assignment_id, student_id) pair, so a
      resubmission overwrites status, timestamp and file reference.
    - Upload success followed by upsert failure leaves an orphaned artifact.
      It is logged with its path and the error propagates; nothing is deleted.

Permissions:
    The caller must be the owning student. The route enforces this by taking
    `student_id` from the session, never from the request.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from portal.errors import UpstreamError
from portal.storage.config import SUBMISSION_CONTENT_TYPE, get_submissions_bucket
from portal.storage.keys import make_submission_path
from portal.storage.ports import ArtifactStorageProtocol
from .policy import SubmissionUploadPolicy, SubmissionValidationError, UploadedFile, policy_from_env
from .repo import SubmissionRepoProtocol

logger = logging.getLogger("portal.submissions")

STATUS_SUBMITTED = "submitted"
STATUS_NOT_SUBMITTED = "not-submitted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def submission_status(row: Optional[dict]) -> str:
    """Derived status: a row with status `submitted` means submitted, anything else does not."""
    if row and row.get("status") == STATUS_SUBMITTED:
        return STATUS_SUBMITTED
    return STATUS_NOT_SUBMITTED


class SubmissionReconciler:
    def __init__(
        self,
        repo: SubmissionRepoProtocol,
        storage: ArtifactStorageProtocol,
        *,
        bucket: Optional[str] = None,
        policy: Optional[SubmissionUploadPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._bucket = bucket or get_submissions_bucket()
        self._policy = policy or policy_from_env()
        self._clock = clock

    async def submit(self, assignment_id: str, student_id: str, file: Optional[UploadedFile] = None) -> dict:
        """Mark `assignment_id` submitted for `student_id`, optionally with a PDF.

        Returns the stored row (or the written row when the store returns no
        representation).

        Raises:
            SubmissionValidationError: invalid target or file; no I/O happened.
            UpstreamError: upload or row write failed.
        """
        if not assignment_id or not student_id:
            raise SubmissionValidationError("invalid_target", "Assignment and student are required")
        if file is not None:
            self._policy.validate(file)

        file_url: Optional[str] = None
        stored_path: Optional[str] = None
        if file is not None:
            path = make_submission_path(student_id=student_id, assignment_id=assignment_id)
            stored_path = await self._storage.upload(
                bucket=self._bucket,
                path=path,
                body=file.body,
                content_type=SUBMISSION_CONTENT_TYPE,
                upsert=True,
            )
            file_url = await self._storage.public_url(bucket=self._bucket, path=stored_path)

        row = {
            "assignment_id": assignment_id,
            "student_id": student_id,
            "status": STATUS_SUBMITTED,
            "submitted_at": self._clock().isoformat(),
            "file_url": file_url,
        }
        try:
            saved = await self._repo.upsert(row)
        except UpstreamError as exc:
            if stored_path is not None:
                logger.warning(
                    "submission row write failed after upload, orphaned artifact %s/%s (%s)",
                    self._bucket,
                    stored_path,
                    exc.code,
                )
            raise
        logger.info("submission recorded (file=%s)", "yes" if file_url else "no")
        return saved or row

    async def list_for_student(self, student_id: str) -> List[dict]:
        return await self._repo.list_for_student(student_id)

    async def list_for_assignment(self, assignment_id: str) -> List[dict]:
        return await self._repo.list_for_assignment(assignment_id)


__all__ = [
    "SubmissionReconciler",
    "submission_status",
    "STATUS_SUBMITTED",
    "STATUS_NOT_SUBMITTED",
]
