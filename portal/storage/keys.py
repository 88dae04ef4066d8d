"""
Helpers to generate the storage path of a submission artifact.

Conventions:
    - Submission PDFs: {student_id}/{assignment_id}.pdf

    The path is a pure function of (student, assignment), so a resubmission
    overwrites the previous artifact at the same address.

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments so an
      identifier can never introduce extra path levels or traversal.
"""
from __future__ import annotations

import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def make_submission_path(*, student_id: str, assignment_id: str) -> str:
    """Build the bucket-relative path for a submission PDF.

    Returns: {student}/{assignment}.pdf
    """
    stu = _sanitize_segment(student_id, fallback="student")
    asg = _sanitize_segment(assignment_id, fallback="assignment")
    return f"{stu}/{asg}.pdf"


__all__ = ["make_submission_path"]
