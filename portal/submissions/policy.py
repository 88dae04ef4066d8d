"""
Upload policy for submission artifacts.

Centralises the MIME/size constraints so the reconciler, the upload route and
tests reference a single source of truth. Validation happens before any I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from portal.storage.config import SUBMISSION_CONTENT_TYPE, get_submission_max_upload_bytes


class SubmissionValidationError(ValueError):
    """Rejected upload; `code` is stable for API clients."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    body: bytes

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass(frozen=True, slots=True)
class SubmissionUploadPolicy:
    """Immutable policy object used at request-handling time."""

    content_type: str
    max_size_bytes: int

    def validate(self, file: UploadedFile) -> None:
        if (file.content_type or "").strip().lower() != self.content_type:
            raise SubmissionValidationError("invalid_file_type", "Please upload a PDF file")
        if file.size > self.max_size_bytes:
            limit_mb = max(1, self.max_size_bytes // (1024 * 1024))
            raise SubmissionValidationError("file_too_large", f"File size must be less than {limit_mb}MB")


def policy_from_env() -> SubmissionUploadPolicy:
    return SubmissionUploadPolicy(
        content_type=SUBMISSION_CONTENT_TYPE,
        max_size_bytes=get_submission_max_upload_bytes(),
    )


__all__ = [
    "SubmissionValidationError",
    "UploadedFile",
    "SubmissionUploadPolicy",
    "policy_from_env",
]
