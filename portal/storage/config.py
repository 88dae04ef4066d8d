"""
Centralized storage configuration for the submissions bucket and upload limits.

Intent:
    Provide a single source of truth for the bucket name and the maximum PDF
    size so that the reconciler, the upload route and the bootstrap helper
    cannot drift apart.

Behavior:
    - SUBMISSIONS_BUCKET_DEFAULT is the canonical bucket ("submissions").
    - get_submissions_bucket() reads the SUBMISSIONS_BUCKET override.
    - get_submission_max_upload_bytes() reads SUBMISSION_MAX_UPLOAD_BYTES and
      clamps it to the 10 MiB contract maximum.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


SUBMISSIONS_BUCKET_DEFAULT = "submissions"
SUBMISSION_CONTENT_TYPE = "application/pdf"
SUBMISSION_MAX_UPLOAD_BYTES_CONTRACT = 10 * 1024 * 1024


def get_submissions_bucket() -> str:
    """Return the configured submissions bucket name.

    Env:
        SUBMISSIONS_BUCKET – optional override; otherwise defaults to
        SUBMISSIONS_BUCKET_DEFAULT.
    """
    return (os.getenv("SUBMISSIONS_BUCKET") or SUBMISSIONS_BUCKET_DEFAULT).strip()


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_submission_max_upload_bytes() -> int:
    """Maximum PDF size for submissions (default/clamped 10 MiB)."""
    contract_max = SUBMISSION_MAX_UPLOAD_BYTES_CONTRACT
    return _parse_int_env("SUBMISSION_MAX_UPLOAD_BYTES", contract_max, contract_max=contract_max)


def auto_create_buckets_enabled() -> bool:
    return (os.getenv("AUTO_CREATE_STORAGE_BUCKETS", "false") or "").strip().lower() == "true"


__all__ = [
    "SUBMISSIONS_BUCKET_DEFAULT",
    "SUBMISSION_CONTENT_TYPE",
    "SUBMISSION_MAX_UPLOAD_BYTES_CONTRACT",
    "get_submissions_bucket",
    "get_submission_max_upload_bytes",
    "auto_create_buckets_enabled",
]
