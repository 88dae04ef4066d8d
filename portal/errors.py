"""
Shared error types for provider and store failures.

Why:
    Adapters talk to three independent Supabase services (auth, PostgREST,
    Storage) whose client libraries raise unrelated exception classes. Wrapping
    them in one type lets routes map failures to a stable HTTP contract while
    the original exception stays chained for logs.
"""
from __future__ import annotations

import re
from typing import Optional

_ERROR_MAX_LENGTH = 256
_SENSITIVE_TOKEN_PATTERN = re.compile(r"(?i)(secret|token|password|key|apikey|authorization)[-_a-z0-9]*\s*[:=]\s*\S+")
_BEARER_PATTERN = re.compile(r"(?i)bearer\s+[a-z0-9._\-]+")


def sanitize_error_message(value: Optional[str]) -> Optional[str]:
    """Strip secrets and truncate lengthy upstream errors for safe exposure."""
    if not value:
        return None
    collapsed = " ".join(str(value).split())
    if not collapsed:
        return None
    scrubbed = _SENSITIVE_TOKEN_PATTERN.sub("[redacted]", collapsed)
    scrubbed = _BEARER_PATTERN.sub("[redacted]", scrubbed)
    if len(scrubbed) > _ERROR_MAX_LENGTH:
        scrubbed = scrubbed[: _ERROR_MAX_LENGTH - 3].rstrip() + "..."
    return scrubbed


class UpstreamError(RuntimeError):
    """A store or storage call failed (network, constraint, permission)."""

    def __init__(self, code: str, detail: Optional[str] = None) -> None:
        super().__init__(code)
        self.code = code
        self.detail = sanitize_error_message(detail)

    @classmethod
    def wrap(cls, code: str, exc: BaseException) -> "UpstreamError":
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        return cls(code, message)


__all__ = ["UpstreamError", "sanitize_error_message"]
