"""
Storage ports used by the submission reconciler.

Keep these small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Protocol


class ArtifactStorageProtocol(Protocol):
    """Minimal interface to persist a submission artifact and resolve its URL.

    Intent:
        Let the reconciler write PDFs without depending on a specific SDK.

    Permissions:
        Implementations run with the caller's credentials; bucket policies
        decide whether a student may write below their own id.
    """

    async def upload(self, *, bucket: str, path: str, body: bytes, content_type: str, upsert: bool) -> str: ...

    async def public_url(self, *, bucket: str, path: str) -> str: ...


__all__ = ["ArtifactStorageProtocol"]
