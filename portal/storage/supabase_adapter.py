"""
Supabase-backed storage adapter for submission artifacts.

This adapter implements ArtifactStorageProtocol using a provided Supabase
client. It is intentionally duck-typed to avoid a hard dependency during
testing. The client is expected to expose `.storage.from_(bucket)` which
returns an object offering:

- upload(path, file, file_options) -> { path | Key | full_path } | object with `.path`
- get_public_url(path) -> str | { publicURL | publicUrl | public_url }

Methods on the bucket proxy may be coroutines (async client) or plain calls
(sync client); both are awaited transparently.

Security:
    - The client carries the signed-in student's access token, so bucket
      policies apply to every write.
    - The submissions bucket is public-read; the reference stored on the
      submission row is the public URL of the artifact.
"""
from __future__ import annotations

import inspect
from typing import Any, Dict

from portal.errors import UpstreamError
from .ports import ArtifactStorageProtocol


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SupabaseStorageAdapter(ArtifactStorageProtocol):
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        # Duck-typed supabase client, e.g., from `supabase.acreate_client(...)`.
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client.

        Supports two client shapes:
        - supabase.acreate_client(...): expose `.storage.from_(bucket)`
        - storage3 AsyncStorageClient: expose `.from_(bucket)` directly
        """
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _normalize_path(bucket: str, path: str) -> str:
        # Storage expects paths relative to the bucket (storage3 prepends the bucket id)
        norm = path.lstrip("/")
        prefix = f"{bucket}/"
        if norm.startswith(prefix):
            norm = norm[len(prefix):]
        return norm

    # --- Protocol methods --------------------------------------------------------

    async def upload(self, *, bucket: str, path: str, body: bytes, content_type: str, upsert: bool) -> str:
        """Upload bytes to `path`, overwriting any existing object when `upsert`.

        Returns the bucket-relative path reported by Storage (falls back to the
        requested path when the client does not echo it).

        Raises:
            UpstreamError("storage_upload_failed") on any client failure.
        """
        b = self._bucket(bucket)
        norm_key = self._normalize_path(bucket, path)
        # Some client versions expect file options with either kebab or camel case;
        # `upsert` travels as a header value and must be a string.
        opts = {
            "content-type": content_type,
            "contentType": content_type,
            "upsert": "true" if upsert else "false",
        }
        try:
            res = await _maybe_await(b.upload(norm_key, body, opts))
        except Exception as exc:
            raise UpstreamError.wrap("storage_upload_failed", exc) from exc
        stored = None
        if isinstance(res, dict):
            stored = self._first_key(res, "path", "Key", "full_path")
            data = res.get("data") if "data" in res else None
            if stored is None and isinstance(data, dict):
                stored = self._first_key(data, "path", "Key", "full_path")
        else:
            stored = getattr(res, "path", None)
        if not stored:
            return norm_key
        return self._normalize_path(bucket, str(stored))

    async def public_url(self, *, bucket: str, path: str) -> str:
        b = self._bucket(bucket)
        norm_key = self._normalize_path(bucket, path)
        try:
            res = await _maybe_await(b.get_public_url(norm_key))
        except Exception as exc:
            raise UpstreamError.wrap("storage_public_url_failed", exc) from exc
        url = None
        if isinstance(res, str):
            url = res
        elif isinstance(res, dict):
            url = self._first_key(res, "publicURL", "publicUrl", "public_url")
            data = res.get("data") if "data" in res else None
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "publicURL", "publicUrl", "public_url")
        if not url:
            raise UpstreamError("storage_public_url_failed", "empty public url")
        return str(url)


__all__ = ["SupabaseStorageAdapter"]
