"""
Storage helpers: object keys, configuration, the Supabase adapter and the
bucket bootstrap (requests monkeypatched; no network).
"""
from __future__ import annotations

import logging

import pytest

from portal.errors import UpstreamError
from portal.storage import bootstrap
from portal.storage.config import get_submission_max_upload_bytes, get_submissions_bucket
from portal.storage.keys import make_submission_path
from portal.storage.supabase_adapter import SupabaseStorageAdapter

pytestmark = pytest.mark.anyio("asyncio")


class _Resp:
    def __init__(self, status_code: int, payload, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


def test_submission_path_is_student_folder_then_assignment_pdf():
    assert make_submission_path(student_id="stu-1", assignment_id="asg-9") == "stu-1/asg-9.pdf"


def test_bucket_and_limit_defaults(monkeypatch):
    assert get_submissions_bucket() == "submissions"
    assert get_submission_max_upload_bytes() == 10 * 1024 * 1024
    monkeypatch.setenv("SUBMISSIONS_BUCKET", "work")
    monkeypatch.setenv("SUBMISSION_MAX_UPLOAD_BYTES", "not-a-number")
    assert get_submissions_bucket() == "work"
    assert get_submission_max_upload_bytes() == 10 * 1024 * 1024


class _DictBucket:
    """Sync storage3-style bucket returning dict payloads."""

    def __init__(self) -> None:
        self.uploads = []

    def upload(self, path, file, file_options=None):
        self.uploads.append((path, file_options))
        return {"Key": f"submissions/{path}"}

    def get_public_url(self, path):
        return {"publicURL": f"https://cdn.example.com/{path}"}


class _Client:
    def __init__(self, bucket) -> None:
        self.storage = self
        self._bucket = bucket

    def from_(self, name):
        return self._bucket


@pytest.mark.anyio
async def test_adapter_normalizes_bucket_prefixed_keys_and_dict_urls():
    bucket = _DictBucket()
    adapter = SupabaseStorageAdapter(_Client(bucket))

    stored = await adapter.upload(
        bucket="submissions", path="/submissions/stu/asg.pdf", body=b"%PDF", content_type="application/pdf", upsert=True
    )
    url = await adapter.public_url(bucket="submissions", path=stored)

    assert bucket.uploads[0][0] == "stu/asg.pdf"
    assert bucket.uploads[0][1]["upsert"] == "true"
    assert stored == "stu/asg.pdf"
    assert url == "https://cdn.example.com/stu/asg.pdf"


@pytest.mark.anyio
async def test_adapter_wraps_client_errors():
    class _Broken(_DictBucket):
        def upload(self, path, file, file_options=None):
            raise RuntimeError("Bucket not found")

        def get_public_url(self, path):
            return {}

    adapter = SupabaseStorageAdapter(_Client(_Broken()))

    with pytest.raises(UpstreamError) as up:
        await adapter.upload(bucket="b", path="p.pdf", body=b"", content_type="application/pdf", upsert=True)
    with pytest.raises(UpstreamError) as url:
        await adapter.public_url(bucket="b", path="p.pdf")

    assert up.value.code == "storage_upload_failed"
    assert up.value.detail == "Bucket not found"
    assert url.value.code == "storage_public_url_failed"


def test_bootstrap_is_opt_in(monkeypatch):
    calls = []
    monkeypatch.setattr(bootstrap.requests, "get", lambda *a, **k: calls.append(a))
    monkeypatch.setenv("SUPABASE_URL", "http://local.test:54321")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")

    assert bootstrap.ensure_buckets_from_env() is False
    assert calls == []


def test_bootstrap_creates_missing_public_bucket_with_timeouts(monkeypatch):
    monkeypatch.setenv("AUTO_CREATE_STORAGE_BUCKETS", "true")
    monkeypatch.setenv("SUPABASE_URL", "http://local.test:54321/")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "secret")
    listed = [[{"id": "avatars", "name": "avatars"}], [{"name": "avatars"}, {"name": "submissions"}]]
    calls = []

    def fake_get(url, headers, timeout=None):
        calls.append(("GET", url, timeout))
        return _Resp(200, listed.pop(0))

    def fake_post(url, headers, json, timeout=None):
        calls.append(("POST", url, timeout))
        assert json == {"id": "submissions", "name": "submissions", "public": True}
        assert headers["Authorization"] == "Bearer secret"
        return _Resp(200, {"name": "submissions"})

    monkeypatch.setattr(bootstrap.requests, "get", fake_get)
    monkeypatch.setattr(bootstrap.requests, "post", fake_post)

    assert bootstrap.ensure_buckets_from_env() is True
    assert calls[0] == ("GET", "http://local.test:54321/storage/v1/bucket", (3, 10))
    assert calls[1] == ("POST", "http://local.test:54321/storage/v1/bucket", (3, 10))


def test_bootstrap_skips_existing_bucket(monkeypatch):
    posts = []

    def fake_get(url, headers):
        return _Resp(200, [{"id": "submissions", "name": "submissions"}])

    monkeypatch.setattr(bootstrap.requests, "get", fake_get)
    monkeypatch.setattr(bootstrap.requests, "post", lambda *a, **k: posts.append(a))

    assert bootstrap.ensure_buckets("http://local.test", "secret", ["submissions"]) is True
    assert posts == []


def test_bootstrap_logs_failed_create(monkeypatch, caplog):
    def fake_get(url, headers):
        return _Resp(200, [])

    def fake_post(url, headers, json):
        return _Resp(409, {"message": "conflict"}, text="conflict")

    monkeypatch.setattr(bootstrap.requests, "get", fake_get)
    monkeypatch.setattr(bootstrap.requests, "post", fake_post)
    caplog.set_level(logging.DEBUG, logger="portal.storage")

    assert bootstrap.ensure_buckets("http://local.test", "secret", ["submissions"]) is False
    msgs = "\n".join(rec.message for rec in caplog.records)
    assert "create bucket 'submissions' failed" in msgs and "status=409" in msgs
    assert "still missing" in msgs
