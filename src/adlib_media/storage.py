"""Durable copies of ad media in Google Cloud Storage."""

from __future__ import annotations

import mimetypes
from typing import Any

import requests
from google.cloud import storage  # type: ignore[attr-defined]

from .config import get_resolver_version
from .errors import PersistenceFailure
from .hashing import sha256_hex
from .logging import jlog
from .metadata import build_media_metadata
from .models import MediaType

PUBLIC_BASE = "https://storage.googleapis.com"
MAX_MEDIA_BYTES = 200 * 1024 * 1024
DOWNLOAD_CHUNK_BYTES = 1024 * 1024

_DEFAULT_CONTENT_TYPES = {
    MediaType.VIDEO: "video/mp4",
    MediaType.IMAGE: "image/jpeg",
    MediaType.DYNAMIC_IMAGE: "image/jpeg",
    MediaType.SCREENSHOT: "image/png",
}


def _extension(content_type: str, media_type: MediaType) -> str:
    ext = mimetypes.guess_extension(content_type.split(";")[0].strip()) if content_type else None
    if ext in (".jpe", ".jpeg"):
        ext = ".jpg"
    return ext or (".mp4" if media_type == MediaType.VIDEO else ".jpg")


def canonical_media_path(bucket: str, prefix: str, ad_id: str, digest: str, ext: str) -> str:
    return f"gs://{bucket}/{prefix.strip('/')}/{digest[:2]}/{ad_id}_{digest[:16]}{ext}"


def public_url(blob_path: str) -> str:
    assert blob_path.startswith("gs://"), "blob_path must be a gs:// path"
    return f"{PUBLIC_BASE}/{blob_path[len('gs://'):]}"


def upload_media(
    storage_client: storage.Client,
    bucket_name: str,
    blob_path: str,
    payload: bytes,
    content_type: str,
    metadata: dict[str, str],
    *,
    dry_run: bool = False,
) -> str:
    """Upload ``payload`` to ``blob_path`` and return its public HTTPS URL."""

    assert blob_path.startswith(f"gs://{bucket_name}/"), "blob_path must start with gs://<bucket>/"
    if dry_run:
        jlog("info", event="dry_run_upload", path=blob_path, bytes=len(payload))
        return public_url(blob_path)
    bucket = storage_client.bucket(bucket_name)
    name = blob_path.split(f"gs://{bucket_name}/", 1)[1]
    blob = bucket.blob(name)
    blob.cache_control = "public, max-age=31536000, immutable"
    blob.metadata = dict(metadata or {})
    blob.upload_from_string(payload, content_type=content_type)
    return public_url(blob_path)


class DurableCopier:
    """Download CDN media and re-host it in owned storage.

    :meth:`copy` raises :class:`PersistenceFailure`; the batch pipeline keeps
    the original URL when that happens.
    """

    def __init__(
        self,
        storage_client: Any,
        bucket_name: str,
        *,
        prefix: str = "ads-media",
        http: requests.Session | None = None,
        timeout_s: float = 30.0,
        max_bytes: int = MAX_MEDIA_BYTES,
        dry_run: bool = False,
    ):
        self.storage_client = storage_client
        self.bucket_name = bucket_name
        self.prefix = prefix
        self.http = http or requests.Session()
        self.timeout_s = timeout_s
        self.max_bytes = max_bytes
        self.dry_run = dry_run

    def download(self, url: str) -> tuple[bytes, str | None]:
        """Stream the body, giving up as soon as it is known to exceed ``max_bytes``."""

        with self.http.get(url, timeout=self.timeout_s, stream=True) as resp:
            resp.raise_for_status()
            declared = str(resp.headers.get("Content-Length") or "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise PersistenceFailure(f"media larger than {self.max_bytes} bytes: {url[:120]}")
            chunks: list[bytes] = []
            size = 0
            for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                size += len(chunk)
                if size > self.max_bytes:
                    raise PersistenceFailure(f"media larger than {self.max_bytes} bytes: {url[:120]}")
                chunks.append(chunk)
            content_type = resp.headers.get("Content-Type")
        payload = b"".join(chunks)
        if not payload:
            raise PersistenceFailure(f"empty body from {url[:120]}")
        return payload, content_type

    def copy(self, ad_id: str, url: str, media_type: MediaType, *, page_id: str | None = None) -> str | None:
        """Return the durable URL, or None in dry-run mode (nothing was uploaded)."""

        try:
            payload, content_type = self.download(url)
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"download failed: {exc}") from exc

        content_type = content_type or _DEFAULT_CONTENT_TYPES.get(media_type, "application/octet-stream")
        digest = sha256_hex(payload)
        blob_path = canonical_media_path(self.bucket_name, self.prefix, ad_id, digest, _extension(content_type, media_type))
        metadata = build_media_metadata(
            ad_id=ad_id,
            media_type=media_type.value,
            source="MANAGED_JOB",
            sha256=digest,
            content_type=content_type,
            byte_size=len(payload),
            resolver_version=get_resolver_version(),
            original_url=url,
            page_id=page_id,
        )
        try:
            durable = upload_media(
                self.storage_client,
                self.bucket_name,
                blob_path,
                payload,
                content_type,
                dict(metadata),
                dry_run=self.dry_run,
            )
        except Exception as exc:
            raise PersistenceFailure(f"upload failed: {exc}") from exc
        if self.dry_run:
            return None
        jlog("info", event="durable_copy_saved", ad_id=ad_id, path=blob_path, bytes=len(payload))
        return durable


__all__ = ["DurableCopier", "canonical_media_path", "public_url", "upload_media"]
