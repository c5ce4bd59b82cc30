"""
Supabase Storage adapter for the object store port.

Uploads use upsert so a re-upload to the same deterministic path overwrites
the previous object. The supabase client is synchronous; calls run in the
default thread pool.

Supabase Storage has no per-object server-side encryption or tagging, so
writes that ask for either are rejected instead of silently dropping them.
"""

import asyncio
import logging
from typing import IO, AsyncIterator, Dict, Optional
from urllib.parse import urlparse, urlunparse

from supabase import Client

from portal.config import Settings
from portal.db import create_admin_client
from portal.errors import NotFoundError, TransportError, ValidationError
from portal.models.documents import Encryption, StoredItem
from portal.services.object_store import ObjectBody, ObjectInfo, ObjectPage, PutResult

logger = logging.getLogger(__name__)


def _is_not_found(exc: Exception) -> bool:
    error_msg = str(exc).lower()
    return "not found" in error_msg or "not_found" in error_msg or "404" in error_msg


def _rewrite_signed_url_host(signed_url: str, public_url: Optional[str]) -> str:
    """
    Replace the host in a signed URL with the browser-accessible Supabase URL.

    When the backend runs inside Docker it reaches Supabase through an
    internal URL like ``http://host.docker.internal:54321`` and Supabase
    embeds that host in every signed URL it generates. If
    ``SUPABASE_PUBLIC_URL`` is configured, its scheme and host replace the
    internal ones; otherwise the URL is returned unchanged.
    """
    if not public_url:
        return signed_url

    parsed_signed = urlparse(signed_url)
    parsed_public = urlparse(public_url)

    # Swap scheme + netloc; keep path/query/fragment from the signed URL.
    return urlunparse((
        parsed_public.scheme,
        parsed_public.netloc,
        parsed_signed.path,
        parsed_signed.params,
        parsed_signed.query,
        parsed_signed.fragment,
    ))


def _signed_url_from(result: Optional[dict]) -> str:
    for field in ("signedURL", "signedUrl", "signed_url"):
        if result and result.get(field):
            return result[field]
    raise TransportError("No signed URL returned from storage")


def _split_key(key: str):
    folder, _, name = key.rpartition("/")
    return folder, name


def _reject_unsupported(encryption: Optional[Encryption], tagging: Optional[str]) -> None:
    if encryption is not None:
        raise ValidationError("Server-side encryption is not supported by the supabase backend")
    if tagging:
        raise ValidationError("Object tags are not supported by the supabase backend")


class SupabaseObjectStore:
    """Stores documents in Supabase Storage buckets (private buckets only)."""

    def __init__(self, client: Client, public_url: Optional[str] = None):
        self.client = client
        self.public_url = public_url

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseObjectStore":
        client = create_admin_client(settings)
        if client is None:
            raise ValidationError("SUPABASE_SERVICE_KEY is required for storage operations")
        return cls(client, settings.supabase_public_url)

    async def _call(self, action: str, bucket: str, key: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (NotFoundError, TransportError, ValidationError):
            raise
        except Exception as e:
            if _is_not_found(e):
                raise NotFoundError(f"Object not found: {key}", cause=e)
            logger.error(f"Supabase {action} error: bucket={bucket} key={key} message={e}")
            raise TransportError(f"Failed to {action} in storage: {str(e)}", cause=e)

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str, *,
                         metadata: Optional[Dict[str, str]] = None,
                         encryption: Optional[Encryption] = None,
                         tagging: Optional[str] = None) -> PutResult:
        _reject_unsupported(encryption, tagging)

        file_options = {
            "content-type": content_type,
            "upsert": "true",  # Overwrite existing files (deterministic paths)
        }
        if metadata:
            file_options["metadata"] = metadata

        result = await self._call(
            "upload", bucket, key,
            self.client.storage.from_(bucket).upload, key, data, file_options,
        )
        return PutResult(
            location=getattr(result, "full_path", None) or f"{bucket}/{key}",
            etag=None,
        )

    async def upload_stream(self, bucket: str, key: str, stream: IO[bytes], content_type: str, *,
                            metadata: Optional[Dict[str, str]] = None,
                            encryption: Optional[Encryption] = None,
                            tagging: Optional[str] = None) -> PutResult:
        # Supabase Storage takes the whole body in one request
        _reject_unsupported(encryption, tagging)
        data = await asyncio.to_thread(stream.read)
        return await self.put_object(bucket, key, data, content_type, metadata=metadata)

    async def list_objects(self, bucket: str, prefix: str, page_size: int,
                           continuation_token: Optional[str] = None) -> ObjectPage:
        """
        List one page under ``prefix``.

        Supabase paginates by offset, so the continuation token is the offset
        of the next page. One extra row is requested to detect truncation.
        """
        try:
            offset = int(continuation_token) if continuation_token else 0
        except ValueError:
            raise ValidationError("continuation_token is invalid")

        folder = prefix.rstrip("/")
        rows = await self._call(
            "list", bucket, prefix,
            self.client.storage.from_(bucket).list, folder,
            {
                "limit": page_size + 1,
                "offset": offset,
                "sortBy": {"column": "name", "order": "asc"},
            },
        )

        # Rows without an id are sub-folder placeholders
        files = [row for row in rows or [] if row.get("id")]
        truncated = len(files) > page_size
        items = [
            StoredItem(
                path=f"{folder}/{row['name']}",
                size=(row.get("metadata") or {}).get("size", 0),
                last_modified=row.get("updated_at"),
                etag=(row.get("metadata") or {}).get("eTag"),
            )
            for row in files[:page_size]
        ]
        return ObjectPage(
            items=items,
            truncated=truncated,
            next_token=str(offset + page_size) if truncated else None,
        )

    async def head_object(self, bucket: str, key: str) -> ObjectInfo:
        folder, name = _split_key(key)
        rows = await self._call(
            "inspect", bucket, key,
            self.client.storage.from_(bucket).list, folder, {"search": name, "limit": 100},
        )
        for row in rows or []:
            if row.get("name") == name and row.get("id"):
                meta = row.get("metadata") or {}
                return ObjectInfo(
                    content_type=meta.get("mimetype"),
                    size=meta.get("size", 0),
                    last_modified=meta.get("lastModified") or row.get("updated_at"),
                    etag=meta.get("eTag"),
                    metadata=row.get("user_metadata") or {},
                )
        raise NotFoundError(f"Object not found: {key}")

    async def get_object(self, bucket: str, key: str) -> ObjectBody:
        info = await self.head_object(bucket, key)
        body = await self._call("download", bucket, key,
                                self.client.storage.from_(bucket).download, key)
        return ObjectBody(body=body, content_type=info.content_type, metadata=info.metadata)

    async def open_object(self, bucket: str, key: str,
                          chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        # The supabase client buffers the download; hand it out in chunks
        downloaded = await self.get_object(bucket, key)
        for start in range(0, len(downloaded.body), chunk_size):
            yield downloaded.body[start:start + chunk_size]

    async def presign(self, operation: str, bucket: str, key: str, expires_seconds: int, *,
                      content_type: Optional[str] = None,
                      encryption: Optional[Encryption] = None,
                      response_content_type: Optional[str] = None,
                      response_content_disposition: Optional[str] = None) -> str:
        storage = self.client.storage.from_(bucket)
        if operation == "write":
            # Signed upload URLs have a fixed two-hour lifetime in Supabase
            _reject_unsupported(encryption, None)
            result = await self._call("create signed upload URL", bucket, key,
                                      storage.create_signed_upload_url, key)
        else:
            result = await self._call("create signed URL", bucket, key,
                                      storage.create_signed_url, key, expires_seconds)
        return _rewrite_signed_url_host(_signed_url_from(result), self.public_url)

    async def delete_object(self, bucket: str, key: str) -> None:
        # An empty result means nothing was there, which is fine
        await self._call("delete", bucket, key, self.client.storage.from_(bucket).remove, [key])

    async def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        await self._call("copy", bucket, source_key,
                         self.client.storage.from_(bucket).copy, source_key, dest_key)

    async def exists(self, bucket: str, key: str) -> bool:
        try:
            await self.head_object(bucket, key)
        except NotFoundError:
            return False
        return True
