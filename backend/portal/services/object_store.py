"""
Object store port.

``DocumentService`` talks to storage only through this protocol. Two
adapters implement it: ``S3ObjectStore`` (``portal.services.s3_store``) and
``SupabaseObjectStore`` (``portal.services.storage``). Adapters raise only
``NotFoundError`` or ``TransportError`` (plus ``ValidationError`` for options
the backend cannot honour).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import IO, AsyncIterator, Dict, List, Optional, Protocol

from portal.config import Settings
from portal.errors import ValidationError
from portal.models.documents import Encryption, StoredItem

PRIVATE_ACL = "private"


@dataclass
class PutResult:
    location: Optional[str] = None
    etag: Optional[str] = None


@dataclass
class ObjectPage:
    items: List[StoredItem] = field(default_factory=list)
    truncated: bool = False
    next_token: Optional[str] = None


@dataclass
class ObjectInfo:
    content_type: Optional[str] = None
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectBody:
    body: bytes = b""
    content_type: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


class ObjectStore(Protocol):
    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str, *,
                         metadata: Optional[Dict[str, str]] = None,
                         encryption: Optional[Encryption] = None,
                         tagging: Optional[str] = None) -> PutResult: ...

    async def upload_stream(self, bucket: str, key: str, stream: IO[bytes], content_type: str, *,
                            metadata: Optional[Dict[str, str]] = None,
                            encryption: Optional[Encryption] = None,
                            tagging: Optional[str] = None) -> PutResult: ...

    async def list_objects(self, bucket: str, prefix: str, page_size: int,
                           continuation_token: Optional[str] = None) -> ObjectPage: ...

    async def head_object(self, bucket: str, key: str) -> ObjectInfo: ...

    async def get_object(self, bucket: str, key: str) -> ObjectBody: ...

    def open_object(self, bucket: str, key: str,
                    chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]: ...

    async def presign(self, operation: str, bucket: str, key: str, expires_seconds: int, *,
                      content_type: Optional[str] = None,
                      encryption: Optional[Encryption] = None,
                      response_content_type: Optional[str] = None,
                      response_content_disposition: Optional[str] = None) -> str: ...

    async def delete_object(self, bucket: str, key: str) -> None: ...

    async def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None: ...

    async def exists(self, bucket: str, key: str) -> bool: ...


def create_object_store(settings: Settings) -> ObjectStore:
    """Build the adapter selected by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == "s3":
        from portal.services.s3_store import S3ObjectStore
        return S3ObjectStore.from_settings(settings)
    if backend == "supabase":
        from portal.services.storage import SupabaseObjectStore
        return SupabaseObjectStore.from_settings(settings)
    raise ValidationError(f"Unknown storage backend: {backend}")
