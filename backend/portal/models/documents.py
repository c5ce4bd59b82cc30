"""
Pydantic models for document storage.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import IO, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceAddress(BaseModel):
    """Fully qualified, sanitized location of one object. Immutable."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    path: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class TransferOptions(BaseModel):
    """
    Per-call overrides. Any field left as None falls back to the
    process-wide Settings.
    """

    bucket: Optional[str] = None
    folder: Optional[str] = None
    sse: Optional[str] = None
    kms_key_id: Optional[str] = None
    tags: Optional[Dict[str, str]] = None
    max_size_bytes: Optional[int] = None
    allowed_content_types: Optional[List[str]] = None
    metadata: Optional[Dict[str, str]] = None
    expires_seconds: Optional[int] = None
    response_content_type: Optional[str] = None
    response_content_disposition: Optional[str] = None


class Encryption(BaseModel):
    """Server-side encryption parameters resolved for one write."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    kms_key_id: Optional[str] = None


@dataclass(frozen=True)
class Payload:
    """
    Bytes to upload: either an in-memory buffer or a readable binary stream.

    ``content_type`` and ``size`` are advisory metadata; they are not checked
    against the actual bytes.
    """

    name: Optional[str] = None
    content_type: Optional[str] = None
    data: Optional[bytes] = None
    stream: Optional[IO[bytes]] = None
    size: Optional[int] = None

    @classmethod
    def from_bytes(cls, data: bytes, content_type: str, name: Optional[str] = None,
                   size: Optional[int] = None) -> "Payload":
        if size is None and data is not None:
            size = len(data)
        return cls(name=name, content_type=content_type, data=data, size=size)

    @classmethod
    def from_stream(cls, stream: IO[bytes], content_type: str, name: Optional[str] = None,
                    size: Optional[int] = None) -> "Payload":
        return cls(name=name, content_type=content_type, stream=stream, size=size)

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


class UploadResult(BaseModel):
    namespace: str
    path: str
    location: Optional[str] = None  # hint only; the object stays private
    etag: Optional[str] = None


class StoredItem(BaseModel):
    path: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


class ListResult(BaseModel):
    namespace: str
    prefix: str
    items: List[StoredItem] = Field(default_factory=list)
    truncated: bool = False
    continuation_token: Optional[str] = None


class ObjectMetadata(BaseModel):
    namespace: str
    path: str
    content_type: Optional[str] = None
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class DownloadResult(BaseModel):
    namespace: str
    path: str
    body: bytes
    content_type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class SignedUrlOperation(str, Enum):
    READ = "read"
    WRITE = "write"


class DeleteResult(BaseModel):
    namespace: str
    path: str
    deleted: bool = True


class RenameResult(BaseModel):
    namespace: str
    from_path: str
    to_path: str
    renamed: bool = True


class RenameState(str, Enum):
    """Where a copy-then-delete rename stands, judged from the store."""

    PENDING = "pending"      # only the source exists
    COPIED = "copied"        # both exist: copy done, delete outstanding
    COMPLETE = "complete"    # only the destination exists
    MISSING = "missing"      # neither exists


class RenameRequest(BaseModel):
    new_name: str
