"""
Document storage service.

Moves customer documents to and from the object store under sanitized,
deterministic keys (``{folder}/{owner_id}/{file_name}``) and issues
time-limited signed URLs.

Every store call is a single attempt; failures surface as NotFoundError or
TransportError with the original error attached. Writes always use a private
ACL. The ``location`` returned by ``upload`` is a hint and does not make the
object publicly readable.

``rename`` is copy-then-delete and is NOT atomic: if the delete fails after
a successful copy, both objects exist and ``RenameIncompleteError`` is
raised. Use ``check_rename`` / ``reconcile_rename`` to inspect and finish
such a rename. Concurrent writes or renames of the same key are not
coordinated (last writer wins at the store).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from portal.config import Settings
from portal.errors import RenameIncompleteError, TransportError, ValidationError
from portal.models.documents import (
    DeleteResult,
    DownloadResult,
    Encryption,
    ListResult,
    ObjectMetadata,
    Payload,
    RenameResult,
    RenameState,
    ResourceAddress,
    SignedUrlOperation,
    TransferOptions,
    UploadResult,
)
from portal.services.keys import build_address, owner_prefix
from portal.services.object_store import ObjectStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000


@dataclass
class DocumentStream:
    """A single-pass download. Re-fetch to read the object again."""

    namespace: str
    path: str
    content_type: Optional[str]
    size: int
    chunks: AsyncIterator[bytes]


class DocumentService:
    def __init__(self, store: ObjectStore, settings: Settings):
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # Option resolution
    # ------------------------------------------------------------------

    def _bucket(self, options: TransferOptions) -> str:
        return options.bucket or self.settings.docs_bucket

    def _address(self, owner_id: str, name: str, options: TransferOptions) -> ResourceAddress:
        return build_address(
            owner_id, name,
            folder=options.folder or self.settings.docs_folder,
            namespace=self._bucket(options),
        )

    def _encryption(self, options: TransferOptions) -> Optional[Encryption]:
        algorithm = options.sse or self.settings.default_sse
        if not algorithm:
            return None
        kms_key_id = options.kms_key_id or self.settings.default_kms_key_id
        return Encryption(algorithm=algorithm, kms_key_id=kms_key_id)

    @staticmethod
    def _tagging(options: TransferOptions) -> Optional[str]:
        # S3 expects URL-encoded query-string style: key1=value1&key2=value2
        if not options.tags:
            return None
        return urlencode({k: str(v) for k, v in options.tags.items()}, quote_via=quote)

    def _validate_payload(self, payload: Payload, options: TransferOptions) -> None:
        if payload is None:
            raise ValidationError("payload is required")
        if payload.data is None and payload.stream is None:
            raise ValidationError("payload must carry data or a stream")
        if payload.data is not None and payload.stream is not None:
            raise ValidationError("payload must carry either data or a stream, not both")
        if not payload.content_type or not payload.content_type.strip():
            raise ValidationError("content type must be a non-empty string")

        max_size = options.max_size_bytes
        if max_size is None:
            max_size = self.settings.max_file_size_bytes
        size = payload.size
        if size is None and payload.data is not None:
            size = len(payload.data)
        if max_size and max_size > 0:
            if size is None:
                raise ValidationError("payload size must be declared when a size limit applies")
            if size > max_size:
                raise ValidationError(f"File too large (max {max_size} bytes)")

        allowed = options.allowed_content_types
        if allowed is None:
            allowed = self.settings.allowed_mime_types
        if allowed and payload.content_type not in allowed:
            raise ValidationError(f"Content type not allowed: {payload.content_type}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def upload(self, payload: Payload, owner_id: str, name: Optional[str] = None,
                     options: Optional[TransferOptions] = None) -> UploadResult:
        options = options or TransferOptions()
        self._validate_payload(payload, options)
        address = self._address(owner_id, name or payload.name, options)

        kwargs = dict(
            metadata=options.metadata or None,
            encryption=self._encryption(options),
            tagging=self._tagging(options),
        )
        if payload.is_stream:
            result = await self.store.upload_stream(
                address.namespace, address.path, payload.stream, payload.content_type, **kwargs
            )
        else:
            result = await self.store.put_object(
                address.namespace, address.path, payload.data, payload.content_type, **kwargs
            )

        logger.info(f"Uploaded document: bucket={address.namespace} key={address.path}")
        return UploadResult(
            namespace=address.namespace,
            path=address.path,
            location=result.location,
            etag=result.etag,
        )

    async def list(self, owner_id: str, options: Optional[TransferOptions] = None,
                   page_size: Optional[int] = None,
                   continuation_token: Optional[str] = None) -> ListResult:
        options = options or TransferOptions()
        bucket = self._bucket(options)
        prefix = owner_prefix(owner_id, options.folder or self.settings.docs_folder)

        page_size = page_size or self.settings.list_page_size
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        page = await self.store.list_objects(bucket, prefix, page_size, continuation_token)
        return ListResult(
            namespace=bucket,
            prefix=prefix,
            items=page.items,
            truncated=page.truncated,
            continuation_token=page.next_token,
        )

    async def head_metadata(self, owner_id: str, name: str,
                            options: Optional[TransferOptions] = None) -> ObjectMetadata:
        address = self._address(owner_id, name, options or TransferOptions())
        info = await self.store.head_object(address.namespace, address.path)
        return ObjectMetadata(
            namespace=address.namespace,
            path=address.path,
            content_type=info.content_type,
            size=info.size,
            last_modified=info.last_modified,
            etag=info.etag,
            metadata=info.metadata,
        )

    async def download(self, owner_id: str, name: str,
                       options: Optional[TransferOptions] = None) -> DownloadResult:
        """Buffer the whole object in memory; prefer download_stream for large files."""
        address = self._address(owner_id, name, options or TransferOptions())
        obj = await self.store.get_object(address.namespace, address.path)
        return DownloadResult(
            namespace=address.namespace,
            path=address.path,
            body=obj.body,
            content_type=obj.content_type,
            metadata=obj.metadata,
        )

    async def download_stream(self, owner_id: str, name: str,
                              options: Optional[TransferOptions] = None) -> DocumentStream:
        """
        Open a lazy, single-pass byte stream.

        The object is inspected first so a missing key raises NotFoundError
        here rather than halfway through a response.
        """
        address = self._address(owner_id, name, options or TransferOptions())
        info = await self.store.head_object(address.namespace, address.path)
        return DocumentStream(
            namespace=address.namespace,
            path=address.path,
            content_type=info.content_type,
            size=info.size,
            chunks=self.store.open_object(address.namespace, address.path),
        )

    async def signed_url(self, operation: Union[str, SignedUrlOperation], owner_id: str,
                         name: str, options: Optional[TransferOptions] = None,
                         content_type: Optional[str] = None) -> str:
        options = options or TransferOptions()
        try:
            operation = SignedUrlOperation(operation)
        except ValueError:
            raise ValidationError("operation must be 'read' or 'write'")

        expires = options.expires_seconds or self.settings.signed_url_expiry_seconds
        if expires <= 0:
            raise ValidationError("expires_seconds must be positive")

        address = self._address(owner_id, name, options)
        if operation == SignedUrlOperation.WRITE:
            return await self.store.presign(
                "write", address.namespace, address.path, expires,
                content_type=content_type or "application/octet-stream",
                encryption=self._encryption(options),
            )
        return await self.store.presign(
            "read", address.namespace, address.path, expires,
            response_content_type=options.response_content_type,
            response_content_disposition=options.response_content_disposition,
        )

    async def delete(self, owner_id: str, name: str,
                     options: Optional[TransferOptions] = None) -> DeleteResult:
        address = self._address(owner_id, name, options or TransferOptions())
        await self.store.delete_object(address.namespace, address.path)
        logger.info(f"Deleted document: bucket={address.namespace} key={address.path}")
        return DeleteResult(namespace=address.namespace, path=address.path)

    def _rename_addresses(self, owner_id: str, old_name: str, new_name: str,
                          options: TransferOptions) -> Tuple[ResourceAddress, ResourceAddress]:
        source = self._address(owner_id, old_name, options)
        dest = self._address(owner_id, new_name, options)
        # Aliased names would make the source and destination the same object
        if source.path == dest.path:
            raise ValidationError("new name resolves to the same key as the old name")
        return source, dest

    async def rename(self, owner_id: str, old_name: str, new_name: str,
                     options: Optional[TransferOptions] = None) -> RenameResult:
        options = options or TransferOptions()
        source, dest = self._rename_addresses(owner_id, old_name, new_name, options)

        # Phase 1: copy. A failure here leaves the store untouched.
        await self.store.copy_object(source.namespace, source.path, dest.path)

        # Phase 2: delete the source. A failure here leaves both objects behind.
        try:
            await self.store.delete_object(source.namespace, source.path)
        except TransportError as e:
            logger.error(
                f"Rename left both objects: bucket={source.namespace} "
                f"from={source.path} to={dest.path}"
            )
            raise RenameIncompleteError(
                "Document was copied but the original could not be deleted",
                from_path=source.path,
                to_path=dest.path,
                cause=e,
            )

        return RenameResult(namespace=source.namespace, from_path=source.path, to_path=dest.path)

    async def check_rename(self, owner_id: str, old_name: str, new_name: str,
                           options: Optional[TransferOptions] = None) -> RenameState:
        options = options or TransferOptions()
        source, dest = self._rename_addresses(owner_id, old_name, new_name, options)

        source_exists, dest_exists = await asyncio.gather(
            self.store.exists(source.namespace, source.path),
            self.store.exists(dest.namespace, dest.path),
        )
        if source_exists and dest_exists:
            return RenameState.COPIED
        if source_exists:
            return RenameState.PENDING
        if dest_exists:
            return RenameState.COMPLETE
        return RenameState.MISSING

    async def reconcile_rename(self, owner_id: str, old_name: str, new_name: str,
                               options: Optional[TransferOptions] = None) -> RenameState:
        """Finish a rename stuck in the COPIED state by deleting the source."""
        options = options or TransferOptions()
        state = await self.check_rename(owner_id, old_name, new_name, options)
        if state != RenameState.COPIED:
            return state

        source = self._address(owner_id, old_name, options)
        await self.store.delete_object(source.namespace, source.path)
        logger.info(f"Reconciled rename: bucket={source.namespace} removed={source.path}")
        return RenameState.COMPLETE
