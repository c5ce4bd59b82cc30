"""
Amazon S3 adapter for the object store port.

boto3 is synchronous, so every call runs in the default thread pool via
``asyncio.to_thread``. botocore's own retries are disabled: each operation is
a single attempt and failures propagate to the caller.
"""

import asyncio
import logging
from typing import IO, AsyncIterator, Dict, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from portal.config import Settings
from portal.errors import NotFoundError, TransportError
from portal.models.documents import Encryption, StoredItem
from portal.services.object_store import (
    PRIVATE_ACL,
    ObjectBody,
    ObjectInfo,
    ObjectPage,
    PutResult,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

_PRESIGN_METHODS = {
    "read": "get_object",
    "write": "put_object",
}


def _encryption_args(encryption: Optional[Encryption]) -> Dict[str, str]:
    if encryption is None:
        return {}
    args = {"ServerSideEncryption": encryption.algorithm}
    if encryption.algorithm == "aws:kms" and encryption.kms_key_id:
        args["SSEKMSKeyId"] = encryption.kms_key_id
    return args


def _write_args(content_type: str, metadata: Optional[Dict[str, str]],
                encryption: Optional[Encryption], tagging: Optional[str]) -> Dict[str, object]:
    args: Dict[str, object] = {"ContentType": content_type, "ACL": PRIVATE_ACL}
    if metadata:
        args["Metadata"] = metadata
    args.update(_encryption_args(encryption))
    if tagging:
        args["Tagging"] = tagging
    return args


class S3ObjectStore:
    """Stores documents in S3 buckets. Objects are always written with a private ACL."""

    def __init__(self, s3_client, region: Optional[str] = None):
        self.s3_client = s3_client
        self.region = region

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        # Credentials left as None are picked up by boto3 from its usual chain
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            config=Config(
                connect_timeout=settings.store_connect_timeout,
                read_timeout=settings.store_read_timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        )
        return cls(client, settings.aws_region)

    async def _call(self, action: str, bucket: str, key: str, func, *args, **kwargs):
        """Run a blocking boto3 call in a worker thread and classify its failure."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise NotFoundError(f"Object not found: {key}", cause=e)
            logger.error(f"S3 {action} error: bucket={bucket} key={key} code={code} message={e}")
            raise TransportError(f"S3 {action} failed ({code or 'unknown'})", cause=e)
        except BotoCoreError as e:
            logger.error(f"S3 {action} error: bucket={bucket} key={key} message={e}")
            raise TransportError(f"S3 {action} failed: {e}", cause=e)

    def _location(self, bucket: str, key: str) -> str:
        endpoint = str(self.s3_client.meta.endpoint_url).rstrip("/")
        return f"{endpoint}/{bucket}/{quote(key)}"

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str, *,
                         metadata: Optional[Dict[str, str]] = None,
                         encryption: Optional[Encryption] = None,
                         tagging: Optional[str] = None) -> PutResult:
        response = await self._call(
            "upload", bucket, key, self.s3_client.put_object,
            Bucket=bucket, Key=key, Body=data,
            **_write_args(content_type, metadata, encryption, tagging),
        )
        return PutResult(location=self._location(bucket, key), etag=response.get("ETag"))

    async def upload_stream(self, bucket: str, key: str, stream: IO[bytes], content_type: str, *,
                            metadata: Optional[Dict[str, str]] = None,
                            encryption: Optional[Encryption] = None,
                            tagging: Optional[str] = None) -> PutResult:
        # upload_fileobj switches to multipart for large bodies and returns nothing
        await self._call(
            "stream upload", bucket, key, self.s3_client.upload_fileobj,
            stream, bucket, key,
            ExtraArgs=_write_args(content_type, metadata, encryption, tagging),
        )
        return PutResult(location=self._location(bucket, key), etag=None)

    async def list_objects(self, bucket: str, prefix: str, page_size: int,
                           continuation_token: Optional[str] = None) -> ObjectPage:
        params = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": page_size}
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        response = await self._call("list", bucket, prefix, self.s3_client.list_objects_v2, **params)

        items = [
            StoredItem(
                path=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=obj.get("LastModified"),
                etag=obj.get("ETag"),
            )
            for obj in response.get("Contents") or []
        ]
        return ObjectPage(
            items=items,
            truncated=bool(response.get("IsTruncated")),
            next_token=response.get("NextContinuationToken") or None,
        )

    async def head_object(self, bucket: str, key: str) -> ObjectInfo:
        head = await self._call("head", bucket, key, self.s3_client.head_object,
                                Bucket=bucket, Key=key)
        return ObjectInfo(
            content_type=head.get("ContentType"),
            size=head.get("ContentLength", 0),
            last_modified=head.get("LastModified"),
            etag=head.get("ETag"),
            metadata=head.get("Metadata") or {},
        )

    def _download_sync(self, bucket: str, key: str) -> ObjectBody:
        response = self.s3_client.get_object(Bucket=bucket, Key=key)
        return ObjectBody(
            body=response["Body"].read(),
            content_type=response.get("ContentType"),
            metadata=response.get("Metadata") or {},
        )

    async def get_object(self, bucket: str, key: str) -> ObjectBody:
        return await self._call("download", bucket, key, self._download_sync, bucket, key)

    async def open_object(self, bucket: str, key: str,
                          chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        response = await self._call("download", bucket, key, self.s3_client.get_object,
                                    Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            while True:
                chunk = await self._call("stream read", bucket, key, body.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def presign(self, operation: str, bucket: str, key: str, expires_seconds: int, *,
                      content_type: Optional[str] = None,
                      encryption: Optional[Encryption] = None,
                      response_content_type: Optional[str] = None,
                      response_content_disposition: Optional[str] = None) -> str:
        params: Dict[str, object] = {"Bucket": bucket, "Key": key}
        if operation == "write":
            params["ContentType"] = content_type or "application/octet-stream"
            params["ACL"] = PRIVATE_ACL
            params.update(_encryption_args(encryption))
        else:
            if response_content_type:
                params["ResponseContentType"] = response_content_type
            if response_content_disposition:
                params["ResponseContentDisposition"] = response_content_disposition

        return await self._call(
            "presign", bucket, key, self.s3_client.generate_presigned_url,
            ClientMethod=_PRESIGN_METHODS[operation],
            Params=params,
            ExpiresIn=expires_seconds,
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        await self._call("delete", bucket, key, self.s3_client.delete_object,
                         Bucket=bucket, Key=key)

    async def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        await self._call(
            "copy", bucket, source_key, self.s3_client.copy_object,
            Bucket=bucket,
            CopySource={"Bucket": bucket, "Key": source_key},
            Key=dest_key,
            ACL=PRIVATE_ACL,
        )

    async def exists(self, bucket: str, key: str) -> bool:
        try:
            await self.head_object(bucket, key)
        except NotFoundError:
            return False
        return True
