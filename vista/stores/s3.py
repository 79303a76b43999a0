"""
S3-compatible blob storage for catalog assets.
Supports AWS S3, Cloudflare R2, MinIO, Supabase Storage, etc.

boto3 is synchronous, so every call runs in a worker thread to keep the event loop free.
"""

import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vista.config import Settings
from vista.errors import NotFoundError, StoreError
from vista.stores.base import BlobListing, BlobMetadata, folder_prefix

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def create_s3_client(settings: Settings):
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url or None,
        aws_access_key_id=settings.s3_access_key_id or None,
        aws_secret_access_key=settings.s3_secret_access_key or None,
        region_name=settings.s3_region or "us-east-1",
        config=Config(signature_version="s3v4"),
    )


class S3BlobStore:
    def __init__(self, client, bucket: str, public_url: str = "", url_expiry: int = 7 * 24 * 3600):
        self._client = client
        self._bucket = bucket
        self._public_url = public_url.rstrip("/")
        self._url_expiry = url_expiry

    async def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        await self._call(
            "put_object",
            path,
            Bucket=self._bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        logger.info("Stored %s (%d bytes) in %s", path, len(data), self._bucket)

    async def get(self, path: str) -> bytes:
        response = await self._call("get_object", path, Bucket=self._bucket, Key=path)
        return await asyncio.to_thread(response["Body"].read)

    async def get_url(self, path: str) -> str:
        await self._head(path)
        if self._public_url:
            return f"{self._public_url}/{path}"
        return await self._call(
            "generate_presigned_url",
            path,
            "get_object",
            Params={"Bucket": self._bucket, "Key": path},
            ExpiresIn=self._url_expiry,
        )

    async def list(self, prefix: str) -> BlobListing:
        base = folder_prefix(prefix)
        listing = BlobListing()
        token = None
        while True:
            kwargs = {"Bucket": self._bucket, "Prefix": base, "Delimiter": "/"}
            if token:
                kwargs["ContinuationToken"] = token
            page = await self._call("list_objects_v2", base, **kwargs)
            listing.items.extend(obj["Key"] for obj in page.get("Contents", []) if obj["Key"] != base)
            listing.prefixes.extend(p["Prefix"] for p in page.get("CommonPrefixes", []))
            if not page.get("IsTruncated"):
                return listing
            token = page.get("NextContinuationToken")

    async def delete(self, path: str) -> None:
        # S3 deletes are idempotent; check first so a missing object is reported
        await self._head(path)
        await self._call("delete_object", path, Bucket=self._bucket, Key=path)
        logger.info("Deleted %s from %s", path, self._bucket)

    async def get_metadata(self, path: str) -> BlobMetadata:
        head = await self._head(path)
        return BlobMetadata(
            size=head.get("ContentLength", 0),
            content_type=head.get("ContentType"),
            updated=head.get("LastModified"),
        )

    async def exists(self, path: str) -> bool:
        try:
            await self._head(path)
        except NotFoundError:
            return False
        return True

    async def _head(self, path: str) -> dict:
        return await self._call("head_object", path, Bucket=self._bucket, Key=path)

    async def _call(self, method: str, path: str, *args, **kwargs):
        try:
            return await asyncio.to_thread(getattr(self._client, method), *args, **kwargs)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise NotFoundError(f"No object stored at '{path}'") from e
            logger.error("S3 %s failed for %s: %s", method, path, e)
            raise StoreError(f"Blob store error on '{path}': {code or e}") from e
        except BotoCoreError as e:
            logger.error("S3 %s failed for %s: %s", method, path, e)
            raise StoreError(f"Blob store error on '{path}': {e}") from e
