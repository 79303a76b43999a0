"""
Asset Repository: upload/list/delete/resolve-URL over the blob store, with storage
locations decided by the path resolver.

Every failure is raised to the caller except the two default-asset lookups, which
return a typed Found/UseDefault result instead.
"""

from __future__ import annotations

import logging
import mimetypes
import re
import time
from typing import AsyncIterator, Callable

from vista.errors import ContentTypeError, NotFoundError, StoreError, UploadError, ValidationError
from vista.models.asset import AssetDescriptor, AssetType, DefaultAssetResult, Found, UseDefault
from vista.modules.assets.paths import (
    DEFAULT_ENVIRONMENT_PATH,
    DEFAULT_FLOOR_TEXTURE_PATH,
    FLOOR_IMAGE_EXTENSIONS,
    AssetKind,
    describe_path,
    file_name_of,
    floor_panorama_prefix,
    is_image_name,
    parse_kind,
    resolve_path,
    with_name_prefix,
)
from vista.stores.base import BlobStore, folder_prefix

logger = logging.getLogger(__name__)

_CONTENT_TYPE = re.compile(r"^[\w.+-]+/[\w.+-]+$")

# mimetypes does not know the 3D / HDR formats on every platform
_EXTRA_CONTENT_TYPES = {
    ".glb": "model/gltf-binary",
    ".gltf": "model/gltf+json",
    ".exr": "image/x-exr",
    ".hdr": "image/vnd.radiance",
    ".webp": "image/webp",
}

_IMAGE_KINDS = {AssetKind.IMAGE, AssetKind.APARTMENT_IMAGE, AssetKind.FLOOR_PANORAMA}


def guess_content_type(file_name: str) -> str:
    lowered = file_name.lower()
    for ext, content_type in _EXTRA_CONTENT_TYPES.items():
        if lowered.endswith(ext):
            return content_type
    return mimetypes.guess_type(lowered)[0] or "application/octet-stream"


class AssetListing:
    """Lazy, restartable listing of the assets under a prefix.

    Each iteration lists the prefix again. With ``recurse`` the direct sub-prefixes
    ("folders") are listed one level deep and aggregated. With ``sort`` paths are
    ordered by file name, which is what reconstructs floor panorama sequences.
    Metadata/URL lookups happen per item as the listing is consumed; a failing item
    is yielded with ``error`` set instead of aborting the listing.
    """

    def __init__(
        self,
        repository: "AssetRepository",
        prefix: str,
        recurse: bool = True,
        sort: bool = False,
        name_filter: Callable[[str], bool] | None = None,
    ):
        self._repository = repository
        self.prefix = folder_prefix(prefix)
        self._recurse = recurse
        self._sort = sort
        self._name_filter = name_filter

    def __aiter__(self) -> AsyncIterator[AssetDescriptor]:
        return self._iterate()

    async def collect(self) -> list[AssetDescriptor]:
        return [descriptor async for descriptor in self]

    async def _iterate(self) -> AsyncIterator[AssetDescriptor]:
        blobs = self._repository.blob_store
        listing = await blobs.list(self.prefix)
        paths = list(listing.items)
        failed_prefixes: list[AssetDescriptor] = []

        if self._recurse:
            for sub in listing.prefixes:
                try:
                    paths.extend((await blobs.list(sub)).items)
                except StoreError as e:
                    logger.warning("Could not list %s: %s", sub, e)
                    failed_prefixes.append(
                        AssetDescriptor(path=sub, name=file_name_of(sub), error=e.message)
                    )

        if self._name_filter:
            paths = [p for p in paths if self._name_filter(file_name_of(p))]
        if self._sort:
            paths.sort(key=lambda p: (file_name_of(p), p))

        for path in paths:
            yield await self._repository.describe(path)
        for failure in failed_prefixes:
            yield failure


class AssetRepository:
    def __init__(self, blob_store: BlobStore, clock_ms: Callable[[], int] | None = None):
        self.blob_store = blob_store
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    async def upload(
        self,
        kind: "AssetKind | str | None",
        owner_id: str | None,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        category: str | None = None,
        overwrite: bool = False,
    ) -> AssetDescriptor:
        """Write an asset at its canonical path and return its descriptor.

        Without ``overwrite``, an existing object at the canonical path is kept and the
        new file name gets a millisecond timestamp prefix instead. A floor's own model
        (``floors/{floor_id}.glb``) has one slot and is always replaced.
        """
        path = resolve_path(kind, owner_id, file_name, category)
        content_type = self._checked_content_type(kind, file_name, content_type)
        asset_type, owner = describe_path(path)
        if asset_type is AssetType.MODEL and owner:
            overwrite = True

        try:
            if not overwrite:
                path = await self._free_path(path)
            await self.blob_store.put(path, data, content_type)
            url = await self.blob_store.get_url(path)
        except (StoreError, NotFoundError) as e:
            logger.error("Upload of %s to %s failed: %s", file_name, path, e)
            raise UploadError(f"Could not upload '{file_name}': {e.message}") from e

        logger.info("Uploaded %s (%d bytes) to %s", file_name, len(data), path)
        return AssetDescriptor(
            path=path,
            name=file_name_of(path),
            kind=asset_type,
            owner_id=owner,
            size=len(data),
            content_type=content_type,
            url=url,
        )

    async def resolve_url(self, path: str) -> str:
        return await self.blob_store.get_url(path)

    async def download(self, path: str) -> bytes:
        return await self.blob_store.get(path)

    def list(self, prefix: str, recurse: bool = True, sort: bool = False) -> AssetListing:
        return AssetListing(self, prefix, recurse=recurse, sort=sort)

    async def delete(self, path: str) -> None:
        await self.blob_store.delete(path)
        logger.info("Deleted asset %s", path)

    async def describe(self, path: str) -> AssetDescriptor:
        asset_type, owner = describe_path(path)
        descriptor = AssetDescriptor(path=path, name=file_name_of(path), kind=asset_type, owner_id=owner)
        try:
            metadata = await self.blob_store.get_metadata(path)
            descriptor.size = metadata.size
            descriptor.content_type = metadata.content_type
            descriptor.url = await self.blob_store.get_url(path)
        except (StoreError, NotFoundError) as e:
            logger.warning("Could not describe %s: %s", path, e)
            descriptor.error = e.message
        return descriptor

    # --- Collections ---

    async def list_models(self) -> list[AssetDescriptor]:
        return await self.list("models").collect()

    async def list_environments(self) -> list[AssetDescriptor]:
        return await self.list("environments", recurse=False).collect()

    # --- Default assets (soft-fail) ---

    async def default_environment(self) -> DefaultAssetResult:
        return await self._default_asset(DEFAULT_ENVIRONMENT_PATH)

    async def default_floor_texture(self) -> DefaultAssetResult:
        return await self._default_asset(DEFAULT_FLOOR_TEXTURE_PATH)

    # --- Floor images (360° panoramas) ---

    def floor_images(self, floor_id: str) -> AssetListing:
        """Image files of a floor, in file-name order."""
        prefix = floor_panorama_prefix(floor_id)
        return AssetListing(
            self, prefix, recurse=False, sort=True,
            name_filter=lambda name: is_image_name(name, FLOOR_IMAGE_EXTENSIONS),
        )

    async def floor_image_details(self, floor_id: str) -> list[AssetDescriptor]:
        return await self.floor_images(floor_id).collect()

    async def upload_floor_image(
        self,
        floor_id: str,
        file_name: str,
        data: bytes,
        custom_name: str | None = None,
        content_type: str | None = None,
    ) -> AssetDescriptor:
        # panorama names carry their sequence, so replacing one in place is expected
        return await self.upload(
            AssetKind.FLOOR_PANORAMA, floor_id, custom_name or file_name, data,
            content_type=content_type or guess_content_type(file_name), overwrite=True,
        )

    async def floor_image_info(self, floor_id: str, file_name: str) -> AssetDescriptor:
        path = resolve_path(AssetKind.FLOOR_PANORAMA, floor_id, file_name)
        metadata = await self.blob_store.get_metadata(path)
        return AssetDescriptor(
            path=path,
            name=file_name,
            kind=AssetKind.FLOOR_PANORAMA.asset_type,
            owner_id=floor_id,
            size=metadata.size,
            content_type=metadata.content_type,
            url=await self.blob_store.get_url(path),
        )

    async def delete_floor_image(self, floor_id: str, file_name: str) -> None:
        await self.delete(resolve_path(AssetKind.FLOOR_PANORAMA, floor_id, file_name))

    async def rename_floor_image(self, floor_id: str, file_name: str, new_file_name: str) -> AssetDescriptor:
        old_path = resolve_path(AssetKind.FLOOR_PANORAMA, floor_id, file_name)
        new_path = resolve_path(AssetKind.FLOOR_PANORAMA, floor_id, new_file_name)
        if old_path == new_path:
            raise ValidationError("The new file name is the same as the current one")
        if await self.blob_store.exists(new_path):
            raise ValidationError(f"'{new_file_name}' already exists on floor {floor_id}")

        metadata = await self.blob_store.get_metadata(old_path)
        data = await self.blob_store.get(old_path)
        await self.blob_store.put(new_path, data, metadata.content_type)
        await self.blob_store.delete(old_path)
        logger.info("Renamed %s to %s", old_path, new_path)
        return await self.floor_image_info(floor_id, new_file_name)

    # ---------- Helpers ----------

    async def _free_path(self, path: str) -> str:
        if not await self.blob_store.exists(path):
            return path
        stamp = self._clock_ms()
        candidate = with_name_prefix(path, str(stamp))
        while await self.blob_store.exists(candidate):
            stamp += 1
            candidate = with_name_prefix(path, str(stamp))
        logger.info("%s already exists, storing as %s", path, candidate)
        return candidate

    async def _default_asset(self, path: str) -> DefaultAssetResult:
        try:
            return Found(await self.blob_store.get_url(path))
        except (NotFoundError, StoreError) as e:
            logger.warning("Default asset %s unavailable, using built-in fallback: %s", path, e)
            return UseDefault(path=path, reason=e.message)

    @staticmethod
    def _checked_content_type(kind, file_name: str, content_type: str | None) -> str:
        if content_type is None:
            return guess_content_type(file_name)
        if not _CONTENT_TYPE.match(content_type):
            raise ContentTypeError(f"Invalid content type '{content_type}' for '{file_name}'")
        if parse_kind(kind) in _IMAGE_KINDS and not content_type.startswith("image/"):
            raise ContentTypeError(f"'{file_name}' must be an image, got '{content_type}'")
        return content_type
