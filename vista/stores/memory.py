"""
In-process document and blob stores. Used for local runs (catalog_backend=memory /
asset_backend=memory) and as test doubles; they follow the same contracts as the
Postgres and S3 clients, including NotFoundError for missing blobs.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from vista.errors import NotFoundError, StoreError
from vista.stores.base import BlobListing, BlobMetadata, Operator, Predicate, folder_prefix

logger = logging.getLogger(__name__)

_MISSING = object()


def _json_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _matches(doc: dict[str, Any], predicate: Predicate) -> bool:
    value = doc.get(predicate.field, _MISSING)
    if value is _MISSING or value is None:
        return False
    # ranges only match values of the same JSON type, as build_query guards with jsonb_typeof
    if predicate.op in (Operator.GTE, Operator.LTE) and _json_type(value) != _json_type(predicate.value):
        return False
    try:
        if predicate.op is Operator.EQ:
            return value == predicate.value
        if predicate.op is Operator.GTE:
            return value >= predicate.value
        if predicate.op is Operator.LTE:
            return value <= predicate.value
        if predicate.op is Operator.ARRAY_CONTAINS:
            return isinstance(value, list) and predicate.value in value
    except TypeError:
        # objects are not ordered in Python
        return False
    raise StoreError(f"Unsupported operator {predicate.op!r}")


class MemoryDocumentStore:
    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def create(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        docs = self._collections.setdefault(collection, {})
        if doc_id in docs:
            raise StoreError(f"Document {collection}/{doc_id} already exists")
        docs[doc_id] = copy.deepcopy(fields)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> bool:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            return False
        doc.update(copy.deepcopy(fields))
        return True

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._collections.get(collection, {}).pop(doc_id, None) is not None

    async def query(
        self,
        collection: str,
        predicates: list[Predicate],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        docs = [
            doc for doc in self._collections.get(collection, {}).values()
            if all(_matches(doc, p) for p in predicates)
        ]
        if order_by:
            docs = [d for d in docs if d.get(order_by) is not None]
            docs.sort(key=lambda d: d[order_by], reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    @asynccontextmanager
    async def transaction(self):
        # Serializes transactional blocks against each other only.
        async with self._lock:
            yield self


class MemoryBlobStore:
    def __init__(self, bucket: str = "vista-local"):
        self.bucket = bucket
        self._objects: dict[str, tuple[bytes, str | None, datetime]] = {}

    async def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        self._objects[path] = (bytes(data), content_type, datetime.now(timezone.utc))

    async def get(self, path: str) -> bytes:
        return self._require(path)[0]

    async def get_url(self, path: str) -> str:
        self._require(path)
        return f"memory://{self.bucket}/{quote(path)}"

    async def list(self, prefix: str) -> BlobListing:
        base = folder_prefix(prefix)
        listing = BlobListing()
        for path in sorted(self._objects):
            if not path.startswith(base):
                continue
            rest = path[len(base):]
            if "/" in rest:
                sub = f"{base}{rest.split('/', 1)[0]}/"
                if sub not in listing.prefixes:
                    listing.prefixes.append(sub)
            else:
                listing.items.append(path)
        return listing

    async def delete(self, path: str) -> None:
        self._require(path)
        del self._objects[path]

    async def get_metadata(self, path: str) -> BlobMetadata:
        data, content_type, updated = self._require(path)
        return BlobMetadata(size=len(data), content_type=content_type, updated=updated)

    async def exists(self, path: str) -> bool:
        return path in self._objects

    def _require(self, path: str) -> tuple[bytes, str | None, datetime]:
        try:
            return self._objects[path]
        except KeyError:
            raise NotFoundError(f"No object stored at '{path}'") from None
