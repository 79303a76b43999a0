"""
Interfaces for the two backing services: a keyed document store and a path-addressed blob store.
Repositories only ever see these; Postgres, S3 and in-memory implementations conform to them.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class Operator(str, Enum):
    EQ = "=="
    GTE = ">="
    LTE = "<="
    ARRAY_CONTAINS = "array-contains"


@dataclass(frozen=True)
class Predicate:
    field: str
    op: Operator
    value: Any


@dataclass
class BlobListing:
    """One level of a prefix listing: objects directly under it and the sub-prefixes ("folders")."""
    items: list[str] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)


@dataclass
class BlobMetadata:
    size: int
    content_type: str | None = None
    updated: datetime | None = None


class DocumentStore(Protocol):
    """Documents are JSON-compatible dicts keyed by (collection, id)."""

    async def create(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ...

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> bool:
        """Merge top-level fields into an existing document. Returns False if it does not exist."""
        ...

    async def delete(self, collection: str, doc_id: str) -> bool:
        ...

    async def query(
        self,
        collection: str,
        predicates: list[Predicate],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """All predicates are ANDed. Documents missing a predicate's field never match."""
        ...

    def transaction(self) -> AbstractAsyncContextManager["DocumentStore"]:
        """Yield a store whose operations commit or roll back together."""
        ...


class BlobStore(Protocol):
    async def put(self, path: str, data: bytes, content_type: str | None = None) -> None:
        ...

    async def get(self, path: str) -> bytes:
        ...

    async def get_url(self, path: str) -> str:
        """Download URL for an existing object. Raises NotFoundError otherwise."""
        ...

    async def list(self, prefix: str) -> BlobListing:
        ...

    async def delete(self, path: str) -> None:
        """Raises NotFoundError when nothing is stored at path."""
        ...

    async def get_metadata(self, path: str) -> BlobMetadata:
        ...

    async def exists(self, path: str) -> bool:
        ...


def folder_prefix(prefix: str) -> str:
    """Normalize a listing prefix to '' (root) or 'a/b/'."""
    prefix = prefix.strip("/")
    return f"{prefix}/" if prefix else ""
