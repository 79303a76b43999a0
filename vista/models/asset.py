from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class AssetType(str, Enum):
    MODEL = "model"
    TEXTURE = "texture"
    ENVIRONMENT = "environment"
    IMAGE = "image"


class AssetDescriptor(BaseModel):
    """A stored blob as seen through a listing. Not persisted as a document.

    When fetching the blob's metadata or URL failed, ``error`` is set and the
    size/content_type/url fields stay empty.
    """
    path: str
    name: str
    kind: AssetType | None = None
    owner_id: str | None = None
    size: int | None = None
    content_type: str | None = None
    url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Found:
    url: str


@dataclass(frozen=True)
class UseDefault:
    """The default asset is missing; callers fall back to a built-in default."""
    path: str
    reason: str = ""


DefaultAssetResult = Found | UseDefault
