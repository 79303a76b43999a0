"""
Error taxonomy shared by the repositories, the facade and the HTTP surface.
Store clients translate backend exceptions into these before they leave the store layer.
"""


class CatalogError(Exception):
    """Base class for every error raised by the catalog and asset layers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """Malformed or missing fields, or a dangling parent reference on create."""


class NotFoundError(CatalogError):
    """The targeted document id or storage path does not exist."""


class ConflictError(CatalogError):
    """A delete was blocked by existing dependents."""


class StoreError(CatalogError):
    """Backing-service failure: network, quota, permission."""


class UploadError(StoreError):
    """Writing an asset failed."""


class ContentTypeError(UploadError, ValidationError):
    """An upload was refused before writing because of its content type."""
