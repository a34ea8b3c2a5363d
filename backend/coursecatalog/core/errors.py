"""Exception hierarchy for loading, building and querying the course catalog.

Each family carries a ``reason`` drawn from a string enum so callers can branch
on the failure mode without parsing messages. Errors raised while building never
touch the snapshot that is currently being served.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

__all__ = [
    "CourseCatalogError",
    "ContentStoreReason",
    "ContentStoreError",
    "ManifestReason",
    "ManifestError",
    "CatalogReason",
    "CatalogError",
    "QueryReason",
    "QueryError",
    "BuildCancelledError",
    "BuildTimeoutError",
    "ServiceClosedError",
]


class CourseCatalogError(RuntimeError):
    """Base exception for every catalog failure."""


class ContentStoreReason(str, Enum):
    NOT_FOUND = "not_found"
    UNREADABLE = "unreadable"


class ContentStoreError(CourseCatalogError):
    """Raised when the content directory or one of its documents cannot be accessed."""

    def __init__(self, message: str, *, reason: ContentStoreReason, path: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.path = path


class ManifestReason(str, Enum):
    MALFORMED = "malformed"
    DUPLICATE_ID = "duplicate_id"
    MISSING_FIELD = "missing_field"
    UNKNOWN_CATEGORY = "unknown_category"


class ManifestError(CourseCatalogError):
    """Raised when the manifest payload cannot be turned into module records."""

    def __init__(
        self,
        message: str,
        *,
        reason: ManifestReason,
        module_id: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.module_id = module_id
        self.field = field


class CatalogReason(str, Enum):
    DANGLING_REFERENCE = "dangling_reference"
    AMBIGUOUS_OWNERSHIP = "ambiguous_ownership"
    ORPHANED_DOCUMENT = "orphaned_document"
    UNKNOWN_MODULE_REFERENCE = "unknown_module_reference"


class CatalogError(CourseCatalogError):
    """Raised when modules fail cross-validation against the content store.

    ``offenders`` holds every offending module id (or document path for
    orphans), not only the first one found.
    """

    def __init__(self, message: str, *, reason: CatalogReason, offenders: Iterable[str]) -> None:
        self.reason = reason
        self.offenders = tuple(offenders)
        super().__init__(f"{message}: {', '.join(self.offenders)}")

    @property
    def module_ids(self) -> tuple[str, ...]:
        return self.offenders


class QueryReason(str, Enum):
    NOT_FOUND = "not_found"
    NOT_INITIALIZED = "not_initialized"


class QueryError(CourseCatalogError):
    """Raised to callers of the query interface."""

    def __init__(self, message: str, *, reason: QueryReason, key: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.key = key


class BuildCancelledError(CourseCatalogError):
    """Raised when a build observes its cancellation flag."""


class BuildTimeoutError(CourseCatalogError):
    """Raised when a build runs past its deadline."""


class ServiceClosedError(CourseCatalogError):
    """Raised when a reload is requested after the service was closed."""
