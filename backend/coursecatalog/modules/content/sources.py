from __future__ import annotations

import logging
import mimetypes
import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from stat import S_ISREG
from typing import Iterable, Iterator, Protocol

from coursecatalog.core.errors import ContentStoreError, ContentStoreReason

from .dto import SourceFile

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    def list_documents(self) -> Iterable[SourceFile]: ...

    def stat(self, path: str) -> SourceFile | None: ...

    def read_document(self, path: str) -> bytes: ...


class DocumentListing:
    """Lazy, restartable view over the documents below a root directory.

    Every iteration walks the tree again, so a listing can be reused after the
    content changes on disk.
    """

    def __init__(self, store: "LocalContentStore"):
        self._store = store

    def __iter__(self) -> Iterator[SourceFile]:
        return self._store._walk()


class LocalContentStore:
    """Read-only access to documents in a local directory tree."""

    def __init__(self, root: str | Path, allowed_extensions: Iterable[str] | None = None):
        self.root = Path(root).expanduser()
        self.allowed_extensions = {ext.lower() for ext in (allowed_extensions or ())}

    def list_documents(self) -> DocumentListing:
        self._check_root()
        return DocumentListing(self)

    def stat(self, path: str) -> SourceFile | None:
        try:
            target = self._resolve(path)
        except ContentStoreError:
            return None
        try:
            return self._describe(target)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as exc:
            raise ContentStoreError(
                f"Cannot stat document: {path}",
                reason=ContentStoreReason.UNREADABLE,
                path=path,
            ) from exc

    def read_document(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise ContentStoreError(
                f"Document not found: {path}",
                reason=ContentStoreReason.NOT_FOUND,
                path=path,
            ) from exc
        except OSError as exc:
            raise ContentStoreError(
                f"Document unreadable: {path}",
                reason=ContentStoreReason.UNREADABLE,
                path=path,
            ) from exc

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        raw = self.read_document(path)
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError as exc:
            raise ContentStoreError(
                f"Document is not valid {encoding}: {path}",
                reason=ContentStoreReason.UNREADABLE,
                path=path,
            ) from exc

    # ------------------------------------------------------------------
    def _check_root(self) -> None:
        if not self.root.exists():
            raise ContentStoreError(
                f"Content root not found: {self.root}",
                reason=ContentStoreReason.NOT_FOUND,
                path=str(self.root),
            )
        if not self.root.is_dir() or not os.access(self.root, os.R_OK | os.X_OK):
            raise ContentStoreError(
                f"Content root is not a readable directory: {self.root}",
                reason=ContentStoreReason.UNREADABLE,
                path=str(self.root),
            )

    def _walk(self) -> Iterator[SourceFile]:
        self._check_root()

        def _on_error(exc: OSError) -> None:
            raise ContentStoreError(
                f"Cannot enumerate {exc.filename}",
                reason=ContentStoreReason.UNREADABLE,
                path=str(exc.filename),
            ) from exc

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_on_error):
            dirnames.sort()
            for filename in sorted(filenames):
                child = Path(dirpath) / filename
                try:
                    source = self._describe(child)
                except FileNotFoundError:
                    # Removed between listing and stat.
                    logger.debug("Skipping vanished document %s", child)
                    continue
                except OSError as exc:
                    relative = child.relative_to(self.root).as_posix()
                    raise ContentStoreError(
                        f"Cannot stat document: {relative}",
                        reason=ContentStoreReason.UNREADABLE,
                        path=relative,
                    ) from exc
                if source is not None:
                    yield source

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ContentStoreError(
                f"Document path escapes the content root: {path}",
                reason=ContentStoreReason.NOT_FOUND,
                path=path,
            )
        return self.root.joinpath(*relative.parts)

    def _is_supported(self, path: Path) -> bool:
        if not self.allowed_extensions:
            return True
        return path.suffix.lower() in self.allowed_extensions

    def _describe(self, path: Path) -> SourceFile | None:
        """Stat ``path``; ``None`` when it is not a regular file with a supported extension."""
        info = path.stat()
        if not S_ISREG(info.st_mode) or not self._is_supported(path):
            return None
        content_type, _ = mimetypes.guess_type(path.name)
        return SourceFile(
            path=path.relative_to(self.root).as_posix(),
            absolute_path=path,
            size_bytes=info.st_size,
            last_modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
            content_type=content_type,
        )


def list_documents(root: str | Path, allowed_extensions: Iterable[str] | None = None) -> DocumentListing:
    return LocalContentStore(root, allowed_extensions).list_documents()
