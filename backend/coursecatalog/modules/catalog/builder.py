from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping, Sequence

from coursecatalog.core.errors import (
    BuildCancelledError,
    BuildTimeoutError,
    CatalogError,
    CatalogReason,
)
from coursecatalog.modules.content.dto import SourceFile
from coursecatalog.modules.content.sources import ContentStore

from .schemas import (
    Catalog,
    CategoryGroup,
    Document,
    LearningPath,
    Module,
    ProjectExample,
)

logger = logging.getLogger(__name__)


def _to_document(source: SourceFile, module_id: str) -> Document:
    return Document(
        path=source.path,
        module_id=module_id,
        size_bytes=source.size_bytes,
        last_modified=source.last_modified,
        content_type=source.content_type,
    )


def _ancestors(folder: str) -> Iterable[str]:
    """Yield ``folder`` and each of its parents, deepest first, ending with the root ("")."""
    current = PurePosixPath(folder) if folder else None
    while current is not None and str(current) not in ("", "."):
        yield str(current)
        parent = current.parent
        current = parent if parent != current else None
    yield ""


class CatalogBuilder:
    """Cross-validates module records against a content store and groups them.

    A builder holds configuration only; every call to :meth:`build` returns a
    new catalog and never touches a previously built one.
    """

    def __init__(
        self,
        *,
        category_order: Sequence[str] | None = None,
        strict_orphans: bool = False,
    ) -> None:
        self.category_order = list(category_order or [])
        self.strict_orphans = strict_orphans

    def build(
        self,
        modules: Sequence[Module],
        content_store: ContentStore,
        *,
        learning_paths: Sequence[LearningPath] = (),
        projects: Sequence[ProjectExample] = (),
        metadata: Mapping[str, Any] | None = None,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> Catalog:
        modules = list(modules)
        self._checkpoint(cancel_event, deadline)

        primary = self._resolve_paths(modules, content_store, cancel_event, deadline)
        primaries, folders = self._folder_owners(modules)
        self._check_references(modules, learning_paths, projects)

        documents: dict[str, list[Document]] = {module.id: [] for module in modules}
        orphans: list[str] = []
        for source in content_store.list_documents():
            self._checkpoint(cancel_event, deadline)
            owner = self._owner_of(source, primaries, folders)
            if owner is None:
                orphans.append(source.path)
                continue
            documents[owner].append(_to_document(source, owner))

        # A store may filter the primary document out of its listing; keep it owned.
        for module in modules:
            if not any(doc.path == module.path for doc in documents[module.id]):
                documents[module.id].append(_to_document(primary[module.id], module.id))

        if orphans:
            orphans.sort()
            if self.strict_orphans:
                raise CatalogError(
                    "Documents not owned by any module",
                    reason=CatalogReason.ORPHANED_DOCUMENT,
                    offenders=orphans,
                )
            logger.warning("%d document(s) are not owned by any module: %s", len(orphans), ", ".join(orphans))

        if metadata and "total_modules" in metadata and metadata["total_modules"] != len(modules):
            logger.warning(
                "Manifest metadata declares %s modules but %d were parsed",
                metadata["total_modules"],
                len(modules),
            )

        return Catalog(
            categories=self._group(modules),
            documents={
                module_id: tuple(sorted(docs, key=lambda doc: doc.path)) for module_id, docs in documents.items()
            },
            orphaned_paths=tuple(orphans),
            learning_paths=tuple(learning_paths),
            project_examples=tuple(projects),
            metadata=dict(metadata or {}),
        )

    # ------------------------------------------------------------------
    def _checkpoint(self, cancel_event: threading.Event | None, deadline: float | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise BuildCancelledError("Catalog build cancelled")
        if deadline is not None and time.monotonic() >= deadline:
            raise BuildTimeoutError("Catalog build exceeded its deadline")

    def _resolve_paths(
        self,
        modules: Sequence[Module],
        content_store: ContentStore,
        cancel_event: threading.Event | None,
        deadline: float | None,
    ) -> dict[str, SourceFile]:
        resolved: dict[str, SourceFile] = {}
        dangling: list[str] = []
        for module in modules:
            self._checkpoint(cancel_event, deadline)
            source = content_store.stat(module.path)
            if source is None:
                dangling.append(module.id)
            else:
                resolved[module.id] = source
        if dangling:
            raise CatalogError(
                "Modules reference missing documents",
                reason=CatalogReason.DANGLING_REFERENCE,
                offenders=dangling,
            )
        return resolved

    def _folder_owners(self, modules: Sequence[Module]) -> tuple[dict[str, str], dict[str, str]]:
        """Map primary paths and module folders to their owning module ids.

        Every module owns its primary document. Other documents in a folder
        shared by several modules go to the one that sorts first by
        ``(order, id)``.
        """
        by_path: dict[str, list[str]] = defaultdict(list)
        for module in modules:
            by_path[module.path].append(module.id)
        shared = [module_id for ids in by_path.values() if len(ids) > 1 for module_id in ids]
        if shared:
            raise CatalogError(
                "Modules declare the same primary document",
                reason=CatalogReason.AMBIGUOUS_OWNERSHIP,
                offenders=shared,
            )

        folders: dict[str, str] = {}
        for module in sorted(modules, key=lambda module: (module.order, module.id)):
            folders.setdefault(module.folder, module.id)
        return {path: ids[0] for path, ids in by_path.items()}, folders

    def _owner_of(
        self,
        source: SourceFile,
        primaries: Mapping[str, str],
        folders: Mapping[str, str],
    ) -> str | None:
        if source.path in primaries:
            return primaries[source.path]
        for folder in _ancestors(source.folder):
            if folder in folders:
                return folders[folder]
        return None

    def _check_references(
        self,
        modules: Sequence[Module],
        learning_paths: Sequence[LearningPath],
        projects: Sequence[ProjectExample],
    ) -> None:
        known = {module.id for module in modules}
        unknown: list[str] = []
        referenced = [module_id for path in learning_paths for module_id in path.modules]
        referenced += [module_id for project in projects for module_id in project.modules_used]
        for module_id in referenced:
            if module_id not in known and module_id not in unknown:
                unknown.append(module_id)
        if unknown:
            raise CatalogError(
                "Learning paths or projects reference unknown modules",
                reason=CatalogReason.UNKNOWN_MODULE_REFERENCE,
                offenders=unknown,
            )

    def _group(self, modules: Sequence[Module]) -> tuple[CategoryGroup, ...]:
        grouped: dict[str, list[Module]] = {}
        for module in modules:
            grouped.setdefault(module.category, []).append(module)

        ordered = [category for category in self.category_order if category in grouped]
        ordered += [category for category in grouped if category not in ordered]
        return tuple(
            CategoryGroup(
                category=category,
                modules=tuple(sorted(grouped[category], key=lambda module: (module.order, module.id))),
            )
            for category in ordered
        )


def build(
    modules: Sequence[Module],
    content_store: ContentStore,
    *,
    category_order: Sequence[str] | None = None,
    strict_orphans: bool = False,
    **options: Any,
) -> Catalog:
    builder = CatalogBuilder(category_order=category_order, strict_orphans=strict_orphans)
    return builder.build(modules, content_store, **options)
