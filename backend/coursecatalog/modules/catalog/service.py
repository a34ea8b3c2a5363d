from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Sequence

from coursecatalog.core.config import Settings, settings
from coursecatalog.core.errors import (
    BuildCancelledError,
    BuildTimeoutError,
    ContentStoreError,
    ContentStoreReason,
    CourseCatalogError,
    QueryError,
    QueryReason,
    ServiceClosedError,
)
from coursecatalog.modules.content.sources import ContentStore, LocalContentStore

from .builder import CatalogBuilder
from .manifest import parse_manifest
from .schemas import (
    Catalog,
    CatalogSnapshot,
    CatalogStats,
    CategoryStats,
    Difficulty,
    Document,
    LearningPath,
    Module,
    ProjectExample,
)

logger = logging.getLogger(__name__)


class CatalogState(str, Enum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class _Published:
    """A snapshot plus its lookup tables, swapped in as a single reference."""

    snapshot: CatalogSnapshot
    by_id: dict[str, Module]
    by_category: dict[str, tuple[Module, ...]]

    @classmethod
    def from_snapshot(cls, snapshot: CatalogSnapshot) -> "_Published":
        catalog = snapshot.catalog
        return cls(
            snapshot=snapshot,
            by_id={module.id: module for module in catalog.iter_modules()},
            by_category={group.category: group.modules for group in catalog.categories},
        )


class CatalogService:
    """Serves read-only catalog queries while rebuilds run on a single writer thread.

    Readers take the current published snapshot reference once per call and
    never block; a rebuild publishes a new snapshot with one attribute
    assignment, or nothing at all if it fails, is cancelled or times out.
    """

    def __init__(
        self,
        *,
        manifest_path: str | Path,
        content_store: ContentStore,
        builder: CatalogBuilder | None = None,
        categories: Sequence[str] | None = None,
        default_module_hours: float = 5.0,
        build_timeout_seconds: float | None = None,
    ) -> None:
        self.manifest_path = Path(manifest_path).expanduser()
        self.content_store = content_store
        self.categories = list(categories or [])
        self.builder = builder or CatalogBuilder(category_order=self.categories)
        self.default_module_hours = default_module_hours
        self.build_timeout_seconds = build_timeout_seconds

        self._published: _Published | None = None
        self._generation = 0
        self._building = False
        self._closed = False
        self._cancel_event: threading.Event | None = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="catalog-build")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "CatalogService":
        store = LocalContentStore(config.CATALOG_CONTENT_ROOT, config.allowed_extensions)
        builder = CatalogBuilder(
            category_order=config.category_order,
            strict_orphans=config.CATALOG_STRICT_ORPHANS,
        )
        return cls(
            manifest_path=config.CATALOG_MANIFEST_PATH,
            content_store=store,
            builder=builder,
            categories=config.category_order,
            default_module_hours=config.CATALOG_DEFAULT_MODULE_HOURS,
            build_timeout_seconds=config.CATALOG_BUILD_TIMEOUT_SECONDS,
        )

    # ---- Lifecycle ----
    @property
    def state(self) -> CatalogState:
        if self._closed:
            return CatalogState.CLOSED
        if self._building:
            return CatalogState.BUILDING
        if self._published is not None:
            return CatalogState.READY
        return CatalogState.EMPTY

    @property
    def snapshot(self) -> CatalogSnapshot | None:
        published = self._published
        return published.snapshot if published else None

    def reload(self, timeout: float | None = None) -> CatalogSnapshot:
        return self.reload_in_background(timeout=timeout).result()

    def reload_in_background(self, timeout: float | None = None) -> Future[CatalogSnapshot]:
        with self._lock:
            if self._closed:
                raise ServiceClosedError("Catalog service is closed")
            if self._cancel_event is not None:
                logger.info("Superseding in-flight catalog build")
                self._cancel_event.set()
            cancel_event = threading.Event()
            self._cancel_event = cancel_event
            if timeout is None:
                timeout = self.build_timeout_seconds
            return self._executor.submit(self._run_build, cancel_event, timeout)

    def cancel_build(self) -> bool:
        with self._lock:
            if self._cancel_event is None:
                return False
            self._cancel_event.set()
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._cancel_event is not None:
                self._cancel_event.set()
        self._executor.shutdown(wait=True)

    # ---- Queries ----
    def list_all(self) -> tuple[tuple[str, tuple[Module, ...]], ...]:
        catalog = self._current().snapshot.catalog
        return tuple((group.category, group.modules) for group in catalog.categories)

    def list_categories(self) -> list[str]:
        return list(self._current().by_category)

    def get_by_category(self, category: str) -> tuple[Module, ...]:
        return self._current().by_category.get(category, ())

    def get_by_id(self, module_id: str) -> Module:
        module = self._current().by_id.get(module_id)
        if module is None:
            raise QueryError(f"Module '{module_id}' not found", reason=QueryReason.NOT_FOUND, key=module_id)
        return module

    def search(
        self,
        query: str = "",
        *,
        category: str | None = None,
        difficulty: Difficulty | str | None = None,
    ) -> list[Module]:
        published = self._current()
        needle = query.strip().lower()
        wanted = Difficulty(difficulty.lower() if isinstance(difficulty, str) else difficulty) if difficulty else None
        results: list[Module] = []
        for module in published.snapshot.catalog.iter_modules():
            if category is not None and module.category != category:
                continue
            if wanted is not None and module.difficulty != wanted:
                continue
            if needle and not any(needle in text.lower() for text in (module.title, module.name, module.summary)):
                continue
            results.append(module)
        return results

    def get_documents(self, module_id: str) -> tuple[Document, ...]:
        published = self._current()
        if module_id not in published.by_id:
            raise QueryError(f"Module '{module_id}' not found", reason=QueryReason.NOT_FOUND, key=module_id)
        return published.snapshot.catalog.documents.get(module_id, ())

    def read_module(self, module_id: str) -> bytes:
        module = self.get_by_id(module_id)
        return self.content_store.read_document(module.path)

    def list_learning_paths(self) -> tuple[LearningPath, ...]:
        return self._current().snapshot.catalog.learning_paths

    def get_learning_path(self, name: str) -> list[Module]:
        published = self._current()
        for path in published.snapshot.catalog.learning_paths:
            if path.name == name:
                return [published.by_id[module_id] for module_id in path.modules]
        raise QueryError(f"Learning path '{name}' not found", reason=QueryReason.NOT_FOUND, key=name)

    def list_projects(self) -> tuple[ProjectExample, ...]:
        return self._current().snapshot.catalog.project_examples

    def stats(self) -> CatalogStats:
        catalog = self._current().snapshot.catalog
        per_category = [
            CategoryStats(
                category=group.category,
                module_count=len(group.modules),
                estimated_hours=sum(self._module_hours(module) for module in group.modules),
            )
            for group in catalog.categories
        ]
        return CatalogStats(
            total_modules=sum(item.module_count for item in per_category),
            estimated_hours=sum(item.estimated_hours for item in per_category),
            categories=per_category,
        )

    # ------------------------------------------------------------------
    def _current(self) -> _Published:
        published = self._published
        if published is None:
            raise QueryError("Catalog has not been built yet", reason=QueryReason.NOT_INITIALIZED)
        return published

    def _module_hours(self, module: Module) -> float:
        return module.estimated_hours if module.estimated_hours is not None else self.default_module_hours

    def _read_manifest(self) -> str:
        try:
            return self.manifest_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ContentStoreError(
                f"Manifest not found: {self.manifest_path}",
                reason=ContentStoreReason.NOT_FOUND,
                path=str(self.manifest_path),
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ContentStoreError(
                f"Manifest unreadable: {self.manifest_path}",
                reason=ContentStoreReason.UNREADABLE,
                path=str(self.manifest_path),
            ) from exc

    def _build_catalog(self, cancel_event: threading.Event, deadline: float | None) -> Catalog:
        manifest = parse_manifest(self._read_manifest(), categories=self.categories or None)
        return self.builder.build(
            manifest.modules,
            self.content_store,
            learning_paths=manifest.learning_paths,
            projects=manifest.project_examples,
            metadata=manifest.metadata,
            cancel_event=cancel_event,
            deadline=deadline,
        )

    def _run_build(self, cancel_event: threading.Event, timeout: float | None) -> CatalogSnapshot:
        started = time.monotonic()
        deadline = started + timeout if timeout is not None else None
        self._building = True
        logger.info("Catalog build started (manifest=%s)", self.manifest_path)
        try:
            catalog = self._build_catalog(cancel_event, deadline)
            # Last chance to drop the result before it becomes visible.
            if cancel_event.is_set():
                raise BuildCancelledError("Catalog build cancelled")
            if deadline is not None and time.monotonic() >= deadline:
                raise BuildTimeoutError("Catalog build exceeded its deadline")

            snapshot = CatalogSnapshot(
                catalog=catalog,
                generation=self._generation + 1,
                built_at=datetime.now(timezone.utc),
                duration_seconds=time.monotonic() - started,
            )
            self._generation = snapshot.generation
            self._published = _Published.from_snapshot(snapshot)
            logger.info(
                "Catalog generation %d published (%d categories, %d modules) in %.3f sec",
                snapshot.generation,
                len(catalog.categories),
                sum(len(group.modules) for group in catalog.categories),
                snapshot.duration_seconds,
            )
            return snapshot
        except (BuildCancelledError, BuildTimeoutError) as exc:
            logger.warning("Catalog build discarded: %s", exc)
            raise
        except CourseCatalogError:
            logger.exception("Catalog build failed; keeping generation %d", self._generation)
            raise
        finally:
            self._building = False
            with self._lock:
                if self._cancel_event is cancel_event:
                    self._cancel_event = None
