"""Catalog builder: cross-validation, ownership and deterministic grouping."""

from __future__ import annotations

import json
import threading
import time

import pytest

from coursecatalog.core.errors import (
    BuildCancelledError,
    BuildTimeoutError,
    CatalogError,
    CatalogReason,
)
from coursecatalog.modules.catalog.builder import CatalogBuilder, build
from coursecatalog.modules.catalog.manifest import parse, parse_manifest
from coursecatalog.modules.catalog.schemas import LearningPath, Module, ProjectExample
from coursecatalog.modules.content.sources import LocalContentStore

from conftest import EXAMPLE_MANIFEST, MemoryContentStore


def _module(module_id: str, category: str, path: str, order: int = 0) -> Module:
    return Module(id=module_id, title=module_id.title(), category=category, path=path, order=order, name=module_id)


def test_example_scenario(content_root):
    modules = parse(json.dumps(EXAMPLE_MANIFEST))

    catalog = build(modules, LocalContentStore(content_root))

    listing = [(group.category, [module.id for module in group.modules]) for group in catalog.categories]
    assert listing == [("javascript", ["hof"]), ("react", ["hooks"])]
    assert [doc.path for doc in catalog.documents["hof"]] == [
        "js/call_function/HOF.md",
        "js/call_function/debounce.md",
    ]
    assert all(doc.module_id == "hof" for doc in catalog.documents["hof"])
    assert catalog.orphaned_paths == ()


def test_dangling_references_are_all_reported(memory_store):
    modules = [
        _module("hof", "javascript", "js/call_function/HOF.md"),
        _module("regex", "javascript", "js/regex/RegEx.md"),
        _module("hooks", "react", "react/react-hooks/Hooks.markdown"),
        _module("redux", "react", "react/redux/Redux.md"),
    ]

    with pytest.raises(CatalogError) as excinfo:
        build(modules, memory_store)

    assert excinfo.value.reason is CatalogReason.DANGLING_REFERENCE
    assert excinfo.value.module_ids == ("regex", "redux")
    assert "regex" in str(excinfo.value)


def test_modules_sorted_by_order_then_id_and_categories_first_seen():
    store = MemoryContentStore(
        {
            "react/b/b.md": b"",
            "js/c/c.md": b"",
            "js/a/a.md": b"",
            "js/z/z.md": b"",
        }
    )
    modules = [
        _module("b", "react", "react/b/b.md"),
        _module("z", "javascript", "js/z/z.md", order=1),
        _module("c", "javascript", "js/c/c.md", order=2),
        _module("a", "javascript", "js/a/a.md", order=1),
    ]

    catalog = build(modules, store)

    assert [group.category for group in catalog.categories] == ["react", "javascript"]
    assert [module.id for module in catalog.categories[1].modules] == ["a", "z", "c"]
    assert [module.id for module in catalog.iter_modules()] == ["b", "a", "z", "c"]


def test_configured_category_order_wins():
    store = MemoryContentStore({"react/b/b.md": b"", "js/a/a.md": b"", "css/c/c.md": b""})
    modules = [
        _module("b", "react", "react/b/b.md"),
        _module("c", "css", "css/c/c.md"),
        _module("a", "javascript", "js/a/a.md"),
    ]

    catalog = CatalogBuilder(category_order=["javascript", "react", "vue"]).build(modules, store)

    assert [group.category for group in catalog.categories] == ["javascript", "react", "css"]


def test_documents_belong_to_the_deepest_module_folder():
    store = MemoryContentStore(
        {
            "js/objects/Objects.md": b"",
            "js/objects/extra.md": b"",
            "js/objects/oop/OOP.md": b"",
            "js/objects/oop/classes/Classes.md": b"",
        }
    )
    modules = [
        _module("objects", "javascript", "js/objects/Objects.md"),
        _module("oop", "javascript", "js/objects/oop/OOP.md"),
    ]

    catalog = build(modules, store)

    assert [doc.path for doc in catalog.documents["objects"]] == ["js/objects/Objects.md", "js/objects/extra.md"]
    assert [doc.path for doc in catalog.documents["oop"]] == [
        "js/objects/oop/OOP.md",
        "js/objects/oop/classes/Classes.md",
    ]


def test_orphans_are_recorded_or_rejected(memory_store):
    memory_store.files["README.md"] = b"# Readme"
    memory_store.files["css/flex/Flex.md"] = b""
    modules = parse(json.dumps(EXAMPLE_MANIFEST))

    catalog = build(modules, memory_store)
    assert catalog.orphaned_paths == ("README.md", "css/flex/Flex.md")

    with pytest.raises(CatalogError) as excinfo:
        build(modules, memory_store, strict_orphans=True)
    assert excinfo.value.reason is CatalogReason.ORPHANED_DOCUMENT
    assert excinfo.value.offenders == ("README.md", "css/flex/Flex.md")


def test_modules_sharing_a_folder_each_keep_their_primary_document():
    store = MemoryContentStore(
        {"js/misc/a.md": b"", "js/misc/b.md": b"", "js/misc/notes.md": b"", "js/c/c.md": b""}
    )
    modules = [
        _module("a", "javascript", "js/misc/a.md", order=2),
        _module("c", "javascript", "js/c/c.md"),
        _module("b", "javascript", "js/misc/b.md", order=1),
    ]

    catalog = build(modules, store)

    assert [doc.path for doc in catalog.documents["a"]] == ["js/misc/a.md"]
    assert [doc.path for doc in catalog.documents["b"]] == ["js/misc/b.md", "js/misc/notes.md"]
    assert [doc.path for doc in catalog.documents["c"]] == ["js/c/c.md"]
    assert catalog.orphaned_paths == ()


def test_shared_folder_nested_module_still_wins():
    store = MemoryContentStore(
        {
            "js/call_function/HOF.md": b"",
            "js/call_function/debounce.md": b"",
            "js/call_function/Throttle.md": b"",
            "js/call_function/curry/Curry.md": b"",
            "js/call_function/curry/partial.md": b"",
        }
    )
    modules = [
        _module("hof", "javascript", "js/call_function/HOF.md", order=1),
        _module("throttle", "javascript", "js/call_function/Throttle.md", order=2),
        _module("curry", "javascript", "js/call_function/curry/Curry.md", order=9),
    ]

    catalog = build(modules, store)

    assert [doc.path for doc in catalog.documents["hof"]] == ["js/call_function/HOF.md", "js/call_function/debounce.md"]
    assert [doc.path for doc in catalog.documents["throttle"]] == ["js/call_function/Throttle.md"]
    assert [doc.path for doc in catalog.documents["curry"]] == [
        "js/call_function/curry/Curry.md",
        "js/call_function/curry/partial.md",
    ]


def test_modules_declaring_the_same_document_are_ambiguous():
    store = MemoryContentStore({"js/misc/a.md": b"", "js/c/c.md": b""})
    modules = [
        _module("a", "javascript", "js/misc/a.md"),
        _module("c", "javascript", "js/c/c.md"),
        _module("b", "javascript", "js/misc/a.md"),
    ]

    with pytest.raises(CatalogError) as excinfo:
        build(modules, store)
    assert excinfo.value.reason is CatalogReason.AMBIGUOUS_OWNERSHIP
    assert excinfo.value.offenders == ("a", "b")


def test_unknown_module_references_in_paths_and_projects(memory_store):
    modules = parse(json.dumps(EXAMPLE_MANIFEST))
    paths = [LearningPath(name="Basics", difficulty="beginner", duration="1 week", modules=("hof", "arrays"))]
    projects = [ProjectExample(name="Todo", difficulty="beginner", features=(), modules_used=("hooks", "router"))]

    with pytest.raises(CatalogError) as excinfo:
        build(modules, memory_store, learning_paths=paths, projects=projects)
    assert excinfo.value.reason is CatalogReason.UNKNOWN_MODULE_REFERENCE
    assert excinfo.value.offenders == ("arrays", "router")


def test_identical_inputs_build_equal_catalogs(content_root):
    manifest = parse_manifest(json.dumps(EXAMPLE_MANIFEST))
    store = LocalContentStore(content_root)
    builder = CatalogBuilder()

    first = builder.build(manifest.modules, store)
    second = builder.build(manifest.modules, store)

    assert first == second
    assert first is not second


def test_metadata_mismatch_is_logged(memory_store, caplog):
    modules = parse(json.dumps(EXAMPLE_MANIFEST))

    with caplog.at_level("WARNING"):
        catalog = build(modules, memory_store, metadata={"total_modules": 25})

    assert catalog.metadata == {"total_modules": 25}
    assert "declares 25 modules" in caplog.text


def test_cancelled_before_start(memory_store):
    event = threading.Event()
    event.set()
    with pytest.raises(BuildCancelledError):
        build(parse(json.dumps(EXAMPLE_MANIFEST)), memory_store, cancel_event=event)


def test_cancelled_between_documents(memory_store):
    event = threading.Event()

    class CancellingStore(MemoryContentStore):
        def list_documents(self):
            for index, source in enumerate(super().list_documents()):
                if index == 1:
                    event.set()
                yield source

    store = CancellingStore(memory_store.files)
    with pytest.raises(BuildCancelledError):
        build(parse(json.dumps(EXAMPLE_MANIFEST)), store, cancel_event=event)


def test_deadline_in_the_past_times_out(memory_store):
    with pytest.raises(BuildTimeoutError):
        build(parse(json.dumps(EXAMPLE_MANIFEST)), memory_store, deadline=time.monotonic() - 1)
