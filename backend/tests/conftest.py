"""Shared pytest fixtures: on-disk content trees, manifests and an in-memory store."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Iterator

import pytest

from coursecatalog.modules.content.dto import SourceFile


EXAMPLE_MANIFEST: dict[str, Any] = {
    "hof": {
        "title": "Higher-Order Functions",
        "category": "javascript",
        "path": "js/call_function/HOF.md",
        "order": 1,
    },
    "hooks": {
        "title": "React Hooks",
        "category": "react",
        "path": "react/react-hooks/Hooks.markdown",
        "order": 1,
    },
}

EXAMPLE_FILES: dict[str, str] = {
    "js/call_function/HOF.md": "# Higher-Order Functions\n",
    "js/call_function/debounce.md": "# Debounce\n",
    "react/react-hooks/Hooks.markdown": "# Hooks\n",
}


def write_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content, encoding="utf-8")
    return root


def write_manifest(path: Path, payload: dict[str, Any] | str) -> Path:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    path.write_text(text, encoding="utf-8")
    return path


class MemoryContentStore:
    """Content store backed by a dict, for builder tests that should not touch disk."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = dict(files or {})
        self.stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _source(self, path: str) -> SourceFile:
        return SourceFile(
            path=path,
            absolute_path=Path("/memory") / path,
            size_bytes=len(self.files[path]),
            last_modified=self.stamp,
            content_type="text/markdown",
        )

    def list_documents(self) -> Iterator[SourceFile]:
        for path in sorted(self.files):
            yield self._source(path)

    def stat(self, path: str) -> SourceFile | None:
        normalized = PurePosixPath(path).as_posix()
        return self._source(normalized) if normalized in self.files else None

    def read_document(self, path: str) -> bytes:
        return self.files[path]


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    return write_tree(tmp_path / "content", EXAMPLE_FILES)


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    return write_manifest(tmp_path / "module.json", EXAMPLE_MANIFEST)


@pytest.fixture
def memory_store() -> MemoryContentStore:
    return MemoryContentStore({path: content.encode() for path, content in EXAMPLE_FILES.items()})
