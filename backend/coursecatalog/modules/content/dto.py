from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A file discovered under the content root, before it is assigned to a module."""

    path: str
    absolute_path: Path
    size_bytes: int
    last_modified: datetime
    content_type: str | None

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.path).parent
        return "" if str(parent) == "." else str(parent)
