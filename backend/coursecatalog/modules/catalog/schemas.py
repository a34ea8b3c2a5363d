from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Annotated, Any, Iterator

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, field_validator


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


DifficultyLevel = Annotated[Difficulty, BeforeValidator(_lower)]


# ---- Manifest entry schemas ----


class ModuleEntry(BaseModel):
    """One manifest entry, keyed by module id in the manifest.

    Values are kept exactly as written; blank or non-canonical values are
    rejected rather than rewritten.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=50)
    path: str = Field(..., min_length=1)
    order: StrictInt = 0
    name: str | None = Field(None, max_length=100)
    summary: str = Field(default="", max_length=10_000)
    difficulty: DifficultyLevel = Difficulty.INTERMEDIATE
    estimated_hours: float | None = Field(default=None, gt=0)
    prerequisites: list[str] = Field(default_factory=list)

    @field_validator("title", "category")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("path")
    @classmethod
    def _relative_path(cls, value: str) -> str:
        normalized = PurePosixPath(value)
        if normalized.is_absolute() or ".." in normalized.parts:
            raise ValueError("path must be relative to the content root")
        if "\\" in value or normalized.as_posix() != value:
            raise ValueError("path must be a normalized POSIX path")
        return value


class LearningPathEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path_name: str = Field(..., min_length=1)
    difficulty: DifficultyLevel = Difficulty.INTERMEDIATE
    duration: str = ""
    modules: list[str] = Field(..., min_length=1)


class ProjectExampleEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str = Field(..., min_length=1)
    difficulty: DifficultyLevel = Difficulty.INTERMEDIATE
    features: list[str] = Field(default_factory=list)
    modules_used: list[str] = Field(default_factory=list)


# ---- Snapshot records ----


class Module(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    category: str
    path: str
    order: int = 0
    name: str
    summary: str = ""
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    estimated_hours: float | None = None
    prerequisites: tuple[str, ...] = ()

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.path).parent
        return "" if str(parent) == "." else str(parent)


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    module_id: str
    size_bytes: int
    last_modified: datetime
    content_type: str | None = None


class LearningPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    difficulty: Difficulty
    duration: str
    modules: tuple[str, ...]


class ProjectExample(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    difficulty: Difficulty
    features: tuple[str, ...]
    modules_used: tuple[str, ...]


class Manifest(BaseModel):
    """Everything decoded from a manifest payload, before cross-validation."""

    model_config = ConfigDict(frozen=True)

    modules: tuple[Module, ...]
    learning_paths: tuple[LearningPath, ...] = ()
    project_examples: tuple[ProjectExample, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)


class CategoryGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    modules: tuple[Module, ...] = Field(..., min_length=1)


class Catalog(BaseModel):
    """Immutable result of one build. Identical inputs produce equal catalogs."""

    model_config = ConfigDict(frozen=True)

    categories: tuple[CategoryGroup, ...]
    documents: dict[str, tuple[Document, ...]] = Field(default_factory=dict)
    orphaned_paths: tuple[str, ...] = ()
    learning_paths: tuple[LearningPath, ...] = ()
    project_examples: tuple[ProjectExample, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)

    def iter_modules(self) -> Iterator[Module]:
        for group in self.categories:
            yield from group.modules


class CatalogSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    catalog: Catalog
    generation: int
    built_at: datetime
    duration_seconds: float


class CategoryStats(BaseModel):
    category: str
    module_count: int
    estimated_hours: float


class CatalogStats(BaseModel):
    total_modules: int
    estimated_hours: float
    categories: list[CategoryStats]
