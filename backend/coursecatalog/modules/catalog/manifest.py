"""Decode manifest payloads into validated module records.

The parser is a pure transformation over text: it never touches the content
directory. Two payload shapes are accepted::

    {"hof": {"title": ..., "category": ..., "path": ..., "order": 1}, ...}

or an envelope that also carries learning paths, project examples and free-form
metadata::

    {"metadata": {...}, "modules": {...}, "learning_paths": [...], "project_examples": [...]}
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from pydantic import BaseModel, ValidationError

from coursecatalog.core.errors import ManifestError, ManifestReason

from .schemas import (
    LearningPath,
    LearningPathEntry,
    Manifest,
    Module,
    ModuleEntry,
    ProjectExample,
    ProjectExampleEntry,
)

ENVELOPE_KEYS = {"modules", "metadata", "learning_paths", "project_examples"}


class _JsonObject(dict):
    """Decoded JSON object that remembers keys repeated in the source text."""

    duplicates: tuple[str, ...] = ()


def _object_pairs(pairs: list[tuple[str, Any]]) -> _JsonObject:
    obj = _JsonObject()
    seen: list[str] = []
    for key, value in pairs:
        if key in obj and key not in seen:
            seen.append(key)
        obj[key] = value
    obj.duplicates = tuple(seen)
    return obj


def _decode(manifest_text: str | bytes) -> Any:
    try:
        return json.loads(manifest_text, object_pairs_hook=_object_pairs)
    except (ValueError, TypeError) as exc:
        raise ManifestError(
            f"Manifest is not valid JSON: {exc}",
            reason=ManifestReason.MALFORMED,
        ) from exc


def _is_envelope(payload: dict) -> bool:
    modules = payload.get("modules")
    if not isinstance(modules, dict) or not set(payload) <= ENVELOPE_KEYS:
        return False
    return all(isinstance(entry, dict) for entry in modules.values())


def _validate(model: type[BaseModel], raw: Any, *, module_id: str | None, what: str) -> Any:
    if not isinstance(raw, dict):
        raise ManifestError(
            f"{what} must be an object",
            reason=ManifestReason.MALFORMED,
            module_id=module_id,
        )
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        missing = [err for err in errors if err["type"] == "missing"]
        first = missing[0] if missing else errors[0]
        field = str(first["loc"][0]) if first["loc"] else None
        if missing:
            raise ManifestError(
                f"{what} is missing required field '{field}'",
                reason=ManifestReason.MISSING_FIELD,
                module_id=module_id,
                field=field,
            ) from exc
        raise ManifestError(
            f"{what} has an invalid field '{field}': {first['msg']}",
            reason=ManifestReason.MALFORMED,
            module_id=module_id,
            field=field,
        ) from exc


def _parse_modules(raw_modules: dict, categories: Sequence[str] | None) -> tuple[Module, ...]:
    duplicates = getattr(raw_modules, "duplicates", ())
    if duplicates:
        raise ManifestError(
            f"Duplicate module id '{duplicates[0]}'",
            reason=ManifestReason.DUPLICATE_ID,
            module_id=duplicates[0],
        )

    allowed = set(categories) if categories else None
    modules: list[Module] = []
    for module_id, raw in raw_modules.items():
        if not module_id.strip():
            raise ManifestError(
                "Module id must not be empty",
                reason=ManifestReason.MALFORMED,
                module_id=module_id,
            )
        entry: ModuleEntry = _validate(ModuleEntry, raw, module_id=module_id, what=f"Module '{module_id}'")
        if allowed is not None and entry.category not in allowed:
            raise ManifestError(
                f"Module '{module_id}' uses unknown category '{entry.category}'",
                reason=ManifestReason.UNKNOWN_CATEGORY,
                module_id=module_id,
                field="category",
            )
        modules.append(
            Module(
                id=module_id,
                title=entry.title,
                category=entry.category,
                path=entry.path,
                order=entry.order,
                name=entry.name or entry.title,
                summary=entry.summary,
                difficulty=entry.difficulty,
                estimated_hours=entry.estimated_hours,
                prerequisites=tuple(entry.prerequisites),
            )
        )
    return tuple(modules)


def _parse_list(raw: Any, model: type[BaseModel], what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ManifestError(f"'{what}' must be a list", reason=ManifestReason.MALFORMED, field=what)
    return [_validate(model, item, module_id=None, what=f"{what}[{index}]") for index, item in enumerate(raw)]


def parse_manifest(manifest_text: str | bytes, *, categories: Sequence[str] | None = None) -> Manifest:
    payload = _decode(manifest_text)
    if not isinstance(payload, dict):
        raise ManifestError("Manifest must be a JSON object", reason=ManifestReason.MALFORMED)

    if not _is_envelope(payload):
        return Manifest(modules=_parse_modules(payload, categories))
    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ManifestError("'metadata' must be an object", reason=ManifestReason.MALFORMED, field="metadata")

    modules = _parse_modules(payload["modules"], categories)
    paths: list[LearningPathEntry] = _parse_list(payload.get("learning_paths"), LearningPathEntry, "learning_paths")
    projects: list[ProjectExampleEntry] = _parse_list(
        payload.get("project_examples"), ProjectExampleEntry, "project_examples"
    )
    return Manifest(
        modules=modules,
        learning_paths=tuple(
            LearningPath(
                name=entry.path_name,
                difficulty=entry.difficulty,
                duration=entry.duration,
                modules=tuple(entry.modules),
            )
            for entry in paths
        ),
        project_examples=tuple(
            ProjectExample(
                name=entry.project_name,
                difficulty=entry.difficulty,
                features=tuple(entry.features),
                modules_used=tuple(entry.modules_used),
            )
            for entry in projects
        ),
        metadata=dict(metadata),
    )


def parse(manifest_text: str | bytes, *, categories: Sequence[str] | None = None) -> list[Module]:
    return list(parse_manifest(manifest_text, categories=categories).modules)
