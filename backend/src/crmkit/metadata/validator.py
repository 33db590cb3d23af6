"""Validation of collection metadata files.

Two passes. Each ``collections/*.yaml`` is checked on its own against
``schemas/collection.schema.json`` (Draft 2020-12, with shared
definitions in ``_defs.schema.json`` resolved through a ``referencing``
registry). Only if every file passes are the collections loaded together,
so that relation targets and cascade dependencies can be checked across
files.

PyYAML reads a bare ``on:`` key as boolean ``True``; documents are
rewritten back to ``"on"`` before the schema sees them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from crmkit.errors import ConfigurationError
from crmkit.metadata.registry import CollectionRegistry

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).parent / "schemas"
COLLECTION_SCHEMA = "collection.schema.json"


@dataclass
class ValidationIssue:
    file: Path
    message: str
    path: str = ""  # location inside the document, e.g. "fields[0]/type"
    severity: str = "error"  # "error" | "warning"

    def __str__(self) -> str:
        where = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{where}: {self.message}"


@lru_cache(maxsize=None)
def _schema(name: str) -> dict[str, Any]:
    return json.loads((SCHEMAS_DIR / name).read_text())


def _schema_registry() -> Registry:
    """Every schema in ``SCHEMAS_DIR``, addressable by its ``$id``."""
    registry = Registry()
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = _schema(schema_path.name)
        registry = registry.with_resource(
            schema["$id"], Resource(contents=schema, specification=DRAFT202012)
        )
    return registry


def _preprocess_on_key(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {("on" if k is True else k): _preprocess_on_key(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_preprocess_on_key(item) for item in obj]
    return obj


def _location(error: ValidationError) -> str:
    location = ""
    for part in error.absolute_path:
        if isinstance(part, int):
            location += f"[{part}]"
        else:
            location += f"/{part}" if location else str(part)
    return location


def _read_yaml(yaml_path: Path) -> tuple[Any, ValidationIssue | None]:
    try:
        doc = yaml.safe_load(yaml_path.read_text())
    except yaml.YAMLError as exc:
        return None, ValidationIssue(yaml_path, f"YAML parse error: {exc}")
    if doc is None:
        return None, ValidationIssue(yaml_path, "File is empty or contains only whitespace")
    return _preprocess_on_key(doc), None


def validate_yaml_file(
    yaml_path: Path,
    schema_name: str = COLLECTION_SCHEMA,
    *,
    registry: Registry | None = None,
) -> list[ValidationIssue]:
    """Schema issues for one file, in document order. Empty when valid."""
    doc, problem = _read_yaml(yaml_path)
    if problem is not None:
        return [problem]

    validator = Draft202012Validator(_schema(schema_name), registry=registry or _schema_registry())
    errors = sorted(validator.iter_errors(doc), key=lambda e: list(e.path))
    return [ValidationIssue(yaml_path, e.message, path=_location(e)) for e in errors]


def validate_metadata_dir(metadata_dir: Path, *, strict: bool = False) -> list[ValidationIssue]:
    """All issues under ``metadata_dir``.

    Broken relation references are errors. Junction or child tables that
    reference a collection without being listed in its ``dependencies``
    are warnings, or errors when ``strict`` is set.
    """
    if not metadata_dir.is_dir():
        return [ValidationIssue(metadata_dir, f"Metadata directory does not exist: {metadata_dir}")]

    try:
        schemas = _schema_registry()
    except (OSError, json.JSONDecodeError) as exc:
        return [ValidationIssue(SCHEMAS_DIR, f"Failed to load JSON Schema files: {exc}")]

    collections_dir = metadata_dir / "collections"
    issues = [
        issue
        for yaml_file in sorted(collections_dir.glob("*.yaml"))
        for issue in validate_yaml_file(yaml_file, registry=schemas)
    ]
    if not issues:
        issues = _cross_collection_issues(metadata_dir)

    if strict:
        for issue in issues:
            issue.severity = "error"
    return issues


def _cross_collection_issues(metadata_dir: Path) -> list[ValidationIssue]:
    collections_dir = metadata_dir / "collections"
    try:
        registry = CollectionRegistry.from_path(metadata_dir)
    except ConfigurationError as exc:
        return [ValidationIssue(collections_dir, str(exc))]

    return [
        ValidationIssue(
            collections_dir / f"{key}.yaml",
            f"'{dep.table}.{dep.foreign_key}' references this collection "
            "but is not listed in dependencies",
            path="dependencies",
            severity="warning",
        )
        for key in registry.keys()
        for dep in registry.undeclared_dependencies(key)
    ]
