"""Shared fixtures: a small collection set on disk and two record stores."""

from pathlib import Path
from typing import Any

import pytest
import yaml

from crmkit.auth.principal import Principal
from crmkit.errors import AuthenticationError, DataSourceError
from crmkit.metadata.registry import CollectionRegistry
from crmkit.persistence.sql import SqlDataSource


def write_collection(metadata_dir: Path, data: dict) -> Path:
    path = metadata_dir / "collections" / f"{data['collection']}.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, sort_keys=False))
    return path


COMPANY = {
    "collection": "company",
    "label": "Companies",
    "singularLabel": "Company",
    "views": {"table": {}, "kanban": {"groupBy": "status"}},
    "quickView": {"titleField": "title", "subtitleField": "status", "imageField": "logo"},
    "filters": [{"field": "status"}, {"field": "title", "label": "Name"}],
    "dependencies": [
        {"table": "company_contact", "foreignKey": "company_id"},
        {"table": "note", "foreignKey": "company_id"},
    ],
    "fields": [
        {"name": "title", "type": "text", "showInTable": True, "clickable": True},
        {
            "name": "status",
            "type": "status",
            "showInTable": True,
            "options": [
                {"value": "draft", "label": "Draft"},
                {"value": "active", "label": "Active"},
                {"value": "archived", "label": "Archived"},
            ],
        },
        {"name": "revenue", "type": "currency", "group": "Finance"},
        {"name": "is_partner", "type": "boolean", "group": "Finance"},
        {"name": "logo", "type": "media", "relation": {"table": "media", "labelField": "title"}},
        {
            "name": "contacts",
            "type": "multiRelationship",
            "showInTable": True,
            "relation": {
                "table": "contact",
                "labelField": "title",
                "junctionTable": "company_contact",
                "sourceKey": "company_id",
                "targetKey": "contact_id",
            },
        },
        {
            "name": "notes",
            "type": "multiRelationship",
            "relation": {"table": "note", "labelField": "title", "sourceKey": "company_id"},
            "includeInViews": ["detail"],
        },
        {"name": "about", "type": "richText", "tab": "Profile"},
        {"name": "created_at", "type": "timestamp", "includeInViews": ["detail"]},
        {"name": "updated_at", "type": "timestamp", "includeInViews": ["detail"]},
    ],
}

CONTACT = {
    "collection": "contact",
    "label": "Contacts",
    "singularLabel": "Contact",
    "dependencies": [{"table": "company_contact", "foreignKey": "contact_id"}],
    "fields": [
        {"name": "title", "type": "text", "showInTable": True, "clickable": True, "openMode": "modal"},
        {"name": "email", "type": "text", "showInTable": True},
        {"name": "author_id", "type": "text", "includeInViews": ["detail"]},
        {"name": "addresses", "type": "repeater", "labelField": "street"},
    ],
}

NOTE = {
    "collection": "note",
    "label": "Notes",
    "singularLabel": "Note",
    "fields": [
        {"name": "title", "type": "text"},
        {"name": "body", "type": "richText"},
    ],
}

MEDIA = {
    "collection": "media",
    "label": "Media",
    "fields": [
        {"name": "title", "type": "text"},
        {"name": "url", "type": "link"},
    ],
}

EVENT = {
    "collection": "event",
    "label": "Events",
    "singularLabel": "Event",
    "views": {"calendar": {"startField": "starts_on", "endField": "ends_on"}},
    "fields": [
        {"name": "title", "type": "text", "showInTable": True},
        {"name": "starts_on", "type": "date"},
        {"name": "ends_on", "type": "date"},
    ],
}


@pytest.fixture
def metadata_dir(tmp_path) -> Path:
    root = tmp_path / "metadata"
    for data in (COMPANY, CONTACT, NOTE, MEDIA, EVENT):
        write_collection(root, data)
    return root


@pytest.fixture
def registry(metadata_dir) -> CollectionRegistry:
    return CollectionRegistry.from_path(metadata_dir)


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="user-1", tenant_id="t-1", role="admin")


@pytest.fixture
def sql_source(registry, principal):
    source = SqlDataSource("sqlite://", registry, principal_provider=lambda: principal)
    source.initialize()
    yield source
    source.close()


# ── In-memory store that records every call ──


def _matches(row: dict, filter: dict | None) -> bool:
    if not filter:
        return True
    if "field" in filter:
        value = row.get(filter["field"])
        op = filter["operator"]
        expected = filter.get("value")
        if op == "eq":
            return str(value) == str(expected)
        if op == "in":
            return str(value) in {str(v) for v in expected}
        if op == "isNull":
            return value is None
        raise AssertionError(f"operator {op} not supported by RecordingSource")
    results = [_matches(row, c) for c in filter.get("conditions", [])]
    return any(results) if filter.get("operator") == "or" else all(results)


class RecordingSource:
    """DataSource double that keeps rows in dicts and logs each call."""

    def __init__(self, principal: Principal | None = None):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[tuple[str, str], str] = {}
        self.principal = principal
        self._next_id = 1

    def seed(self, table: str, *rows: dict) -> list[dict]:
        created = []
        for row in rows:
            row = dict(row)
            if "id" not in row:
                row["id"] = self._next_id
                self._next_id += 1
            self.tables.setdefault(table, []).append(row)
            created.append(row)
        return created

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        message = self.fail_on.get((operation, table))
        if message:
            raise DataSourceError(table, message)

    async def select(self, table, filter=None):
        self._check("select", table)
        return [dict(r) for r in self.tables.get(table, []) if _matches(r, filter)]

    async def insert(self, table, rows):
        self._check("insert", table)
        return [dict(r) for r in self.seed(table, *rows)]

    async def update(self, table, filter, patch):
        self._check("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if _matches(row, filter):
                row.update(patch)
                updated.append(dict(row))
        return updated

    async def delete(self, table, filter):
        self._check("delete", table)
        rows = self.tables.get(table, [])
        kept = [r for r in rows if not _matches(r, filter)]
        self.tables[table] = kept
        return len(rows) - len(kept)

    async def current_principal(self):
        if self.principal is None:
            raise AuthenticationError("no principal")
        return self.principal


@pytest.fixture
def recording_source(principal) -> RecordingSource:
    return RecordingSource(principal)
