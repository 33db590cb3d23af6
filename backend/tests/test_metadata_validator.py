"""
Tests for crmkit.metadata.validator

Covers:
  - _preprocess_on_key()            - PyYAML boolean True → "on" rename
  - validate_yaml_file()            - single-file validation (valid + invalid)
  - validate_metadata_dir()         - directory walk, registry cross-checks
  - validate_metadata_dir(strict=True)
"""
from __future__ import annotations

import copy
from pathlib import Path

from conftest import COMPANY, write_collection
from crmkit.metadata.validator import (
    ValidationIssue,
    _preprocess_on_key,
    validate_metadata_dir,
    validate_yaml_file,
)


# Path to the real metadata directory
_REPO_ROOT = Path(__file__).resolve().parents[2]
_METADATA_DIR = _REPO_ROOT / "metadata"


def _write_raw(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


# ---------------------------------------------------------------------------
# _preprocess_on_key
# ---------------------------------------------------------------------------

class TestPreprocessOnKey:
    def test_renames_true_key(self):
        assert _preprocess_on_key({True: ["create"], "name": "x"}) == {"on": ["create"], "name": "x"}

    def test_recurses_into_lists(self):
        doc = {"hooks": {"beforeSave": [{"name": "h", True: "update"}]}}
        assert _preprocess_on_key(doc) == {"hooks": {"beforeSave": [{"name": "h", "on": "update"}]}}

    def test_leaves_scalars(self):
        assert _preprocess_on_key("on") == "on"


# ---------------------------------------------------------------------------
# validate_yaml_file
# ---------------------------------------------------------------------------

class TestValidateCollectionFile:
    def test_valid_collection(self, metadata_dir):
        assert validate_yaml_file(metadata_dir / "collections" / "company.yaml") == []

    def test_bare_on_key_is_accepted(self, tmp_path):
        path = _write_raw(
            tmp_path / "hooked.yaml",
            "collection: hooked\n"
            "fields:\n  - name: title\n"
            "hooks:\n  afterSave:\n    - name: auditLog\n      on: [create, update]\n",
        )
        assert validate_yaml_file(path) == []

    def test_missing_fields(self, tmp_path):
        path = _write_raw(tmp_path / "empty.yaml", "collection: empty\n")
        issues = validate_yaml_file(path)
        assert len(issues) == 1
        assert "'fields' is a required property" in issues[0].message

    def test_unknown_top_level_key(self, tmp_path):
        path = _write_raw(tmp_path / "x.yaml", "collection: x\nfields: [{name: a}]\ncolour: red\n")
        issues = validate_yaml_file(path)
        assert any("colour" in i.message for i in issues)

    def test_relationship_requires_relation(self, tmp_path):
        path = _write_raw(
            tmp_path / "x.yaml",
            "collection: x\nfields:\n  - name: owner\n    type: relationship\n",
        )
        issues = validate_yaml_file(path)
        assert issues
        assert issues[0].path == "fields[0]"
        assert "relation" in issues[0].message

    def test_junction_requires_keys(self, tmp_path):
        path = _write_raw(
            tmp_path / "x.yaml",
            "collection: x\n"
            "fields:\n"
            "  - name: tags\n"
            "    type: multiRelationship\n"
            "    relation: {table: tag, junctionTable: x_tag}\n",
        )
        issues = validate_yaml_file(path)
        assert any("sourceKey" in i.message for i in issues)

    def test_kanban_requires_group_by(self, tmp_path):
        path = _write_raw(
            tmp_path / "x.yaml",
            "collection: x\nviews:\n  kanban: {}\nfields: [{name: a}]\n",
        )
        issues = validate_yaml_file(path)
        assert any("groupBy" in i.message for i in issues)

    def test_invalid_condition_operator(self, tmp_path):
        path = _write_raw(
            tmp_path / "x.yaml",
            "collection: x\n"
            "fields:\n"
            "  - name: a\n"
            "    showWhen: {field: b, operator: resembles, value: 1}\n",
        )
        assert validate_yaml_file(path)

    def test_yaml_parse_error(self, tmp_path):
        path = _write_raw(tmp_path / "bad.yaml", "collection: [oops\n")
        issues = validate_yaml_file(path)
        assert len(issues) == 1
        assert "YAML parse error" in issues[0].message

    def test_empty_file(self, tmp_path):
        path = _write_raw(tmp_path / "blank.yaml", "   \n")
        issues = validate_yaml_file(path)
        assert "empty" in issues[0].message


# ---------------------------------------------------------------------------
# validate_metadata_dir
# ---------------------------------------------------------------------------

class TestValidateMetadataDir:
    def test_real_metadata_is_valid(self):
        assert validate_metadata_dir(_METADATA_DIR, strict=True) == []

    def test_fixture_metadata_is_valid(self, metadata_dir):
        assert validate_metadata_dir(metadata_dir) == []

    def test_missing_dir(self, tmp_path):
        issues = validate_metadata_dir(tmp_path / "nope")
        assert len(issues) == 1
        assert "does not exist" in issues[0].message

    def test_broken_relation_reported(self, metadata_dir):
        data = copy.deepcopy(COMPANY)
        data["fields"].append(
            {"name": "owner", "type": "relationship", "relation": {"table": "user"}}
        )
        write_collection(metadata_dir, data)
        issues = validate_metadata_dir(metadata_dir)
        assert len(issues) == 1
        assert issues[0].severity == "error"
        assert "user" in issues[0].message

    def test_undeclared_dependency_is_warning(self, metadata_dir):
        data = copy.deepcopy(COMPANY)
        data["dependencies"] = [{"table": "note", "foreignKey": "company_id"}]
        write_collection(metadata_dir, data)
        issues = validate_metadata_dir(metadata_dir)
        assert len(issues) == 1
        issue = issues[0]
        assert issue.severity == "warning"
        assert issue.path == "dependencies"
        assert issue.file.name == "company.yaml"
        assert "company_contact.company_id" in issue.message

    def test_strict_escalates_warnings(self, metadata_dir):
        data = copy.deepcopy(COMPANY)
        data["dependencies"] = [{"table": "note", "foreignKey": "company_id"}]
        write_collection(metadata_dir, data)
        issues = validate_metadata_dir(metadata_dir, strict=True)
        assert [i.severity for i in issues] == ["error"]

    def test_issue_str(self, tmp_path):
        issue = ValidationIssue(file=tmp_path / "a.yaml", message="bad", path="fields[0]")
        assert str(issue) == f"[ERROR] {tmp_path / 'a.yaml'} at fields[0]: bad"
