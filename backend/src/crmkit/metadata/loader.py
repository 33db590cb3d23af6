"""Load collection descriptors from YAML files."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from crmkit.core.types import FieldKind
from crmkit.errors import ConfigurationError

logger = logging.getLogger(__name__)

VIEW_CONTEXTS = ("table", "detail", "create", "edit", "kanban", "calendar", "quickView")
HOOK_POINTS = ("beforeSave", "afterSave", "beforeDelete")
FILTER_TYPES = ("text", "select", "tab")


@dataclass(frozen=True)
class RelationConfig:
    """Configuration for a relationship, multiRelationship or media field."""

    table: str  # The related table
    label_field: str = "title"
    source_key: str | None = None  # Column pointing back at the owning record
    target_key: str | None = None  # Column pointing at the related record
    junction_table: str | None = None
    link_to: str | None = None  # Collection key used for navigation, defaults to table


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    label: str
    kind: FieldKind
    declared_type: str = "text"
    group: str | None = None
    tab: str | None = None
    show_in_table: bool = False
    clickable: bool = False
    open_mode: str = "page"  # "page" | "modal"
    relation: RelationConfig | None = None
    include_in_views: tuple[str, ...] | None = None
    format: str | None = None
    options: tuple[dict, ...] = ()
    editable: bool = True
    show_when: dict | None = None
    hide_when: dict | None = None
    display_label: str | None = None
    label_field: str | None = None  # Repeater item label field

    @property
    def stored_inline(self) -> bool:
        """Whether the value lives in a column of the collection's own table."""
        if self.kind is FieldKind.MULTI_RELATIONSHIP and self.relation:
            return not (self.relation.junction_table or self.relation.source_key)
        return True

    def option_label(self, value: Any) -> str | None:
        """Label of the status option matching ``value``, if declared."""
        for option in self.options:
            if option.get("value") == value:
                return option.get("label", str(value))
        return None


@dataclass(frozen=True)
class QuickViewConfig:
    title_field: str = "title"
    subtitle_field: str | None = None
    image_field: str | None = None


@dataclass(frozen=True)
class FilterConfig:
    """A list filter. ``text`` narrows by substring, ``select`` and ``tab`` by exact value."""

    field: str
    label: str
    type: str = "text"
    options: tuple[dict, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"field": self.field, "label": self.label, "type": self.type}
        if self.options:
            data["options"] = list(self.options)
        return data


@dataclass(frozen=True)
class DependencyConfig:
    """A child or junction table cleared before its parent is deleted."""

    table: str
    foreign_key: str


@dataclass(frozen=True)
class HookConfig:
    """Hook definition from YAML metadata."""

    name: str
    on: tuple[str, ...] = ("create", "update")
    when: dict | None = None
    description: str = ""


@dataclass(frozen=True)
class CollectionDescriptor:
    key: str
    name: str  # Backend table
    label: str
    singular_label: str
    fields: tuple[FieldDescriptor, ...]
    views: dict[str, dict] = field(default_factory=dict)
    quick_view: QuickViewConfig | None = None
    filters: tuple[FilterConfig, ...] = ()
    dependencies: tuple[DependencyConfig, ...] = ()
    hooks: dict[str, tuple[HookConfig, ...]] = field(default_factory=dict)
    label_field: str = "title"
    edit_path_prefix: str | None = None

    def get_field(self, name: str) -> FieldDescriptor | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field(name) is not None

    def fields_of_kind(self, *kinds: FieldKind) -> list[FieldDescriptor]:
        return [f for f in self.fields if f.kind in kinds]

    def to_dict(self) -> dict[str, Any]:
        """Serialise to camelCase. ``key`` carries the YAML ``collection`` value."""
        return {
            "key": self.key,
            "name": self.name,
            "label": self.label,
            "singularLabel": self.singular_label,
            "labelField": self.label_field,
            "editPathPrefix": self.edit_path_prefix,
            "views": self.views,
            "quickView": (
                {
                    "titleField": self.quick_view.title_field,
                    "subtitleField": self.quick_view.subtitle_field,
                    "imageField": self.quick_view.image_field,
                }
                if self.quick_view
                else None
            ),
            "filters": [f.to_dict() for f in self.filters],
            "dependencies": [
                {"table": d.table, "foreignKey": d.foreign_key} for d in self.dependencies
            ],
            "fields": [_field_to_dict(f) for f in self.fields],
        }


def _field_to_dict(f: FieldDescriptor) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": f.name,
        "label": f.label,
        "type": f.kind.value,
        "group": f.group,
        "tab": f.tab,
        "showInTable": f.show_in_table,
        "clickable": f.clickable,
        "openMode": f.open_mode,
        "editable": f.editable,
    }
    if f.relation:
        data["relation"] = {
            "table": f.relation.table,
            "labelField": f.relation.label_field,
            "sourceKey": f.relation.source_key,
            "targetKey": f.relation.target_key,
            "junctionTable": f.relation.junction_table,
            "linkTo": f.relation.link_to,
        }
    if f.include_in_views is not None:
        data["includeInViews"] = list(f.include_in_views)
    if f.options:
        data["options"] = list(f.options)
    if f.format:
        data["format"] = f.format
    return data


class MetadataLoader:
    """Loads collection definitions from YAML files."""

    def __init__(self, metadata_path: Path):
        self.metadata_path = metadata_path
        self.collections: dict[str, CollectionDescriptor] = {}

    def load_all(self) -> None:
        """Load every collection under ``<metadata_path>/collections``."""
        collections_path = self.metadata_path / "collections"
        if not collections_path.exists():
            logger.warning("No collections directory at %s", collections_path)
            return

        for yaml_file in sorted(collections_path.glob("*.yaml")):
            with open(yaml_file) as f:
                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"{yaml_file.name}: invalid YAML: {e}") from e
            if not data or "collection" not in data:
                logger.warning("Skipping %s: no 'collection' key", yaml_file.name)
                continue
            descriptor = self._resolve_collection(data)
            if descriptor.key in self.collections:
                raise ConfigurationError(
                    f"Duplicate collection '{descriptor.key}' in {yaml_file.name}"
                )
            self.collections[descriptor.key] = descriptor

    def _resolve_collection(self, data: dict) -> CollectionDescriptor:
        key = data["collection"]
        label = data.get("label", key.replace("_", " ").title())

        fields = tuple(self._resolve_field(key, f) for f in data.get("fields", []))

        quick_view = None
        qv_data = data.get("quickView")
        if qv_data:
            quick_view = QuickViewConfig(
                title_field=qv_data.get("titleField", "title"),
                subtitle_field=qv_data.get("subtitleField"),
                image_field=qv_data.get("imageField"),
            )

        filters = tuple(self._resolve_filter(key, f, fields) for f in data.get("filters", []))
        dependencies = tuple(
            DependencyConfig(table=d["table"], foreign_key=d["foreignKey"])
            for d in data.get("dependencies", [])
        )

        return CollectionDescriptor(
            key=key,
            name=data.get("name", key),
            label=label,
            singular_label=data.get("singularLabel", label),
            fields=fields,
            views=data.get("views") or {"table": {}},
            quick_view=quick_view,
            filters=filters,
            dependencies=dependencies,
            hooks=self._resolve_hooks(data.get("hooks", {})),
            label_field=data.get("labelField", "title"),
            edit_path_prefix=data.get("editPathPrefix"),
        )

    def _resolve_field(self, collection: str, data: dict) -> FieldDescriptor:
        name = data["name"]
        declared_type = data.get("type", "text")
        kind = FieldKind.parse(declared_type)
        if kind is FieldKind.UNKNOWN:
            logger.warning(
                "Field '%s.%s' has unrecognised type '%s'; rendering as raw text",
                collection,
                name,
                declared_type,
            )

        relation = None
        relation_data = data.get("relation")
        if relation_data:
            relation = RelationConfig(
                table=relation_data["table"],
                label_field=relation_data.get("labelField", "title"),
                source_key=relation_data.get("sourceKey"),
                target_key=relation_data.get("targetKey"),
                junction_table=relation_data.get("junctionTable"),
                link_to=relation_data.get("linkTo"),
            )

        include = data.get("includeInViews")
        if isinstance(include, str):
            include = [include]

        open_mode = data.get("openMode", "page")
        if open_mode not in ("page", "modal"):
            raise ConfigurationError(
                f"Field '{collection}.{name}' has invalid openMode '{open_mode}'"
            )

        return FieldDescriptor(
            name=name,
            label=data.get("label", _to_label(name)),
            kind=kind,
            declared_type=declared_type,
            group=data.get("group"),
            tab=data.get("tab"),
            show_in_table=data.get("showInTable", False),
            clickable=data.get("clickable", False),
            open_mode=open_mode,
            relation=relation,
            include_in_views=tuple(include) if include is not None else None,
            format=data.get("format"),
            options=tuple(_normalize_option(o) for o in data.get("options", [])),
            editable=data.get("editable", True),
            show_when=data.get("showWhen"),
            hide_when=data.get("hideWhen"),
            display_label=data.get("displayLabel"),
            label_field=data.get("labelField"),
        )

    def _resolve_filter(
        self, collection: str, data: dict, fields: tuple[FieldDescriptor, ...]) -> FilterConfig:
        """Status fields filter by option unless a type is given; options come from the field."""
        name = data["field"]
        target = next((f for f in fields if f.name == name), None)
        if target is None:
            raise ConfigurationError(f"Collection '{collection}' filters on unknown field '{name}'")

        filter_type = data.get("type") or ("select" if target.kind is FieldKind.STATUS else "text")
        if filter_type not in FILTER_TYPES:
            raise ConfigurationError(f"Filter '{collection}.{name}' has invalid type '{filter_type}'")

        options = tuple(_normalize_option(o) for o in data.get("options", []))
        if not options and filter_type != "text":
            options = target.options
        return FilterConfig(
            field=name,
            label=data.get("label", target.label),
            type=filter_type,
            options=options,
        )

    def _get_on(self, data: dict) -> tuple[str, ...]:
        """Extract the 'on' key from a YAML dict.

        PyYAML parses the bare key `on:` as boolean True, so we check
        both the string key "on" and the boolean key True.
        """
        on = data.get("on") or data.get(True, ["create", "update"])
        if isinstance(on, str):
            on = [on]
        return tuple(on)

    def _resolve_hooks(self, data: dict) -> dict[str, tuple[HookConfig, ...]]:
        hooks: dict[str, tuple[HookConfig, ...]] = {}
        for point, hook_list in data.items():
            if point not in HOOK_POINTS:
                logger.warning("Ignoring unknown hook point '%s'", point)
                continue
            if isinstance(hook_list, list):
                hooks[point] = tuple(
                    HookConfig(
                        name=h["name"],
                        on=self._get_on(h),
                        when=h.get("when"),
                        description=h.get("description", ""),
                    )
                    for h in hook_list
                )
        return hooks


def _normalize_option(option: Any) -> dict:
    if isinstance(option, dict):
        return {"value": option["value"], "label": option.get("label", _to_label(str(option["value"])))}
    return {"value": option, "label": _to_label(str(option))}


def _to_label(name: str) -> str:
    """Convert snake_case or camelCase to Title Case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append(" ")
        result.append(" " if char == "_" else char)
    return "".join(result).title()
