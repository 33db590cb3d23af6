"""Tests for the field type resolver and named formatters."""

import pytest

from crmkit.core.types import FieldKind, get_field_type, get_storage_type
from crmkit.fields import FieldTypeResolver, FormatterRegistry, RenderMode, formatter
from crmkit.fields.formatters import (
    PLACEHOLDER,
    format_currency,
    format_date,
    format_timestamp,
    register_builtin_formatters,
    strip_tags,
)
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor, RelationConfig
from crmkit.metadata.registry import CollectionRegistry


@pytest.fixture
def resolver():
    return FieldTypeResolver()


def _field(kind: FieldKind, name="value", **kwargs) -> FieldDescriptor:
    return FieldDescriptor(name=name, label=kwargs.pop("label", "Value"), kind=kind, **kwargs)


# ── Formatters ──


class TestFormatters:
    def test_date(self):
        assert format_date("2024-03-05") == "Mar 5, 2024"

    def test_timestamp(self):
        assert format_timestamp("2024-03-05T14:30:00") == "Mar 5, 2024 2:30 PM"
        assert format_timestamp("2024-03-05T00:05:00Z") == "Mar 5, 2024 12:05 AM"

    def test_currency(self):
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency("-12") == "-$12.00"
        assert format_currency("n/a") == "n/a"

    def test_unparseable_date_falls_back_to_raw(self):
        assert format_date("someday") == "someday"

    def test_strip_tags(self):
        assert strip_tags("<p>Hello <b>world</b> &amp; co</p>") == "Hello world & co"

    def test_custom_formatter_registration(self):
        @formatter("percentTest")
        def percent(value):
            return f"{float(value):.0%}"

        assert FormatterRegistry.get("percentTest")(0.25) == "25%"
        assert "percentTest" in FormatterRegistry.list_registered()

    def test_builtins_registered(self):
        register_builtin_formatters()
        for name in ("date", "timestamp", "currency", "boolean", "plainText", "uppercase"):
            assert FormatterRegistry.is_registered(name)


# ── Field type registry ──


class TestFieldTypes:
    def test_parse_unknown(self):
        assert FieldKind.parse("hologram") is FieldKind.UNKNOWN
        assert FieldKind.parse(None) is FieldKind.TEXT
        assert FieldKind.parse("multiRelationship") is FieldKind.MULTI_RELATIONSHIP

    def test_storage_types(self):
        assert get_storage_type(FieldKind.CURRENCY) == "REAL"
        assert get_storage_type(FieldKind.RELATIONSHIP) == "INTEGER"
        assert get_storage_type(FieldKind.REPEATER) == "JSON"

    def test_currency_is_right_aligned(self):
        assert get_field_type(FieldKind.CURRENCY).ui.alignment == "right"


# ── View mode ──


class TestViewMode:
    @pytest.mark.parametrize(
        "kind,value,text",
        [
            (FieldKind.TEXT, "Acme", "Acme"),
            (FieldKind.DATE, "2024-03-05", "Mar 5, 2024"),
            (FieldKind.TIMESTAMP, "2024-03-05T14:30:00", "Mar 5, 2024 2:30 PM"),
            (FieldKind.CURRENCY, 1234.5, "$1,234.50"),
            (FieldKind.BOOLEAN, True, "Yes"),
            (FieldKind.BOOLEAN, False, "No"),
            (FieldKind.RICH_TEXT, "<p>Hi <i>there</i></p>", "Hi there"),
            (FieldKind.COLOR, "#ff0000", "#ff0000"),
            (FieldKind.TIMEZONE, "Europe/Paris", "Europe/Paris"),
            (FieldKind.UNKNOWN, 42, "42"),
        ],
    )
    def test_default_display(self, resolver, kind, value, text):
        result = resolver.resolve(_field(kind), value, RenderMode.VIEW)
        assert result.text == text
        assert result.mode is RenderMode.VIEW
        assert result.component is None

    @pytest.mark.parametrize("value", [None, "", [], {}])
    def test_empty_is_placeholder(self, resolver, value):
        result = resolver.resolve(_field(FieldKind.DATE), value, "view")
        assert result.text == PLACEHOLDER
        assert result.is_placeholder

    def test_status_option_label_or_capitalised(self, resolver):
        f = _field(FieldKind.STATUS, options=({"value": "in_progress", "label": "In Progress"},))
        assert resolver.resolve(f, "in_progress", "view").text == "In Progress"
        assert resolver.resolve(f, "blocked", "view").text == "Blocked"

    def test_link_uses_display_label(self, resolver):
        f = _field(FieldKind.LINK, display_label="Website")
        result = resolver.resolve(f, "https://acme.test", "view")
        assert result.text == "Website"
        assert result.href == "https://acme.test"

    def test_relationship_label_and_intent(self, resolver):
        f = _field(
            FieldKind.RELATIONSHIP,
            name="company_id",
            relation=RelationConfig(table="company", link_to="companies"),
            open_mode="modal",
        )
        result = resolver.resolve(f, 3, "view", {"company_id": 3, "company_id_label": "Acme"})
        assert result.text == "Acme"
        assert result.intent.collection == "companies"
        assert result.intent.record_id == 3
        assert result.intent.open_mode == "modal"

    def test_relationship_without_label(self, resolver):
        f = _field(FieldKind.RELATIONSHIP, relation=RelationConfig(table="company"))
        assert resolver.resolve(f, 9, "view").text == "ID: 9"

    def test_multi_relationship_from_details(self, resolver):
        f = _field(
            FieldKind.MULTI_RELATIONSHIP,
            name="contacts",
            relation=RelationConfig(table="contact", label_field="title"),
        )
        record = {
            "contacts": ["1", "2"],
            "contacts_details": [{"id": 1, "title": "Ann"}, {"id": 2, "title": "Bo"}],
            "contacts_labels": ["Ann", "Bo"],
        }
        result = resolver.resolve(f, record["contacts"], "view", record)
        assert result.text == "Ann, Bo"
        assert [item.id for item in result.items] == [1, 2]
        assert result.items[0].intent.collection == "contact"

    def test_multi_relationship_junction_value_from_hydrated_keys(self, resolver):
        f = _field(FieldKind.MULTI_RELATIONSHIP, relation=RelationConfig(table="contact"))
        record = {"value_labels": ["Ann"], "value_details": [{"id": 4, "title": "Ann"}]}
        assert resolver.resolve(f, None, "view", record).text == "Ann"

    def test_multi_relationship_ids_only(self, resolver):
        f = _field(FieldKind.MULTI_RELATIONSHIP, relation=RelationConfig(table="contact"))
        assert resolver.resolve(f, "3,4", "view").text == "ID: 3, ID: 4"

    def test_repeater_labels(self, resolver):
        f = _field(FieldKind.REPEATER, label="Address")
        record = {"value_details": [{"street": "Main", "label": "Main"}, {"label": "Address 2"}]}
        result = resolver.resolve(f, [{"street": "Main"}, {}], "view", record)
        assert result.text == "Main, Address 2"

    def test_media_url(self, resolver):
        f = _field(FieldKind.MEDIA, relation=RelationConfig(table="media"))
        record = {"value_details": {"id": 1, "url": "https://cdn.test/a.png"}, "value_label": "Logo"}
        result = resolver.resolve(f, 1, "view", record)
        assert result.href == "https://cdn.test/a.png"
        assert result.text == "Logo"

    def test_format_overrides_default(self, resolver):
        f = _field(FieldKind.TEXT, format="uppercase")
        assert resolver.resolve(f, "acme", "view").text == "ACME"
        f = _field(FieldKind.CURRENCY, format="plainText")
        assert resolver.resolve(f, 12, "view").text == "12"

    def test_unregistered_format_keeps_default(self, resolver, caplog):
        f = _field(FieldKind.CURRENCY, format="nonexistent")
        assert resolver.resolve(f, 5, "view").text == "$5.00"
        assert "nonexistent" in caplog.text

    def test_format_replaces_placeholder_for_empty_value(self, resolver):
        @formatter("notSetTest")
        def not_set(value):
            return "not set" if value is None else str(value)

        f = _field(FieldKind.DATE, format="notSetTest")
        result = resolver.resolve(f, None, "view")
        assert result.text == "not set"
        assert not result.is_placeholder

    @pytest.mark.parametrize("name", ["date", "currency", "boolean", "uppercase"])
    def test_builtin_format_keeps_placeholder_for_empty_value(self, resolver, name):
        result = resolver.resolve(_field(FieldKind.TEXT, format=name), None, "view")
        assert result.text == PLACEHOLDER
        assert result.is_placeholder

    def test_relationship_intent_names_collection_of_table(self):
        people = CollectionDescriptor(
            key="people", name="person", label="People", singular_label="Person", fields=()
        )
        resolver = FieldTypeResolver(CollectionRegistry([people]))
        f = _field(FieldKind.RELATIONSHIP, relation=RelationConfig(table="person"))
        assert resolver.resolve(f, 7, "view").intent.collection == "people"

        linked = _field(FieldKind.RELATIONSHIP, relation=RelationConfig(table="person", link_to="staff"))
        assert resolver.resolve(linked, 7, "view").intent.collection == "staff"

    def test_relationship_intent_falls_back_to_table(self, resolver):
        f = _field(FieldKind.RELATIONSHIP, relation=RelationConfig(table="person"))
        assert resolver.resolve(f, 7, "view").intent.collection == "person"


# ── Edit and create mode ──


class TestEditMode:
    def test_editable_control(self, resolver):
        changes = []
        f = _field(FieldKind.STATUS, options=({"value": "a", "label": "A"},))
        result = resolver.resolve(f, "a", RenderMode.EDIT, on_change=changes.append)
        assert result.component == "Select"
        assert result.value == "a"
        assert result.options == ({"value": "a", "label": "A"},)
        assert result.editable
        result.on_change("b")
        assert changes == ["b"]

    @pytest.mark.parametrize(
        "kind,component",
        [
            (FieldKind.TEXT, "TextInput"),
            (FieldKind.BOOLEAN, "Checkbox"),
            (FieldKind.DATE, "DatePicker"),
            (FieldKind.CURRENCY, "CurrencyInput"),
            (FieldKind.RELATIONSHIP, "RelationSelect"),
            (FieldKind.MULTI_RELATIONSHIP, "MultiRelationSelect"),
            (FieldKind.RICH_TEXT, "RichTextEditor"),
            (FieldKind.UNKNOWN, "TextInput"),
        ],
    )
    def test_component_by_kind(self, resolver, kind, component):
        assert resolver.resolve(_field(kind), None, RenderMode.CREATE).component == component

    def test_multi_relationship_value_normalised(self, resolver):
        f = _field(FieldKind.MULTI_RELATIONSHIP, relation=RelationConfig(table="contact"))
        assert resolver.resolve(f, '["1","2"]', "edit").value == ["1", "2"]

    def test_format_applies_to_edit_text(self, resolver):
        f = _field(FieldKind.DATE, format="date")
        assert resolver.resolve(f, "2024-03-05", "edit").text == "Mar 5, 2024"

    def test_read_only_field(self, resolver):
        f = _field(FieldKind.TIMESTAMP, editable=False)
        assert not resolver.resolve(f, None, "edit").editable

    def test_to_dict_has_no_callable(self, resolver):
        result = resolver.resolve(_field(FieldKind.TEXT), "x", "edit", on_change=print)
        data = result.to_dict()
        assert data["component"] == "TextInput"
        assert "on_change" not in data
