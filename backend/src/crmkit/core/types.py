"""Field kind registry with storage and UI defaults."""

from dataclasses import dataclass
from enum import Enum


class FieldKind(str, Enum):
    """Closed set of field types a collection may declare.

    ``UNKNOWN`` is the explicit fallback for unrecognised type strings.
    """

    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"
    CURRENCY = "currency"
    STATUS = "status"
    RELATIONSHIP = "relationship"
    MULTI_RELATIONSHIP = "multiRelationship"
    REPEATER = "repeater"
    MEDIA = "media"
    RICH_TEXT = "richText"
    COLOR = "color"
    LINK = "link"
    TIMESTAMP = "timestamp"
    TIMEZONE = "timezone"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, type_name: str | None) -> "FieldKind":
        """Map a declared type string to a kind, ``None`` meaning text."""
        if type_name is None:
            return cls.TEXT
        try:
            return cls(type_name)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class UIDefaults:
    display_component: str
    edit_component: str
    alignment: str = "left"


@dataclass
class FieldType:
    kind: FieldKind
    storage_type: str  # "TEXT" | "INTEGER" | "REAL" | "JSON" | "VIRTUAL"
    ui: UIDefaults


# Built-in field types
FIELD_TYPES: dict[FieldKind, FieldType] = {
    FieldKind.TEXT: FieldType(
        kind=FieldKind.TEXT,
        storage_type="TEXT",
        ui=UIDefaults(display_component="Text", edit_component="TextInput"),
    ),
    FieldKind.BOOLEAN: FieldType(
        kind=FieldKind.BOOLEAN,
        storage_type="BOOLEAN",
        ui=UIDefaults(display_component="Badge", edit_component="Checkbox"),
    ),
    FieldKind.DATE: FieldType(
        kind=FieldKind.DATE,
        storage_type="TEXT",  # ISO format
        ui=UIDefaults(display_component="Text", edit_component="DatePicker"),
    ),
    FieldKind.CURRENCY: FieldType(
        kind=FieldKind.CURRENCY,
        storage_type="REAL",
        ui=UIDefaults(
            display_component="Text",
            edit_component="CurrencyInput",
            alignment="right",
        ),
    ),
    FieldKind.STATUS: FieldType(
        kind=FieldKind.STATUS,
        storage_type="TEXT",
        ui=UIDefaults(display_component="Badge", edit_component="Select"),
    ),
    FieldKind.RELATIONSHIP: FieldType(
        kind=FieldKind.RELATIONSHIP,
        storage_type="INTEGER",  # Foreign key to the related table
        ui=UIDefaults(display_component="RelationLink", edit_component="RelationSelect"),
    ),
    FieldKind.MULTI_RELATIONSHIP: FieldType(
        kind=FieldKind.MULTI_RELATIONSHIP,
        storage_type="JSON",  # Only stored when no junction table is configured
        ui=UIDefaults(display_component="Tags", edit_component="MultiRelationSelect"),
    ),
    FieldKind.REPEATER: FieldType(
        kind=FieldKind.REPEATER,
        storage_type="JSON",
        ui=UIDefaults(display_component="RepeaterList", edit_component="RepeaterEditor"),
    ),
    FieldKind.MEDIA: FieldType(
        kind=FieldKind.MEDIA,
        storage_type="INTEGER",  # Foreign key to the media table
        ui=UIDefaults(display_component="Image", edit_component="MediaPicker"),
    ),
    FieldKind.RICH_TEXT: FieldType(
        kind=FieldKind.RICH_TEXT,
        storage_type="TEXT",  # HTML
        ui=UIDefaults(display_component="Html", edit_component="RichTextEditor"),
    ),
    FieldKind.COLOR: FieldType(
        kind=FieldKind.COLOR,
        storage_type="TEXT",
        ui=UIDefaults(display_component="ColorSwatch", edit_component="ColorPicker"),
    ),
    FieldKind.LINK: FieldType(
        kind=FieldKind.LINK,
        storage_type="TEXT",
        ui=UIDefaults(display_component="UrlLink", edit_component="TextInput"),
    ),
    FieldKind.TIMESTAMP: FieldType(
        kind=FieldKind.TIMESTAMP,
        storage_type="TEXT",  # ISO format
        ui=UIDefaults(display_component="Text", edit_component="DateTimePicker"),
    ),
    FieldKind.TIMEZONE: FieldType(
        kind=FieldKind.TIMEZONE,
        storage_type="TEXT",  # IANA zone name
        ui=UIDefaults(display_component="Text", edit_component="TimezoneSelect"),
    ),
    FieldKind.UNKNOWN: FieldType(
        kind=FieldKind.UNKNOWN,
        storage_type="TEXT",
        ui=UIDefaults(display_component="Text", edit_component="TextInput"),
    ),
}


def get_field_type(kind: FieldKind) -> FieldType:
    """Get field type definition, defaulting to the unknown fallback."""
    return FIELD_TYPES.get(kind, FIELD_TYPES[FieldKind.UNKNOWN])


def get_storage_type(kind: FieldKind) -> str:
    """Get the storage type for a field kind."""
    return get_field_type(kind).storage_type
