"""Quick view: a condensed card for one hydrated record."""

from typing import Any

from crmkit.fields.resolver import FieldTypeResolver, RenderMode
from crmkit.hydration.hydrator import label_of
from crmkit.metadata.loader import CollectionDescriptor, QuickViewConfig
from crmkit.persistence.source import Record
from crmkit.views.table import open_record_intent
from crmkit.views.types import QuickViewCard
from crmkit.views.visibility import is_field_visible, table_columns


def _image_url(record: Record, image_field: str | None) -> str | None:
    if not image_field:
        return None
    details = record.get(f"{image_field}_details")
    if isinstance(details, dict) and details.get("url"):
        return str(details["url"])
    value = record.get(image_field)
    if isinstance(value, str) and value.startswith(("http://", "https://", "/")):
        return value
    return None


def build_quick_view(
    descriptor: CollectionDescriptor,
    record: Record,
    resolver: FieldTypeResolver | None = None,
) -> QuickViewCard:
    resolver = resolver or FieldTypeResolver()
    config = descriptor.quick_view or QuickViewConfig(title_field=descriptor.label_field)

    subtitle: Any = None
    if config.subtitle_field:
        sub_field = descriptor.get_field(config.subtitle_field)
        raw = record.get(config.subtitle_field)
        if sub_field is not None and raw not in (None, ""):
            subtitle = resolver.resolve(sub_field, raw, RenderMode.VIEW, record).text
        elif raw not in (None, ""):
            subtitle = str(raw)

    summary_names = {config.title_field, config.subtitle_field, config.image_field}
    fields = [
        resolver.resolve(f, record.get(f.name), RenderMode.VIEW, record)
        for f in table_columns(descriptor)
        if f.name not in summary_names and is_field_visible(f, record)
    ]

    return QuickViewCard(
        collection=descriptor.key,
        record_id=record.get("id"),
        title=label_of(record, config.title_field),
        subtitle=subtitle,
        image_url=_image_url(record, config.image_field),
        fields=fields,
        intent=open_record_intent(descriptor, record.get("id")),
    )
