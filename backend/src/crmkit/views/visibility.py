"""Which fields appear in which view context."""

from typing import Any

from crmkit.core.conditions import evaluate_rule
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor


def is_included_in_view(field: FieldDescriptor, context: str) -> bool:
    """Static inclusion policy.

    A field is included unless it declares ``includeInViews`` and the list
    either omits ``context`` or is exactly ``["none"]``.
    """
    if field.include_in_views is None:
        return True
    if tuple(field.include_in_views) == ("none",):
        return False
    return context in field.include_in_views


def is_field_visible(field: FieldDescriptor, record: dict[str, Any] | None = None) -> bool:
    """Conditional visibility from ``showWhen``/``hideWhen``; hideWhen wins."""
    record = record or {}
    visible = True
    if field.show_when:
        visible = evaluate_rule(field.show_when, record)
    if field.hide_when and visible:
        visible = not evaluate_rule(field.hide_when, record)
    return visible


def visible_fields(
    descriptor: CollectionDescriptor,
    context: str,
    record: dict[str, Any] | None = None,
) -> list[FieldDescriptor]:
    """Fields shown in ``context`` for ``record``, in declared order."""
    return [
        f
        for f in descriptor.fields
        if is_included_in_view(f, context) and is_field_visible(f, record)
    ]


def table_columns(descriptor: CollectionDescriptor) -> list[FieldDescriptor]:
    """Table-visible fields flagged ``showInTable``, or all of them if none are flagged."""
    candidates = [f for f in descriptor.fields if is_included_in_view(f, "table")]
    flagged = [f for f in candidates if f.show_in_table]
    return flagged or candidates
