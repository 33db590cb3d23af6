"""Calendar view: records mapped to events by the ``views.calendar`` config."""

import logging
from datetime import UTC, date, datetime

from crmkit.core.types import FieldKind
from crmkit.errors import ConfigurationError
from crmkit.fields.formatters import parse_datetime
from crmkit.hydration.hydrator import label_of
from crmkit.metadata.loader import CollectionDescriptor
from crmkit.persistence.source import Record
from crmkit.views.table import open_record_intent
from crmkit.views.types import CalendarEvent

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def _as_bound(value: date | datetime | str | None) -> datetime | None:
    if value is None:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid calendar range bound: {value!r}")
    return _naive_utc(parsed)


def build_calendar(
    descriptor: CollectionDescriptor,
    records: list[Record],
    start: date | datetime | str | None = None,
    end: date | datetime | str | None = None,
) -> list[CalendarEvent]:
    """Events for ``records``, optionally limited to those overlapping [start, end].

    Records whose start value is missing or unparseable are skipped. An
    event without an end is treated as a point in time at its start.
    """
    config = descriptor.views.get("calendar")
    if not config or not config.get("startField"):
        raise ConfigurationError(f"Collection '{descriptor.key}' has no calendar view configured")

    start_field = descriptor.get_field(config["startField"])
    end_name = config.get("endField")
    title_field = config.get("titleField") or descriptor.label_field
    all_day = start_field is not None and start_field.kind is FieldKind.DATE
    open_mode = start_field.open_mode if start_field else "page"

    range_start = _as_bound(start)
    range_end = _as_bound(end)

    events = []
    for record in records:
        event_start = parse_datetime(record.get(config["startField"]))
        if event_start is None:
            logger.debug("Skipping %s/%s: no start value", descriptor.key, record.get("id"))
            continue
        event_end = parse_datetime(record.get(end_name)) if end_name else None

        last = _naive_utc(event_end or event_start)
        if range_start is not None and last < range_start:
            continue
        if range_end is not None and _naive_utc(event_start) > range_end:
            continue

        events.append(
            CalendarEvent(
                id=record.get("id"),
                title=label_of(record, title_field),
                start=_iso(event_start, all_day),
                end=_iso(event_end, all_day) if event_end else None,
                all_day=all_day,
                intent=open_record_intent(descriptor, record.get("id"), open_mode),
            )
        )
    events.sort(key=lambda e: e.start)
    return events


def _iso(value: datetime, all_day: bool) -> str:
    return value.date().isoformat() if all_day else value.isoformat()

