"""Named value formatters.

Fields may declare ``format: <name>`` to override the default display of
their kind. A declared formatter is called for empty values as well, so it
can replace the placeholder. Formatters are registered by name the same
way hooks are.

Usage:
    from crmkit.fields.formatters import formatter

    @formatter("percent")
    def format_percent(value) -> str:
        return f"{float(value):.0%}"
"""

import html
import re
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

FormatterFn = Callable[[Any], str]

PLACEHOLDER = "—"

_TAG_RE = re.compile(r"<[^>]+>")


class FormatterRegistry:
    """Registry for display formatters referenced from field metadata."""

    _formatters: dict[str, FormatterFn] = {}

    @classmethod
    def register(cls, name: str, fn: FormatterFn) -> None:
        """Register a formatter by name. Re-registering a name is a no-op."""
        if name in cls._formatters:
            return
        cls._formatters[name] = fn

    @classmethod
    def get(cls, name: str) -> FormatterFn:
        """Get a formatter by name.

        Raises:
            ValueError: If the formatter is not registered
        """
        if name not in cls._formatters:
            raise ValueError(f"Formatter '{name}' is not registered.")
        return cls._formatters[name]

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._formatters

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._formatters.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._formatters.clear()


def formatter(name: str) -> Callable[[FormatterFn], FormatterFn]:
    """Decorator to register a formatter function."""

    def decorator(fn: FormatterFn) -> FormatterFn:
        FormatterRegistry.register(name, fn)
        return fn

    return decorator


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_datetime(value: Any) -> datetime | None:
    """Parse a date, datetime or ISO-8601 string. Returns None if unparseable."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def to_bool(value: Any) -> bool:
    """Coerce checkbox and form values to a boolean."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# Built-in formatters
# ---------------------------------------------------------------------------


def format_date(value: Any) -> str:
    """``2024-03-05`` -> ``Mar 5, 2024``."""
    parsed = parse_datetime(value)
    if parsed is None:
        return str(value)
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_timestamp(value: Any) -> str:
    """``2024-03-05T14:30:00`` -> ``Mar 5, 2024 2:30 PM``."""
    parsed = parse_datetime(value)
    if parsed is None:
        return str(value)
    hour = parsed.hour % 12 or 12
    meridiem = "AM" if parsed.hour < 12 else "PM"
    return f"{format_date(parsed)} {hour}:{parsed.minute:02d} {meridiem}"


def format_currency(value: Any) -> str:
    """``1234.5`` -> ``$1,234.50``."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return str(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_boolean(value: Any) -> str:
    return "Yes" if to_bool(value) else "No"


def strip_tags(value: Any) -> str:
    return " ".join(html.unescape(_TAG_RE.sub(" ", str(value))).split())


def _blank_as_placeholder(fn: FormatterFn) -> FormatterFn:
    """Formatters see empty values too; the built-ins leave them as the placeholder."""

    def wrapper(value: Any) -> str:
        if value is None or value in ("", [], {}):
            return PLACEHOLDER
        return fn(value)

    return wrapper


def register_builtin_formatters() -> None:
    """Register the formatters available to every field by name."""
    builtins: dict[str, FormatterFn] = {
        "date": format_date,
        "timestamp": format_timestamp,
        "currency": format_currency,
        "boolean": format_boolean,
        "plainText": strip_tags,
        "uppercase": lambda v: str(v).upper(),
        "capitalize": lambda v: str(v).capitalize(),
    }
    for name, fn in builtins.items():
        FormatterRegistry.register(name, _blank_as_placeholder(fn))


register_builtin_formatters()
