"""Field rendering - kind dispatch and named formatters."""

from crmkit.fields.formatters import FormatterRegistry, formatter
from crmkit.fields.resolver import FieldTypeResolver, RenderInstruction, RenderItem, RenderMode

__all__ = [
    "FieldTypeResolver",
    "FormatterRegistry",
    "RenderInstruction",
    "RenderItem",
    "RenderMode",
    "formatter",
]
