"""Normalise the shapes a multi-relationship value can be stored in."""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def normalize_multi_relationship_value(value: Any, parent_id: Any = None) -> list[str]:
    """Return the related ids held in ``value`` as a list of strings.

    Accepted shapes:
        - a list of ids (or of dicts carrying an ``id``)
        - ``{"ids": [...]}``
        - a selection map ``{"3": True, "4": False}`` (truthy keys are kept)
        - a JSON array string ``'["1", "2"]'``
        - a comma-separated string ``"1, 2"``
        - a single scalar id

    ``parent_id``, when given, is dropped from the result so a record
    never lists itself.
    """
    ids = _to_id_list(value)
    if parent_id is not None:
        parent = str(parent_id)
        ids = [i for i in ids if i != parent]
    return ids


def _to_id_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []

    if isinstance(value, (list, tuple, set)):
        return [_item_id(v) for v in value if v is not None and v != ""]

    if isinstance(value, dict):
        if "ids" in value:
            return _to_id_list(value["ids"])
        return [str(k) for k, selected in value.items() if selected]

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Could not parse multi-relationship value %r", value)
                return []
            return _to_id_list(parsed)
        if "," in text:
            return [part.strip() for part in text.split(",") if part.strip()]
        return [text] if text else []

    return [str(value)]


def _item_id(item: Any) -> str:
    if isinstance(item, dict) and "id" in item:
        return str(item["id"])
    return str(item)
