"""Keep junction and child rows in step with a multi-relationship value."""

import logging
from typing import Any

from crmkit.metadata.loader import RelationConfig
from crmkit.persistence.source import DataSource, all_of, condition, eq_filter, in_filter

logger = logging.getLogger(__name__)


def diff_ids(current: list[str], wanted: list[str]) -> tuple[list[str], list[str]]:
    """Return (to_add, to_remove), each in a stable order."""
    wanted = list(dict.fromkeys(wanted))
    current_set = set(current)
    wanted_set = set(wanted)
    to_add = [i for i in wanted if i not in current_set]
    to_remove = [i for i in dict.fromkeys(current) if i not in wanted_set]
    return to_add, to_remove


async def sync_junction(
    source: DataSource,
    relation: RelationConfig,
    record_id: Any,
    selected_ids: list[str],
) -> tuple[list[str], list[str]]:
    """Insert missing (record, target) pairs and delete removed ones.

    Only the difference is written, so unchanged pairs keep their rows.
    """
    junction = relation.junction_table
    source_key = relation.source_key
    target_key = relation.target_key
    if not (junction and source_key and target_key):
        raise ValueError("junction relation needs junctionTable, sourceKey and targetKey")

    rows = await source.select(junction, eq_filter(source_key, record_id))
    current = [str(r[target_key]) for r in rows if r.get(target_key) is not None]
    to_add, to_remove = diff_ids(current, selected_ids)

    if to_remove:
        await source.delete(
            junction,
            all_of(
                condition(source_key, "eq", record_id),
                condition(target_key, "in", to_remove),
            ),
        )
    if to_add:
        await source.insert(
            junction, [{source_key: record_id, target_key: target} for target in to_add]
        )

    if to_add or to_remove:
        logger.debug(
            "%s for %s: +%d -%d", junction, record_id, len(to_add), len(to_remove)
        )
    return to_add, to_remove


async def sync_children(
    source: DataSource,
    child_table: str,
    relation: RelationConfig,
    record_id: Any,
    selected_ids: list[str],
) -> tuple[list[str], list[str]]:
    """Point the selected child rows at ``record_id`` and release the rest."""
    source_key = relation.source_key
    if not source_key:
        raise ValueError("child relation needs sourceKey")

    rows = await source.select(child_table, eq_filter(source_key, record_id))
    current = [str(r["id"]) for r in rows]
    to_add, to_remove = diff_ids(current, selected_ids)

    if to_remove:
        await source.update(child_table, in_filter("id", to_remove), {source_key: None})
    if to_add:
        await source.update(child_table, in_filter("id", to_add), {source_key: record_id})
    return to_add, to_remove
