"""Sort order assignment within sibling sets."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..errors import NotFoundError, ValidationError
from ..models.base import NodeKind
from ..models.requests import SortItem

if TYPE_CHECKING:
    from .tree_store import TreeStore

logger = logging.getLogger(__name__)

# Sibling sets: child groups share parent_id, APIs share group_id
_SIBLING_TABLES = {
    NodeKind.GROUP: ("api_groups", "parent_id"),
    NodeKind.API: ("apis", "group_id"),
}


class OrderingPolicy:
    """Assigns and repairs ``sort_order`` values in one sibling set.

    Ties are broken by id, so callers always read siblings ordered by
    ``(sort_order, id)``.
    """

    def __init__(self, store: TreeStore):
        self.store = store

    def _scope(
        self, kind: NodeKind, project_id: str, parent_id: str | None
    ) -> tuple[str, str, list]:
        table, column = _SIBLING_TABLES[kind]
        if parent_id is None:
            return table, f"project_id = ? AND {column} IS NULL", [project_id]
        return table, f"project_id = ? AND {column} = ?", [project_id, parent_id]

    def append_position(
        self, kind: NodeKind, project_id: str, parent_id: str | None
    ) -> int:
        """Next free slot at the end of the set (0 for an empty set)."""
        table, where, params = self._scope(kind, project_id, parent_id)
        row = self.store.conn.execute(
            f"SELECT MAX(sort_order) FROM {table} WHERE {where}", params
        ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def place(
        self,
        kind: NodeKind,
        project_id: str,
        parent_id: str | None,
        sort_order: int | None = None,
        exclude_id: str | None = None,
    ) -> int:
        """Return the sort order for a node entering (or staying in) a set.

        ``None`` appends. An explicit value already held by a sibling shifts
        that sibling and every later one up by one first.

        Args:
            kind: Which sibling set (child groups or APIs of a group).
            project_id: Owning project.
            parent_id: Parent group id, None for project root groups.
            sort_order: Requested position, or None to append.
            exclude_id: The node being repositioned; never shifted.
        """
        if sort_order is None:
            return self.append_position(kind, project_id, parent_id)

        table, where, params = self._scope(kind, project_id, parent_id)
        if exclude_id is not None:
            where += " AND id <> ?"
            params = params + [exclude_id]

        taken = self.store.conn.execute(
            f"SELECT COUNT(*) FROM {table} WHERE {where} AND sort_order = ?",
            params + [sort_order],
        ).fetchone()[0]
        if taken:
            self.store.conn.execute(
                f"""
                UPDATE {table}
                SET sort_order = sort_order + 1, updated_at = ?
                WHERE {where} AND sort_order >= ?
                """,
                [_now()] + params + [sort_order],
            )
            logger.debug(
                f"Shifted {kind.value} siblings of {parent_id or project_id} "
                f"from position {sort_order}"
            )
        return sort_order

    def sort_groups(self, project_id: str, items: list[SortItem]) -> str | None:
        """Apply a batch reorder to sibling groups.

        Returns:
            The shared parent id (None for root groups).
        """
        return self._sort(NodeKind.GROUP, project_id, items)

    def sort_apis(self, project_id: str, items: list[SortItem]) -> str:
        """Apply a batch reorder to the APIs of one group.

        Returns:
            The owning group id.
        """
        return self._sort(NodeKind.API, project_id, items)

    def _sort(
        self, kind: NodeKind, project_id: str, items: list[SortItem]
    ) -> str | None:
        if not items:
            raise ValidationError.for_field("items", "at least one item is required")
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValidationError.for_field("items", "duplicate ids in batch")

        table, column = _SIBLING_TABLES[kind]
        with self.store.transaction():
            placeholders = ", ".join(["?"] * len(ids))
            rows = self.store.conn.execute(
                f"""
                SELECT id, {column} FROM {table}
                WHERE project_id = ? AND id IN ({placeholders})
                """,
                [project_id] + ids,
            ).fetchall()
            parents = {row[0]: row[1] for row in rows}

            missing = [i for i in ids if i not in parents]
            if missing:
                raise NotFoundError(
                    f"{kind.value} not found: {', '.join(missing)}",
                    {"ids": missing},
                )
            if len(set(parents.values())) > 1:
                raise ValidationError.for_field(
                    "items", "all items must share the same parent"
                )

            now = _now()
            for item in items:
                self.store.conn.execute(
                    f"UPDATE {table} SET sort_order = ?, updated_at = ? WHERE id = ?",
                    [item.sort_order, now, item.id],
                )

        parent_id = parents[ids[0]]
        logger.info(
            f"Reordered {len(items)} {kind.value}(s) under {parent_id or 'project root'}"
        )
        return parent_id

    def repair(
        self, kind: NodeKind, project_id: str, parent_id: str | None
    ) -> list[str]:
        """Renumber a sibling set to ``0..n-1`` keeping its current order."""
        table, where, params = self._scope(kind, project_id, parent_id)
        with self.store.transaction():
            rows = self.store.conn.execute(
                f"SELECT id, sort_order FROM {table} WHERE {where} ORDER BY sort_order, id",
                params,
            ).fetchall()
            now = _now()
            for index, (node_id, current) in enumerate(rows):
                if current != index:
                    self.store.conn.execute(
                        f"UPDATE {table} SET sort_order = ?, updated_at = ? WHERE id = ?",
                        [index, now, node_id],
                    )
        return [row[0] for row in rows]


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
