"""Persistent forest of groups and APIs."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import duckdb

from ..errors import ConflictError, InvalidParentError, NotFoundError
from ..models.api import ApiDefinition, ApiResponse, RequestShape
from ..models.base import APIMethod, APIStatus, NodeKind, VersionStatus
from ..models.group import Group
from ..models.version import INITIAL_VERSION, ApiSnapshot
from .ordering import OrderingPolicy
from .version_queries import VersionQueries

logger = logging.getLogger(__name__)

# Upper bound for any parent walk; deeper chains mean corrupt data
MAX_TREE_DEPTH = 256

_GROUP_COLUMNS = (
    "id, project_id, parent_id, name, description, sort_order, created_at, updated_at"
)
_API_COLUMNS = (
    "id, project_id, group_id, name, path, method, status, description, tags, "
    "sort_order, current_version_id, created_at, updated_at"
)
_UPDATABLE_GROUP_FIELDS = {"name", "description", "sort_order"}
_UPDATABLE_API_FIELDS = {
    "name",
    "status",
    "description",
    "tags",
    "sort_order",
    "current_version_id",
}


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` match literally in an ``ESCAPE '\\'`` pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_group(row: tuple) -> Group:
    return Group(
        id=row[0],
        project_id=row[1],
        parent_id=row[2],
        name=row[3],
        description=row[4],
        sort_order=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


def _row_to_api(row: tuple) -> ApiDefinition:
    return ApiDefinition(
        id=row[0],
        project_id=row[1],
        group_id=row[2],
        name=row[3],
        path=row[4],
        method=APIMethod(row[5]),
        status=APIStatus(row[6]),
        description=row[7],
        tags=list(row[8] or []),
        sort_order=row[9],
        current_version_id=row[10],
        created_at=row[11],
        updated_at=row[12],
    )


class TreeStore:
    """CRUD and ordered reads over the ``api_groups``/``apis`` tables.

    One store wraps one DuckDB cursor; a unit of work (one request) should
    use its own store. Parent references are validated here rather than by
    database foreign keys.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn
        self.ordering = OrderingPolicy(self)
        self.versions = VersionQueries(conn)
        self._tx_depth = 0

    # ========== Transactions ==========

    @contextmanager
    def transaction(self) -> Iterator[TreeStore]:
        """Run the block atomically; nested blocks join the outer transaction.

        Raises:
            ConflictError: If DuckDB detects a write-write conflict or a
                unique key collision. Everything is rolled back.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self.conn.execute("BEGIN TRANSACTION")
        self._tx_depth = 1
        try:
            yield self
        except duckdb.ConstraintException as e:
            self._rollback()
            raise ConflictError(f"Constraint violated: {e}") from e
        except duckdb.TransactionException as e:
            self._rollback()
            raise ConflictError(f"Concurrent modification, retry: {e}") from e
        except BaseException:
            self._rollback()
            raise
        else:
            try:
                self.conn.execute("COMMIT")
            except duckdb.TransactionException as e:
                self._rollback()
                raise ConflictError(f"Concurrent modification, retry: {e}") from e
        finally:
            self._tx_depth = 0

    def _rollback(self) -> None:
        try:
            self.conn.execute("ROLLBACK")
        except duckdb.TransactionException as e:
            # DuckDB already discarded the transaction (failed COMMIT)
            logger.debug(f"Rollback skipped: {e}")

    # ========== Reads ==========

    def get_group(self, group_id: str) -> Group | None:
        row = self.conn.execute(
            f"SELECT {_GROUP_COLUMNS} FROM api_groups WHERE id = ?", [group_id]
        ).fetchone()
        return _row_to_group(row) if row else None

    def get_api(self, api_id: str) -> ApiDefinition | None:
        row = self.conn.execute(
            f"SELECT {_API_COLUMNS} FROM apis WHERE id = ?", [api_id]
        ).fetchone()
        return _row_to_api(row) if row else None

    def require_group(self, group_id: str, project_id: str) -> Group:
        """Fetch a group of the project or raise NotFoundError."""
        group = self.get_group(group_id)
        if group is None or group.project_id != project_id:
            raise NotFoundError(f"Group not found: {group_id}", {"id": group_id})
        return group

    def require_api(self, api_id: str, project_id: str) -> ApiDefinition:
        """Fetch an API of the project or raise NotFoundError."""
        api = self.get_api(api_id)
        if api is None or api.project_id != project_id:
            raise NotFoundError(f"API not found: {api_id}", {"id": api_id})
        return api

    def get_node(self, node_id: str, project_id: str) -> Group | ApiDefinition:
        """Resolve an id to a group or an API of the project."""
        group = self.get_group(node_id)
        if group is not None and group.project_id == project_id:
            return group
        api = self.get_api(node_id)
        if api is not None and api.project_id == project_id:
            return api
        raise NotFoundError(f"Node not found: {node_id}", {"id": node_id})

    def list_root_groups(self, project_id: str) -> list[Group]:
        result = self.conn.execute(
            f"""
            SELECT {_GROUP_COLUMNS} FROM api_groups
            WHERE project_id = ? AND parent_id IS NULL
            ORDER BY sort_order, id
            """,
            [project_id],
        ).fetchall()
        return [_row_to_group(row) for row in result]

    def list_child_groups(self, group_id: str) -> list[Group]:
        result = self.conn.execute(
            f"""
            SELECT {_GROUP_COLUMNS} FROM api_groups
            WHERE parent_id = ?
            ORDER BY sort_order, id
            """,
            [group_id],
        ).fetchall()
        return [_row_to_group(row) for row in result]

    def list_group_apis(self, group_id: str) -> list[ApiDefinition]:
        result = self.conn.execute(
            f"""
            SELECT {_API_COLUMNS} FROM apis
            WHERE group_id = ?
            ORDER BY sort_order, id
            """,
            [group_id],
        ).fetchall()
        return [_row_to_api(row) for row in result]

    def list_children(self, group_id: str) -> list[Group | ApiDefinition]:
        """Child groups then APIs of a group, each ordered by ``(sort_order, id)``."""
        children: list[Group | ApiDefinition] = []
        children.extend(self.list_child_groups(group_id))
        children.extend(self.list_group_apis(group_id))
        return children

    def has_children(self, group_id: str) -> bool:
        row = self.conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM api_groups WHERE parent_id = ?) +
                (SELECT COUNT(*) FROM apis WHERE group_id = ?)
            """,
            [group_id, group_id],
        ).fetchone()
        return row[0] > 0

    def find_child_group(
        self, project_id: str, parent_id: str | None, name: str
    ) -> Group | None:
        """Exact-name lookup among siblings; lowest ``(sort_order, id)`` wins."""
        if parent_id is None:
            where, params = "parent_id IS NULL", [project_id, name]
        else:
            where, params = "parent_id = ?", [project_id, parent_id, name]
        row = self.conn.execute(
            f"""
            SELECT {_GROUP_COLUMNS} FROM api_groups
            WHERE project_id = ? AND {where} AND name = ?
            ORDER BY sort_order, id
            LIMIT 1
            """,
            params,
        ).fetchone()
        return _row_to_group(row) if row else None

    def find_group_by_name(self, project_id: str, name: str) -> Group | None:
        """Exact-name lookup anywhere in the project; lowest ``(sort_order, id)`` wins."""
        row = self.conn.execute(
            f"""
            SELECT {_GROUP_COLUMNS} FROM api_groups
            WHERE project_id = ? AND name = ?
            ORDER BY sort_order, id
            LIMIT 1
            """,
            [project_id, name],
        ).fetchone()
        return _row_to_group(row) if row else None

    def find_api_by_route(
        self, project_id: str, path: str, method: APIMethod
    ) -> ApiDefinition | None:
        row = self.conn.execute(
            f"""
            SELECT {_API_COLUMNS} FROM apis
            WHERE project_id = ? AND path = ? AND method = ?
            """,
            [project_id, path, method.value],
        ).fetchone()
        return _row_to_api(row) if row else None

    def count_apis(self, project_id: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM apis WHERE project_id = ?", [project_id]
        ).fetchone()
        return row[0]

    def ancestors(self, group_id: str) -> list[Group]:
        """Walk ``parent_id`` upward from a group to its root.

        Returns:
            Ancestors nearest first, excluding the group itself.

        Raises:
            NotFoundError: If the group does not exist.
            ConflictError: If the chain revisits a node or exceeds
                MAX_TREE_DEPTH (corrupt forest).
        """
        group = self.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}", {"id": group_id})

        chain: list[Group] = []
        seen = {group.id}
        parent_id = group.parent_id
        while parent_id is not None:
            if len(chain) >= MAX_TREE_DEPTH or parent_id in seen:
                raise ConflictError(
                    f"Group hierarchy above {group_id} is corrupt",
                    {"id": group_id},
                )
            parent = self.get_group(parent_id)
            if parent is None:
                break
            chain.append(parent)
            seen.add(parent.id)
            parent_id = parent.parent_id
        return chain

    def check_nesting(self, parent_id: str, height: int = 0) -> None:
        """Reject hanging ``height`` extra levels below a child of ``parent_id``.

        Depths run from 0 (a project root) to ``MAX_TREE_DEPTH - 1``.

        Raises:
            InvalidParentError: If the deepest resulting group would sit at
                ``MAX_TREE_DEPTH`` or below.
        """
        deepest = len(self.ancestors(parent_id)) + 1 + height
        if deepest >= MAX_TREE_DEPTH:
            raise InvalidParentError(
                f"Group {parent_id} is too deep to hold {height + 1} more level(s); "
                f"trees are limited to {MAX_TREE_DEPTH} levels",
                {"parentId": parent_id, "maxDepth": MAX_TREE_DEPTH},
            )

    def subtree_groups(
        self,
        project_id: str,
        root_id: str | None = None,
        max_depth: int = MAX_TREE_DEPTH,
    ) -> list[tuple[Group, int]]:
        """Groups under ``root_id`` (or every project root) with their depth.

        The root(s) sit at depth 0. Ordered by depth, then ``(sort_order, id)``.

        Raises:
            ConflictError: If ``max_depth`` is the full MAX_TREE_DEPTH and
                groups exist below it (corrupt chain or cycle).
        """
        bounded = max_depth < MAX_TREE_DEPTH
        max_depth = min(max_depth, MAX_TREE_DEPTH)
        if root_id is None:
            base, params = "project_id = ? AND parent_id IS NULL", [project_id]
        else:
            base, params = "project_id = ? AND id = ?", [project_id, root_id]

        result = self.conn.execute(
            f"""
            WITH RECURSIVE group_tree AS (
                -- Base case: the root(s)
                SELECT id, 0 AS depth
                FROM api_groups
                WHERE {base}

                UNION

                -- Recursive case: children of included groups
                SELECT g.id, gt.depth + 1
                FROM api_groups g
                JOIN group_tree gt ON g.parent_id = gt.id
                WHERE gt.depth < ?
            )
            SELECT g.id, g.project_id, g.parent_id, g.name, g.description,
                   g.sort_order, g.created_at, g.updated_at,
                   MIN(gt.depth) AS min_depth
            FROM group_tree gt
            JOIN api_groups g ON g.id = gt.id
            GROUP BY ALL
            ORDER BY min_depth, g.sort_order, g.id
            """,
            params + [max_depth],
        ).fetchall()
        if not bounded and result and result[-1][8] >= MAX_TREE_DEPTH:
            raise ConflictError(
                f"Group hierarchy under {root_id or project_id} is deeper than "
                f"{MAX_TREE_DEPTH} levels",
                {"id": root_id, "projectId": project_id},
            )
        return [(_row_to_group(row[:8]), row[8]) for row in result]

    def collect_subtree_group_ids(self, group_id: str) -> list[str]:
        """The group and every descendant group id, root first."""
        group = self.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}", {"id": group_id})
        return [g.id for g, _ in self.subtree_groups(group.project_id, group.id)]

    def list_apis_in_groups(
        self,
        group_ids: list[str],
        method: APIMethod | None = None,
        status: APIStatus | None = None,
        search: str | None = None,
    ) -> list[ApiDefinition]:
        """APIs owned by any of the groups, optionally filtered."""
        if not group_ids:
            return []
        placeholders = ", ".join(["?"] * len(group_ids))
        sql = f"SELECT {_API_COLUMNS} FROM apis WHERE group_id IN ({placeholders})"
        params: list[Any] = list(group_ids)

        if method:
            sql += " AND method = ?"
            params.append(method.value)
        if status:
            sql += " AND status = ?"
            params.append(status.value)
        if search:
            sql += " AND (name ILIKE ? ESCAPE '\\' OR path ILIKE ? ESCAPE '\\')"
            params.extend([f"%{_escape_like(search)}%"] * 2)

        sql += " ORDER BY sort_order, id"
        result = self.conn.execute(sql, params).fetchall()
        return [_row_to_api(row) for row in result]

    # ========== Writes ==========

    def create_group(
        self,
        project_id: str,
        name: str,
        parent_id: str | None = None,
        description: str | None = None,
        sort_order: int | None = None,
        group_id: str | None = None,
    ) -> Group:
        """Insert a group; ``sort_order`` None appends to its sibling set.

        Raises:
            NotFoundError: Parent id does not exist.
            InvalidParentError: Parent belongs to another project, is an API,
                or already sits at the deepest allowed level.
        """
        with self.transaction():
            if parent_id is not None:
                self._check_group_parent(project_id, parent_id)
                self.check_nesting(parent_id)
            position = self.ordering.place(
                NodeKind.GROUP, project_id, parent_id, sort_order
            )
            now = _now()
            new_id = group_id or uuid.uuid4().hex
            self.conn.execute(
                f"""
                INSERT INTO api_groups ({_GROUP_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [new_id, project_id, parent_id, name, description, position, now, now],
            )
        logger.info(f"Created group {name!r} ({new_id}) in project {project_id}")
        return self.get_group(new_id)

    def update_group(self, group_id: str, **fields: Any) -> Group:
        """Update name/description/sort_order of a group."""
        unknown = set(fields) - _UPDATABLE_GROUP_FIELDS
        if unknown:
            raise ValueError(f"Cannot update group fields: {sorted(unknown)}")
        self._update("api_groups", group_id, fields)
        return self.get_group(group_id)

    def set_group_position(
        self, group_id: str, parent_id: str | None, sort_order: int
    ) -> None:
        self.conn.execute(
            """
            UPDATE api_groups SET parent_id = ?, sort_order = ?, updated_at = ?
            WHERE id = ?
            """,
            [parent_id, sort_order, _now(), group_id],
        )

    def create_api(
        self,
        project_id: str,
        group_id: str,
        name: str,
        path: str,
        method: APIMethod,
        status: APIStatus = APIStatus.DRAFT,
        description: str | None = None,
        tags: list[str] | None = None,
        sort_order: int | None = None,
        request: RequestShape | None = None,
        responses: list[ApiResponse] | None = None,
        api_id: str | None = None,
    ) -> ApiDefinition:
        """Insert an API together with its first DRAFT version.

        Raises:
            NotFoundError: Owning group does not exist.
            InvalidParentError: Owner is another project's group or an API.
            ConflictError: (path, method) is already used in the project.
        """
        with self.transaction():
            self._check_group_parent(project_id, group_id)
            if self.find_api_by_route(project_id, path, method) is not None:
                raise ConflictError(
                    f"API {method.value} {path} already exists",
                    {"path": path, "method": method.value},
                )
            position = self.ordering.place(
                NodeKind.API, project_id, group_id, sort_order
            )
            now = _now()
            new_id = api_id or uuid.uuid4().hex
            self.conn.execute(
                f"""
                INSERT INTO apis ({_API_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    new_id,
                    project_id,
                    group_id,
                    name,
                    path,
                    method.value,
                    status.value,
                    description,
                    list(tags or []),
                    position,
                    None,
                    now,
                    now,
                ],
            )
            api = self.get_api(new_id)
            snapshot = ApiSnapshot(
                name=name,
                method=method,
                path=path,
                description=description,
                tags=list(tags or []),
                request=request or RequestShape(),
                responses=list(responses or []),
            )
            version = self.versions.insert_version(
                api, INITIAL_VERSION, snapshot, status=VersionStatus.DRAFT
            )
            self._update("apis", new_id, {"current_version_id": version.id})
        logger.info(f"Created API {method.value} {path} ({new_id}) in group {group_id}")
        return self.get_api(new_id)

    def update_api(self, api_id: str, **fields: Any) -> ApiDefinition:
        """Update mutable API columns (never path, method or group)."""
        unknown = set(fields) - _UPDATABLE_API_FIELDS
        if unknown:
            raise ValueError(f"Cannot update API fields: {sorted(unknown)}")
        if "status" in fields and isinstance(fields["status"], APIStatus):
            fields["status"] = fields["status"].value
        if "tags" in fields:
            fields["tags"] = list(fields["tags"] or [])
        self._update("apis", api_id, fields)
        return self.get_api(api_id)

    def set_api_position(self, api_id: str, group_id: str, sort_order: int) -> None:
        self.conn.execute(
            "UPDATE apis SET group_id = ?, sort_order = ?, updated_at = ? WHERE id = ?",
            [group_id, sort_order, _now(), api_id],
        )

    def delete_api(self, api_id: str) -> int:
        """Hard-delete an API and its versions; returns removed version count."""
        with self.transaction():
            removed = self.versions.delete_for_apis([api_id])
            self.conn.execute("DELETE FROM apis WHERE id = ?", [api_id])
        return removed

    def delete_groups(self, group_ids: list[str]) -> tuple[list[str], int]:
        """Delete groups, the APIs they own and those APIs' versions.

        Returns:
            (deleted API ids, deleted version count)
        """
        if not group_ids:
            return [], 0
        placeholders = ", ".join(["?"] * len(group_ids))
        with self.transaction():
            api_ids = [
                row[0]
                for row in self.conn.execute(
                    f"SELECT id FROM apis WHERE group_id IN ({placeholders})",
                    group_ids,
                ).fetchall()
            ]
            versions = self.versions.delete_for_apis(api_ids)
            if api_ids:
                api_placeholders = ", ".join(["?"] * len(api_ids))
                self.conn.execute(
                    f"DELETE FROM apis WHERE id IN ({api_placeholders})", api_ids
                )
            self.conn.execute(
                f"DELETE FROM api_groups WHERE id IN ({placeholders})", group_ids
            )
        return api_ids, versions

    # ========== Helpers ==========

    def _check_group_parent(self, project_id: str, parent_id: str) -> Group:
        parent = self.get_group(parent_id)
        if parent is None:
            if self.get_api(parent_id) is not None:
                raise InvalidParentError(
                    f"{parent_id} is an API; only groups can hold children",
                    {"parentId": parent_id},
                )
            raise NotFoundError(f"Group not found: {parent_id}", {"id": parent_id})
        if parent.project_id != project_id:
            raise InvalidParentError(
                f"Group {parent_id} belongs to another project",
                {"parentId": parent_id},
            )
        return parent

    def _update(self, table: str, row_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        self.conn.execute(
            f"UPDATE {table} SET {assignments}, updated_at = ? WHERE id = ?",
            list(fields.values()) + [_now(), row_id],
        )
