"""SQL queries for the operation log."""

import json
from datetime import datetime, timezone
from typing import Any

import duckdb

from ..models.base import NodeKind, OperationType
from ..models.history import OperationLogEntry


class HistoryQueries:
    """Append-only operation log written alongside each mutation."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    def insert_operation_log(
        self,
        project_id: str,
        target_kind: NodeKind,
        target_id: str,
        operation: OperationType,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Insert an operation log entry."""
        self.conn.execute(
            """
            INSERT INTO operation_logs
                (id, project_id, target_kind, target_id, operation, description, metadata, created_at)
            VALUES (nextval('operation_logs_id_seq'), ?, ?, ?, ?, ?, ?, ?)
        """,
            [
                project_id,
                target_kind.value,
                target_id,
                operation.value,
                description,
                json.dumps(metadata or {}),
                datetime.now(timezone.utc).replace(tzinfo=None),
            ],
        )

    def list_operation_logs(
        self, project_id: str, target_id: str | None = None, limit: int = 100
    ) -> list[OperationLogEntry]:
        """Get operation logs for a project, newest first."""
        if target_id:
            result = self.conn.execute(
                """
                SELECT id, project_id, target_kind, target_id, operation,
                       description, metadata, created_at
                FROM operation_logs
                WHERE project_id = ? AND target_id = ?
                ORDER BY id DESC
                LIMIT ?
            """,
                [project_id, target_id, limit],
            ).fetchall()
        else:
            result = self.conn.execute(
                """
                SELECT id, project_id, target_kind, target_id, operation,
                       description, metadata, created_at
                FROM operation_logs
                WHERE project_id = ?
                ORDER BY id DESC
                LIMIT ?
            """,
                [project_id, limit],
            ).fetchall()
        return [
            OperationLogEntry(
                id=row[0],
                project_id=row[1],
                target_kind=NodeKind(row[2]),
                target_id=row[3],
                operation=OperationType(row[4]),
                description=row[5],
                metadata=json.loads(row[6]) if row[6] else {},
                created_at=row[7],
            )
            for row in result
        ]
