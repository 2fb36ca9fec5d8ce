"""SQL queries for API versions."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

import duckdb

from ..models.api import ApiDefinition
from ..models.base import VersionStatus
from ..models.version import ApiSnapshot, Version

_VERSION_COLUMNS = (
    "id, api_id, project_id, version, revision, status, summary, changelog, "
    "snapshot, shape_hash, created_at, published_at"
)


def _row_to_version(row: tuple) -> Version:
    snapshot = row[8]
    if isinstance(snapshot, str):
        snapshot = json.loads(snapshot)
    return Version(
        id=row[0],
        api_id=row[1],
        project_id=row[2],
        version=row[3],
        revision=row[4],
        status=VersionStatus(row[5]),
        summary=row[6],
        changelog=row[7],
        snapshot=ApiSnapshot.model_validate(snapshot),
        shape_hash=row[9],
        created_at=row[10],
        published_at=row[11],
    )


class VersionQueries:
    """SQL queries for the append-only ``api_versions`` table."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    def insert_version(
        self,
        api: ApiDefinition,
        version: str,
        snapshot: ApiSnapshot,
        status: VersionStatus = VersionStatus.DRAFT,
        summary: str | None = None,
        changelog: str | None = None,
        published: bool = False,
    ) -> Version:
        """Append a version row with the next revision number."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        version_id = uuid.uuid4().hex
        revision = self.next_revision(api.id)
        self.conn.execute(
            f"""
            INSERT INTO api_versions ({_VERSION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                version_id,
                api.id,
                api.project_id,
                version,
                revision,
                status.value,
                summary,
                changelog,
                snapshot.model_dump_json(by_alias=True),
                snapshot.shape_hash(),
                now,
                now if published else None,
            ],
        )
        return self.get_version(version_id)

    def get_version(self, version_id: str) -> Version | None:
        row = self.conn.execute(
            f"SELECT {_VERSION_COLUMNS} FROM api_versions WHERE id = ?",
            [version_id],
        ).fetchone()
        return _row_to_version(row) if row else None

    def get_versions(self, version_ids: list[str]) -> dict[str, Version]:
        """Fetch several versions keyed by id."""
        if not version_ids:
            return {}
        placeholders = ", ".join(["?"] * len(version_ids))
        rows = self.conn.execute(
            f"SELECT {_VERSION_COLUMNS} FROM api_versions WHERE id IN ({placeholders})",
            version_ids,
        ).fetchall()
        return {row[0]: _row_to_version(row) for row in rows}

    def list_versions(self, api_id: str) -> list[Version]:
        """All versions of an API, newest first."""
        rows = self.conn.execute(
            f"""
            SELECT {_VERSION_COLUMNS} FROM api_versions
            WHERE api_id = ?
            ORDER BY revision DESC
            """,
            [api_id],
        ).fetchall()
        return [_row_to_version(row) for row in rows]

    def version_tags(self, api_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT version FROM api_versions WHERE api_id = ?", [api_id]
        ).fetchall()
        return [row[0] for row in rows]

    def next_revision(self, api_id: str) -> int:
        row = self.conn.execute(
            "SELECT COALESCE(MAX(revision), 0) FROM api_versions WHERE api_id = ?",
            [api_id],
        ).fetchone()
        return row[0] + 1

    def archive_current(self, api_id: str) -> int:
        """Flip every CURRENT version of an API to ARCHIVED."""
        rows = self.conn.execute(
            """
            UPDATE api_versions SET status = ?
            WHERE api_id = ? AND status = ?
            RETURNING id
            """,
            [VersionStatus.ARCHIVED.value, api_id, VersionStatus.CURRENT.value],
        ).fetchall()
        return len(rows)

    def set_status(self, version_id: str, status: VersionStatus) -> None:
        self.conn.execute(
            "UPDATE api_versions SET status = ? WHERE id = ?",
            [status.value, version_id],
        )

    def current_snapshot(self, api: ApiDefinition) -> ApiSnapshot:
        """The API's present definition: current version shape plus live fields.

        Name, method, path, description and tags come from the API row since
        they can be edited without taking a new version.
        """
        current = (
            self.get_version(api.current_version_id)
            if api.current_version_id
            else None
        )
        base = current.snapshot if current else ApiSnapshot(
            name=api.name, method=api.method, path=api.path
        )
        return base.model_copy(
            update={
                "name": api.name,
                "method": api.method,
                "path": api.path,
                "description": api.description,
                "tags": list(api.tags),
            }
        )

    def delete_for_apis(self, api_ids: list[str]) -> int:
        """Remove every version owned by the given APIs."""
        if not api_ids:
            return 0
        placeholders = ", ".join(["?"] * len(api_ids))
        rows = self.conn.execute(
            f"DELETE FROM api_versions WHERE api_id IN ({placeholders}) RETURNING id",
            api_ids,
        ).fetchall()
        return len(rows)
