"""DuckDB schema definitions."""

import duckdb


def get_connection(path: str = ":memory:") -> duckdb.DuckDBPyConnection:
    """Get a DuckDB connection."""
    return duckdb.connect(path)


def create_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create DuckDB tables for the group forest, APIs and their history.

    Parent/owner references are plain columns; integrity is checked by the
    store so that cascade behaviour stays explicit.
    """

    # Groups form a forest per project (parent_id NULL = root)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS api_groups (
            id VARCHAR PRIMARY KEY,
            project_id VARCHAR NOT NULL,
            parent_id VARCHAR,
            name VARCHAR NOT NULL,
            description VARCHAR,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)

    # (project_id, path, method) identifies an operation project-wide
    conn.execute("""
        CREATE TABLE IF NOT EXISTS apis (
            id VARCHAR PRIMARY KEY,
            project_id VARCHAR NOT NULL,
            group_id VARCHAR NOT NULL,
            name VARCHAR NOT NULL,
            path VARCHAR NOT NULL,
            method VARCHAR NOT NULL,
            status VARCHAR NOT NULL DEFAULT 'DRAFT',
            description VARCHAR,
            tags VARCHAR[],
            sort_order INTEGER NOT NULL DEFAULT 0,
            current_version_id VARCHAR,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            UNIQUE(project_id, path, method)
        )
    """)

    # Versions are append-only; only status flips after insert
    conn.execute("""
        CREATE TABLE IF NOT EXISTS api_versions (
            id VARCHAR PRIMARY KEY,
            api_id VARCHAR NOT NULL,
            project_id VARCHAR NOT NULL,
            version VARCHAR NOT NULL,
            revision INTEGER NOT NULL,
            status VARCHAR NOT NULL,
            summary VARCHAR,
            changelog VARCHAR,
            snapshot JSON NOT NULL,
            shape_hash VARCHAR NOT NULL,
            created_at TIMESTAMP NOT NULL,
            published_at TIMESTAMP,
            UNIQUE(api_id, version)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS operation_logs (
            id INTEGER PRIMARY KEY,
            project_id VARCHAR NOT NULL,
            target_kind VARCHAR NOT NULL,
            target_id VARCHAR NOT NULL,
            operation VARCHAR NOT NULL,
            description VARCHAR,
            metadata JSON,
            created_at TIMESTAMP NOT NULL
        )
    """)

    conn.execute("""
        CREATE SEQUENCE IF NOT EXISTS operation_logs_id_seq START 1
    """)

    # Indexes only on columns that are never updated in place
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_groups_project ON api_groups(project_id)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_apis_project ON apis(project_id)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_versions_api ON api_versions(api_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_operation_logs_project ON operation_logs(project_id)"
    )


def drop_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Drop all tables."""
    conn.execute("DROP TABLE IF EXISTS operation_logs")
    conn.execute("DROP TABLE IF EXISTS api_versions")
    conn.execute("DROP TABLE IF EXISTS apis")
    conn.execute("DROP TABLE IF EXISTS api_groups")
    conn.execute("DROP SEQUENCE IF EXISTS operation_logs_id_seq")
