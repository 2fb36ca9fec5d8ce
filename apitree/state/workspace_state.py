"""Workspace facade: the single entry point for tree, version and import calls."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import httpx

from ..config import ApiTreeConfig, ConfigLoader
from ..db import (
    HistoryQueries,
    MutationEngine,
    SubtreeQueries,
    TreeStore,
    create_schema,
    get_connection,
)
from ..models import (
    ApiDefinition,
    CloneApiRequest,
    CreateApiRequest,
    CreateGroupRequest,
    DeleteGroupRequest,
    DeleteResult,
    ExecuteImportRequest,
    GetSubtreeRequest,
    Group,
    ImportPreview,
    ImportResult,
    MoveGroupRequest,
    NodeKind,
    OperationLogEntry,
    OperationType,
    ParseOpenapiRequest,
    PublishVersionRequest,
    SortItemsRequest,
    SubtreeView,
    UpdateApiRequest,
    UpdateGroupRequest,
    Version,
    validate_request,
)
from ..openapi import DocumentFetcher, OpenApiParser, Reconciler

logger = logging.getLogger(__name__)


class WorkspaceState:
    """Owns the DuckDB connection and serializes writers per project.

    Every call runs on its own cursor. Reads take no lock; writes hold the
    project's lock for the duration of one transaction. Requests may be
    passed as pydantic models or as plain (camelCase or snake_case) dicts.
    """

    def __init__(
        self,
        root_path: str | Path | None = None,
        config: ApiTreeConfig | None = None,
        db_path: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._root_path = Path(root_path) if root_path else Path.cwd()

        # Load or use provided config
        self._config_loader = ConfigLoader(self._root_path)
        self._config = config or self._config_loader.load()
        settings = self._config.settings

        self._conn = get_connection(db_path or self._config.database.path)
        create_schema(self._conn)
        self._conn_lock = threading.Lock()
        self._project_locks: dict[str, threading.Lock] = {}
        self._project_locks_guard = threading.Lock()

        self._parser = OpenApiParser(settings.max_content_bytes)
        self._fetcher = DocumentFetcher(
            timeout_seconds=settings.fetch_timeout_seconds,
            max_content_bytes=settings.max_content_bytes,
            transport=transport,
        )

    @property
    def config(self) -> ApiTreeConfig:
        return self._config

    def close(self) -> None:
        self._conn.close()

    # ========== Units of work ==========

    def _project_lock(self, project_id: str) -> threading.Lock:
        with self._project_locks_guard:
            lock = self._project_locks.get(project_id)
            if lock is None:
                lock = self._project_locks[project_id] = threading.Lock()
            return lock

    @contextmanager
    def _reader(self) -> Iterator[TreeStore]:
        with self._conn_lock:
            cursor = self._conn.cursor()
        try:
            yield TreeStore(cursor)
        finally:
            cursor.close()

    @contextmanager
    def _writer(self, project_id: str) -> Iterator[TreeStore]:
        """Hold the project's writer lock around one transaction."""
        with self._project_lock(project_id):
            with self._reader() as store:
                with store.transaction():
                    yield store

    def _log(
        self,
        store: TreeStore,
        project_id: str,
        kind: NodeKind,
        target_id: str,
        operation: OperationType,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        HistoryQueries(store.conn).insert_operation_log(
            project_id, kind, target_id, operation, description, metadata
        )

    # ========== Reads ==========

    def get_node(self, project_id: str, node_id: str) -> Group | ApiDefinition:
        with self._reader() as store:
            return store.get_node(node_id, project_id)

    def get_group(self, project_id: str, group_id: str) -> Group:
        with self._reader() as store:
            return store.require_group(group_id, project_id)

    def get_api(self, project_id: str, api_id: str) -> ApiDefinition:
        with self._reader() as store:
            return store.require_api(api_id, project_id)

    def list_root_groups(self, project_id: str) -> list[Group]:
        with self._reader() as store:
            return store.list_root_groups(project_id)

    def list_children(
        self, project_id: str, group_id: str
    ) -> list[Group | ApiDefinition]:
        with self._reader() as store:
            store.require_group(group_id, project_id)
            return store.list_children(group_id)

    def get_subtree(self, project_id: str, request: Any = None) -> SubtreeView:
        req = validate_request(GetSubtreeRequest, request)
        with self._reader() as store:
            return SubtreeQueries(store).get_subtree(project_id, req)

    def list_versions(self, project_id: str, api_id: str) -> list[Version]:
        with self._reader() as store:
            return MutationEngine(store).list_versions(project_id, api_id)

    def list_operation_logs(
        self, project_id: str, target_id: str | None = None, limit: int = 100
    ) -> list[OperationLogEntry]:
        with self._reader() as store:
            return HistoryQueries(store.conn).list_operation_logs(
                project_id, target_id, limit
            )

    # ========== Groups ==========

    def create_group(self, project_id: str, request: Any) -> Group:
        req = validate_request(CreateGroupRequest, request)
        with self._writer(project_id) as store:
            group = store.create_group(
                project_id,
                req.name,
                parent_id=req.parent_id,
                description=req.description,
                sort_order=req.sort_order,
            )
            self._log(
                store, project_id, NodeKind.GROUP, group.id, OperationType.CREATE,
                f"created group {group.name}",
            )
        return group

    def update_group(self, project_id: str, group_id: str, request: Any) -> Group:
        req = validate_request(UpdateGroupRequest, request)
        fields = {
            key: value
            for key, value in req.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        with self._writer(project_id) as store:
            group = store.require_group(group_id, project_id)
            if "sort_order" in fields:
                fields["sort_order"] = store.ordering.place(
                    NodeKind.GROUP, project_id, group.parent_id,
                    fields["sort_order"], exclude_id=group.id,
                )
            group = store.update_group(group_id, **fields)
            self._log(
                store, project_id, NodeKind.GROUP, group_id, OperationType.UPDATE,
                f"updated group {group.name}", {"fields": sorted(fields)},
            )
        logger.info(f"Updated group {group_id}: {sorted(fields)}")
        return group

    def move_group(self, project_id: str, group_id: str, request: Any) -> Group:
        req = validate_request(MoveGroupRequest, request)
        with self._writer(project_id) as store:
            group = MutationEngine(store).move_group(
                project_id, group_id, req.new_parent_id, req.sort_order, req.reparent
            )
            self._log(
                store, project_id, NodeKind.GROUP, group_id, OperationType.MOVE,
                f"moved group {group.name}",
                {"parentId": group.parent_id, "sortOrder": group.sort_order},
            )
        return group

    def move_node(
        self, project_id: str, node_id: str, request: Any
    ) -> Group | ApiDefinition:
        """Move a group or an API; ``newParentId`` is a group id either way."""
        req = validate_request(MoveGroupRequest, request)
        with self._writer(project_id) as store:
            node = MutationEngine(store).move(
                project_id, node_id, req.new_parent_id, req.sort_order, req.reparent
            )
            parent_id = node.parent_id if isinstance(node, Group) else node.group_id
            self._log(
                store, project_id, node.kind, node_id, OperationType.MOVE,
                f"moved {node.kind.value} {node.name}",
                {"parentId": parent_id, "sortOrder": node.sort_order},
            )
        return node

    def delete_group(
        self, project_id: str, group_id: str, request: Any = None
    ) -> DeleteResult:
        req = validate_request(DeleteGroupRequest, request)
        with self._writer(project_id) as store:
            result = MutationEngine(store).delete_group(project_id, group_id, req.cascade)
            self._log(
                store, project_id, NodeKind.GROUP, group_id, OperationType.DELETE,
                f"deleted group {group_id}",
                {"cascade": req.cascade, "groups": len(result.group_ids),
                 "apis": len(result.api_ids)},
            )
        return result

    def sort_groups(self, project_id: str, request: Any) -> str | None:
        req = validate_request(SortItemsRequest, request)
        with self._writer(project_id) as store:
            parent_id = store.ordering.sort_groups(project_id, req.items)
            for item in req.items:
                self._log(
                    store, project_id, NodeKind.GROUP, item.id, OperationType.SORT,
                    "reordered group", {"sortOrder": item.sort_order},
                )
        return parent_id

    # ========== APIs ==========

    def create_api(self, project_id: str, request: Any) -> ApiDefinition:
        req = validate_request(CreateApiRequest, request)
        with self._writer(project_id) as store:
            api = store.create_api(
                project_id,
                req.group_id,
                req.name,
                req.path,
                req.method,
                status=req.status,
                description=req.description,
                tags=req.tags,
                sort_order=req.sort_order,
                request=req.request,
                responses=req.responses,
            )
            self._log(
                store, project_id, NodeKind.API, api.id, OperationType.CREATE,
                f"created API {api.method.value} {api.path}",
            )
        return api

    def update_api(self, project_id: str, api_id: str, request: Any) -> ApiDefinition:
        req = validate_request(UpdateApiRequest, request)
        fields = {
            key: value
            for key, value in req.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        with self._writer(project_id) as store:
            store.require_api(api_id, project_id)
            api = store.update_api(api_id, **fields)
            self._log(
                store, project_id, NodeKind.API, api_id, OperationType.UPDATE,
                f"updated API {api.method.value} {api.path}", {"fields": sorted(fields)},
            )
        logger.info(f"Updated API {api_id}: {sorted(fields)}")
        return api

    def move_api(self, project_id: str, api_id: str, request: Any) -> ApiDefinition:
        req = validate_request(MoveGroupRequest, request)
        with self._writer(project_id) as store:
            api = MutationEngine(store).move_api(
                project_id, api_id, req.new_parent_id, req.sort_order, req.reparent
            )
            self._log(
                store, project_id, NodeKind.API, api_id, OperationType.MOVE,
                f"moved API {api.method.value} {api.path}",
                {"groupId": api.group_id, "sortOrder": api.sort_order},
            )
        return api

    def sort_apis(self, project_id: str, request: Any) -> str:
        req = validate_request(SortItemsRequest, request)
        with self._writer(project_id) as store:
            group_id = store.ordering.sort_apis(project_id, req.items)
            for item in req.items:
                self._log(
                    store, project_id, NodeKind.API, item.id, OperationType.SORT,
                    "reordered API", {"sortOrder": item.sort_order},
                )
        return group_id

    def delete_api(self, project_id: str, api_id: str) -> DeleteResult:
        with self._writer(project_id) as store:
            result = MutationEngine(store).delete_api(project_id, api_id)
            self._log(
                store, project_id, NodeKind.API, api_id, OperationType.DELETE,
                f"deleted API {api_id}", {"versions": result.version_count},
            )
        return result

    def clone_api(self, project_id: str, api_id: str, request: Any) -> ApiDefinition:
        req = validate_request(CloneApiRequest, request)
        with self._writer(project_id) as store:
            clone = MutationEngine(
                store, self._config.settings.max_rename_attempts
            ).clone_api(
                project_id, api_id, req.target_group_id, req.name, req.path, req.method
            )
            self._log(
                store, project_id, NodeKind.API, clone.id, OperationType.CLONE,
                f"cloned API {api_id}", {"sourceId": api_id},
            )
        return clone

    def publish_version(self, project_id: str, api_id: str, request: Any) -> Version:
        req = validate_request(PublishVersionRequest, request)
        with self._writer(project_id) as store:
            version = MutationEngine(store).publish_version(
                project_id, api_id, req.version, req.summary, req.changelog
            )
            self._log(
                store, project_id, NodeKind.API, api_id, OperationType.PUBLISH,
                f"published {req.version}", {"versionId": version.id},
            )
        return version

    # ========== Import ==========

    def parse_openapi(self, project_id: str, request: Any) -> ImportPreview:
        """Preview an import; the URL (if any) is fetched without any lock."""
        req = validate_request(ParseOpenapiRequest, request)
        content = req.content if req.content else self._fetcher.fetch(req.url)
        document = self._parser.parse(content)
        with self._reader() as store:
            reconciler = Reconciler(store, self._config.settings)
            return reconciler.preview(
                project_id, document, content, strategy=req.conflict_strategy
            )

    def execute_import(self, project_id: str, request: Any) -> ImportResult:
        """Commit an import atomically; a parse failure writes nothing."""
        req = validate_request(ExecuteImportRequest, request)
        document = self._parser.parse(req.content)
        with self._writer(project_id) as store:
            return Reconciler(store, self._config.settings).execute(
                project_id,
                document,
                req.conflict_strategy,
                target_group_id=req.target_group_id,
                create_missing_groups=req.create_missing_groups,
            )
