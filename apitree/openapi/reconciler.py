"""Match parsed operations against the tree and apply a conflict strategy."""

from __future__ import annotations

import logging

from ..config.models import ApiTreeSettings
from ..db.history_queries import HistoryQueries
from ..db.tree_store import TreeStore
from ..errors import ConflictError, InvalidParentError, LimitExceededError, NotFoundError
from ..models.api import ApiDefinition
from ..models.base import ConflictStrategy, ImportOutcome, NodeKind, OperationType
from ..models.group import Group
from ..models.imports import (
    ImportedApiResult,
    ImportPreview,
    ImportResult,
    ImportStats,
    ParsedDocument,
    ParsedOperation,
    PreviewGroup,
    PreviewOperation,
)
from ..models.version import ApiSnapshot, next_patch_version

logger = logging.getLogger(__name__)


class Reconciler:
    """Plans (preview) and commits (execute) an OpenAPI import.

    Group resolution: with ``target_group_id`` every operation lands in that
    group and tags are ignored. Otherwise the first tag, split on ``/``,
    names a path of groups whose head is matched by name anywhere in the
    project; missing levels are created (a missing head as a new root).
    Untagged operations land in the default group, created on demand.
    """

    def __init__(
        self,
        store: TreeStore,
        settings: ApiTreeSettings | None = None,
        history: HistoryQueries | None = None,
    ):
        self.store = store
        self.settings = settings or ApiTreeSettings()
        self.history = history or HistoryQueries(store.conn)

    # ========== Preview ==========

    def preview(
        self,
        project_id: str,
        document: ParsedDocument,
        content: str,
        strategy: ConflictStrategy | None = None,
        target_group_id: str | None = None,
    ) -> ImportPreview:
        """Describe what an import would do; nothing is written."""
        target = self._target_group(project_id, target_group_id)

        groups: dict[tuple[str, ...], PreviewGroup] = {}
        operations: list[PreviewOperation] = []
        stats = ImportStats(total=len(document.operations))

        for op in document.operations:
            key, preview_group = self._preview_group(project_id, op, target)
            preview_group = groups.setdefault(key, preview_group)
            preview_group.api_count += 1

            existing = self.store.find_api_by_route(project_id, op.path, op.method)
            if existing is None:
                action = "create"
                stats.new += 1
            else:
                action = strategy.value if strategy else "conflict"
                stats.conflicts += 1
            operations.append(
                PreviewOperation(
                    operation=op,
                    matched_existing_api_id=existing.id if existing else None,
                    proposed_action=action,
                )
            )

        return ImportPreview(
            info=document.info,
            servers=document.servers,
            groups=list(groups.values()),
            operations=operations,
            stats=stats,
            conflict_strategy=strategy,
            content=content,
        )

    def _preview_group(
        self, project_id: str, op: ParsedOperation, target: Group | None
    ) -> tuple[tuple[str, ...], PreviewGroup]:
        if target is not None:
            return (), PreviewGroup(name=target.name, path=[], exists=True)
        segments = op.group_path
        if not segments:
            name = self.settings.default_group_name
            exists = self.store.find_group_by_name(project_id, name) is not None
            return (name,), PreviewGroup(name=name, path=[name], exists=exists)

        exists = self._walk_group_path(project_id, segments)[1] == len(segments)
        return tuple(segments), PreviewGroup(
            name=segments[-1], path=list(segments), exists=exists
        )

    def _walk_group_path(
        self, project_id: str, segments: list[str] | tuple[str, ...]
    ) -> tuple[Group | None, int]:
        """Deepest existing group along a tag path and how many segments matched.

        The first segment may name a group anywhere in the project; each
        further segment must be a direct child of the previous one.
        """
        found: Group | None = None
        for index, segment in enumerate(segments):
            if found is None:
                child = self.store.find_group_by_name(project_id, segment)
            else:
                child = self.store.find_child_group(project_id, found.id, segment)
            if child is None:
                return found, index
            found = child
        return found, len(segments)

    # ========== Execute ==========

    def execute(
        self,
        project_id: str,
        document: ParsedDocument,
        strategy: ConflictStrategy,
        target_group_id: str | None = None,
        create_missing_groups: bool | None = None,
    ) -> ImportResult:
        """Apply the import atomically.

        Raises:
            NotFoundError: ``target_group_id`` does not exist in the project.
            InvalidParentError: ``target_group_id`` is an API.
            LimitExceededError: The project API quota would be exceeded.
            ConflictError: Rename ran out of candidate paths, or a concurrent
                write collided. Nothing is committed in either case.
        """
        if create_missing_groups is None:
            create_missing_groups = self.settings.default_create_missing_groups

        result = ImportResult()
        with self.store.transaction():
            target = self._target_group(project_id, target_group_id)
            self._check_quota(project_id, document, strategy)
            group_cache: dict[tuple[str, ...], str] = {}

            for op in document.operations:
                existing = self.store.find_api_by_route(project_id, op.path, op.method)
                if existing is None:
                    group_id = self._resolve_group(
                        project_id, op, target, create_missing_groups, group_cache, result
                    )
                    api = self._create(project_id, group_id, op, op.path)
                    outcome = ImportOutcome.CREATED
                elif strategy == ConflictStrategy.SKIP:
                    api = existing
                    outcome = ImportOutcome.SKIPPED
                elif strategy == ConflictStrategy.OVERWRITE:
                    api = self._overwrite(existing, op)
                    outcome = ImportOutcome.OVERWRITTEN
                else:
                    path = self._free_import_path(project_id, op)
                    group_id = self._resolve_group(
                        project_id, op, target, create_missing_groups, group_cache, result
                    )
                    api = self._create(project_id, group_id, op, path)
                    outcome = ImportOutcome.RENAMED

                result.record(
                    ImportedApiResult(
                        name=op.name,
                        path=api.path,
                        method=op.method,
                        outcome=outcome,
                        api_id=api.id,
                        group_id=api.group_id,
                    )
                )
                if outcome != ImportOutcome.SKIPPED:
                    self.history.insert_operation_log(
                        project_id,
                        NodeKind.API,
                        api.id,
                        OperationType.IMPORT,
                        f"{outcome.value} {op.method.value} {api.path}",
                        {"outcome": outcome.value, "strategy": strategy.value},
                    )

        logger.info(
            f"Imported into {project_id}: {result.created_count} created, "
            f"{result.overwritten_count} overwritten, {result.renamed_count} renamed, "
            f"{result.skipped_count} skipped, {len(result.created_group_ids)} group(s) created"
        )
        return result

    def _target_group(self, project_id: str, target_group_id: str | None) -> Group | None:
        if target_group_id is None:
            return None
        group = self.store.get_group(target_group_id)
        if group is None or group.project_id != project_id:
            api = self.store.get_api(target_group_id)
            if api is not None and api.project_id == project_id:
                raise InvalidParentError(
                    f"{target_group_id} is an API; imports need a target group",
                    {"targetGroupId": target_group_id},
                )
            raise NotFoundError(
                f"Group not found: {target_group_id}", {"id": target_group_id}
            )
        return group

    def _check_quota(
        self, project_id: str, document: ParsedDocument, strategy: ConflictStrategy
    ) -> None:
        limit = self.settings.max_apis_per_project
        if limit is None:
            return
        net_new = 0
        for op in document.operations:
            exists = self.store.find_api_by_route(project_id, op.path, op.method)
            if exists is None or strategy == ConflictStrategy.RENAME:
                net_new += 1
        current = self.store.count_apis(project_id)
        if current + net_new > limit:
            raise LimitExceededError(
                f"Import would bring project {project_id} to {current + net_new} APIs; "
                f"the limit is {limit}",
                {"current": current, "incoming": net_new, "limit": limit},
            )

    def _resolve_group(
        self,
        project_id: str,
        op: ParsedOperation,
        target: Group | None,
        create_missing: bool,
        cache: dict[tuple[str, ...], str],
        result: ImportResult,
    ) -> str:
        """Find (or create) the group an operation belongs to."""
        if target is not None:
            return target.id
        segments = tuple(op.group_path)
        if not segments:
            return self._default_group(project_id, cache, result)
        if segments in cache:
            return cache[segments]

        deepest, matched = self._walk_group_path(project_id, segments)
        if matched < len(segments) and not create_missing:
            if deepest is not None:
                return deepest.id
            return self._default_group(project_id, cache, result)

        parent_id = deepest.id if deepest else None
        for index in range(matched, len(segments)):
            child = self.store.create_group(project_id, segments[index], parent_id)
            result.created_group_ids.append(child.id)
            self.history.insert_operation_log(
                project_id,
                NodeKind.GROUP,
                child.id,
                OperationType.IMPORT,
                f"created group {'/'.join(segments[: index + 1])}",
            )
            parent_id = child.id
        cache[segments] = parent_id
        return parent_id

    def _default_group(
        self, project_id: str, cache: dict[tuple[str, ...], str], result: ImportResult
    ) -> str:
        name = self.settings.default_group_name
        key = ("", name)
        if key in cache:
            return cache[key]
        group = self.store.find_group_by_name(project_id, name)
        if group is None:
            group = self.store.create_group(project_id, name)
            result.created_group_ids.append(group.id)
            self.history.insert_operation_log(
                project_id,
                NodeKind.GROUP,
                group.id,
                OperationType.IMPORT,
                f"created default group {name}",
            )
        cache[key] = group.id
        return group.id

    def _create(
        self, project_id: str, group_id: str, op: ParsedOperation, path: str
    ) -> ApiDefinition:
        return self.store.create_api(
            project_id,
            group_id,
            op.name,
            path,
            op.method,
            description=op.description,
            tags=op.tags,
            request=op.request,
            responses=op.responses,
        )

    def _overwrite(self, existing: ApiDefinition, op: ParsedOperation) -> ApiDefinition:
        """Bring an API in line with the operation; repeated calls are no-ops.

        The API keeps its id, group and sort order. A new DRAFT version is
        appended only when the request/response shape changed.
        """
        changes = {}
        if existing.name != op.name:
            changes["name"] = op.name
        if existing.description != op.description:
            changes["description"] = op.description
        if existing.tags != op.tags:
            changes["tags"] = op.tags
        if changes:
            existing = self.store.update_api(existing.id, **changes)

        snapshot = ApiSnapshot(
            name=op.name,
            method=op.method,
            path=existing.path,
            description=op.description,
            tags=op.tags,
            request=op.request,
            responses=op.responses,
        )
        current = (
            self.store.versions.get_version(existing.current_version_id)
            if existing.current_version_id
            else None
        )
        if current is None or current.shape_hash != snapshot.shape_hash():
            tag = next_patch_version(self.store.versions.version_tags(existing.id))
            version = self.store.versions.insert_version(existing, tag, snapshot)
            existing = self.store.update_api(existing.id, current_version_id=version.id)
            logger.debug(f"Appended {tag} to API {existing.id} after shape change")
        return existing

    def _free_import_path(self, project_id: str, op: ParsedOperation) -> str:
        """``<path>_imported``, ``<path>_imported_2``, ... not yet routed."""
        for attempt in range(1, self.settings.max_rename_attempts + 1):
            suffix = "_imported" if attempt == 1 else f"_imported_{attempt}"
            candidate = f"{op.path}{suffix}"
            if self.store.find_api_by_route(project_id, candidate, op.method) is None:
                return candidate
        raise ConflictError(
            f"No free path for {op.method.value} {op.path} after "
            f"{self.settings.max_rename_attempts} attempts",
            {"path": op.path, "method": op.method.value},
        )
