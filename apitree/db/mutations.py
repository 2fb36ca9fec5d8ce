"""Move, clone, delete and publish operations on the group forest."""

from __future__ import annotations

import logging

from ..errors import ConflictError, InvalidParentError, NotEmptyError, NotFoundError
from ..models.api import ApiDefinition
from ..models.base import APIMethod, APIStatus, NodeKind, VersionStatus
from ..models.group import Group
from ..models.tree import DeleteResult
from ..models.version import Version
from .tree_store import TreeStore

logger = logging.getLogger(__name__)


class MutationEngine:
    """Structural mutations, each run in a single store transaction."""

    def __init__(self, store: TreeStore, max_suffix_attempts: int = 100):
        self.store = store
        self.max_suffix_attempts = max_suffix_attempts

    # ========== Move ==========

    def move(
        self,
        project_id: str,
        node_id: str,
        new_parent_id: str | None = None,
        sort_order: int | None = None,
        reparent: bool = False,
    ) -> Group | ApiDefinition:
        """Reparent and/or reorder a group or an API.

        Args:
            project_id: Owning project.
            node_id: Group or API id.
            new_parent_id: Target parent group; None means project root
                (groups only). Only read when ``reparent`` is True.
            sort_order: Position in the target sibling set; None appends on a
                parent change and is a no-op otherwise.
            reparent: False keeps the current parent and only reorders.
        """
        with self.store.transaction():
            node = self.store.get_node(node_id, project_id)
            if isinstance(node, Group):
                return self.move_group(
                    project_id, node.id, new_parent_id, sort_order, reparent
                )
            return self.move_api(
                project_id, node.id, new_parent_id, sort_order, reparent
            )

    def move_group(
        self,
        project_id: str,
        group_id: str,
        new_parent_id: str | None = None,
        sort_order: int | None = None,
        reparent: bool = False,
    ) -> Group:
        """Move a group; rejects cycles, cross-project and API parents."""
        with self.store.transaction():
            group = self.store.require_group(group_id, project_id)
            target_parent = new_parent_id if reparent else group.parent_id
            if target_parent is not None and target_parent != group.parent_id:
                self._check_group_target(group, target_parent)

            if target_parent == group.parent_id:
                if sort_order is None or sort_order == group.sort_order:
                    return group
                position = self.store.ordering.place(
                    NodeKind.GROUP, project_id, target_parent, sort_order,
                    exclude_id=group.id,
                )
            else:
                position = self.store.ordering.place(
                    NodeKind.GROUP, project_id, target_parent, sort_order
                )
            self.store.set_group_position(group.id, target_parent, position)

        logger.info(
            f"Moved group {group_id} under {target_parent or 'project root'} "
            f"at position {position}"
        )
        return self.store.get_group(group_id)

    def move_api(
        self,
        project_id: str,
        api_id: str,
        new_group_id: str | None = None,
        sort_order: int | None = None,
        reparent: bool = False,
    ) -> ApiDefinition:
        """Move an API to another group and/or position."""
        with self.store.transaction():
            api = self.store.require_api(api_id, project_id)
            if reparent and new_group_id is None:
                raise InvalidParentError(
                    "An API must belong to a group", {"id": api_id}
                )
            target_group = new_group_id if reparent else api.group_id
            if target_group != api.group_id:
                self._require_target_group(project_id, target_group)

            if target_group == api.group_id:
                if sort_order is None or sort_order == api.sort_order:
                    return api
                position = self.store.ordering.place(
                    NodeKind.API, project_id, target_group, sort_order,
                    exclude_id=api.id,
                )
            else:
                position = self.store.ordering.place(
                    NodeKind.API, project_id, target_group, sort_order
                )
            self.store.set_api_position(api.id, target_group, position)

        logger.info(f"Moved API {api_id} to group {target_group} at position {position}")
        return self.store.get_api(api_id)

    def _check_group_target(self, group: Group, new_parent_id: str) -> Group:
        if new_parent_id == group.id:
            raise InvalidParentError(
                "A group cannot be its own parent", {"id": group.id}
            )
        parent = self.store.get_group(new_parent_id)
        if parent is None:
            if self.store.get_api(new_parent_id) is not None:
                raise InvalidParentError(
                    f"{new_parent_id} is an API and cannot hold groups",
                    {"id": group.id, "parentId": new_parent_id},
                )
            raise NotFoundError(
                f"Group not found: {new_parent_id}", {"id": new_parent_id}
            )
        if parent.project_id != group.project_id:
            raise InvalidParentError(
                f"Group {new_parent_id} belongs to another project",
                {"id": group.id, "parentId": new_parent_id},
            )
        lineage = [parent.id] + [a.id for a in self.store.ancestors(parent.id)]
        if group.id in lineage:
            raise InvalidParentError(
                f"Moving {group.id} under {new_parent_id} would create a cycle",
                {"id": group.id, "parentId": new_parent_id},
            )
        height = max(
            depth for _, depth in self.store.subtree_groups(group.project_id, group.id)
        )
        self.store.check_nesting(parent.id, height)
        return parent

    def _require_target_group(self, project_id: str, group_id: str) -> Group:
        group = self.store.get_group(group_id)
        if group is None:
            if self.store.get_api(group_id) is not None:
                raise InvalidParentError(
                    f"{group_id} is an API; APIs can only be placed in groups",
                    {"groupId": group_id},
                )
            raise NotFoundError(f"Group not found: {group_id}", {"id": group_id})
        if group.project_id != project_id:
            raise InvalidParentError(
                f"Group {group_id} belongs to another project", {"groupId": group_id}
            )
        return group

    # ========== Delete ==========

    def delete_group(
        self, project_id: str, group_id: str, cascade: bool = False
    ) -> DeleteResult:
        """Delete a group.

        Raises:
            NotEmptyError: ``cascade`` is False and the group has child groups
                or APIs. Nothing is changed.
        """
        with self.store.transaction():
            self.store.require_group(group_id, project_id)
            if not cascade and self.store.has_children(group_id):
                raise NotEmptyError(
                    f"Group {group_id} is not empty; use cascade to delete its subtree",
                    {"id": group_id},
                )
            group_ids = self.store.collect_subtree_group_ids(group_id)
            api_ids, version_count = self.store.delete_groups(group_ids)

        logger.info(
            f"Deleted group {group_id}: {len(group_ids)} group(s), "
            f"{len(api_ids)} API(s), {version_count} version(s)"
        )
        return DeleteResult(
            group_ids=group_ids, api_ids=api_ids, version_count=version_count
        )

    def delete_api(self, project_id: str, api_id: str) -> DeleteResult:
        """Hard-delete an API and all of its versions."""
        with self.store.transaction():
            self.store.require_api(api_id, project_id)
            version_count = self.store.delete_api(api_id)
        logger.info(f"Deleted API {api_id} ({version_count} version(s))")
        return DeleteResult(api_ids=[api_id], version_count=version_count)

    # ========== Clone ==========

    def clone_api(
        self,
        project_id: str,
        api_id: str,
        target_group_id: str,
        name: str | None = None,
        path: str | None = None,
        method: APIMethod | None = None,
    ) -> ApiDefinition:
        """Copy an API's current definition into a group.

        Omitted fields take the source values; a suffix is added only when
        the copy would collide (name within the target group, path and
        method across the project). Explicit values that collide raise
        ConflictError.
        """
        with self.store.transaction():
            source = self.store.require_api(api_id, project_id)
            target = self._require_target_group(project_id, target_group_id)
            method = method or source.method

            taken_names = {a.name for a in self.store.list_group_apis(target.id)}
            if name is None:
                name = self._free_name(source.name, taken_names)
            elif name in taken_names:
                raise ConflictError(
                    f"API name {name!r} already used in group {target.id}",
                    {"name": name, "groupId": target.id},
                )

            if path is None:
                path = self._free_path(project_id, source.path, method)
            elif self.store.find_api_by_route(project_id, path, method) is not None:
                raise ConflictError(
                    f"API {method.value} {path} already exists",
                    {"path": path, "method": method.value},
                )

            snapshot = self.store.versions.current_snapshot(source)
            clone = self.store.create_api(
                project_id,
                target.id,
                name,
                path,
                method,
                status=APIStatus.DRAFT,
                description=source.description,
                tags=source.tags,
                request=snapshot.request,
                responses=snapshot.responses,
            )

        logger.info(f"Cloned API {api_id} into {clone.id} ({method.value} {path})")
        return clone

    def _free_name(self, name: str, taken: set[str]) -> str:
        if name not in taken:
            return name
        for attempt in range(1, self.max_suffix_attempts + 1):
            candidate = f"{name} (copy)" if attempt == 1 else f"{name} (copy {attempt})"
            if candidate not in taken:
                return candidate
        raise ConflictError(f"No free copy name for {name!r}", {"name": name})

    def _free_path(self, project_id: str, path: str, method: APIMethod) -> str:
        if self.store.find_api_by_route(project_id, path, method) is None:
            return path
        for attempt in range(1, self.max_suffix_attempts + 1):
            candidate = f"{path}_copy" if attempt == 1 else f"{path}_copy_{attempt}"
            if self.store.find_api_by_route(project_id, candidate, method) is None:
                return candidate
        raise ConflictError(
            f"No free copy path for {method.value} {path}",
            {"path": path, "method": method.value},
        )

    # ========== Versions ==========

    def publish_version(
        self,
        project_id: str,
        api_id: str,
        version: str,
        summary: str | None = None,
        changelog: str | None = None,
    ) -> Version:
        """Snapshot the API's current definition as a new CURRENT version.

        The previously current version is archived, ``current_version_id``
        is repointed and the API becomes PUBLISHED.

        Raises:
            ConflictError: The tag is already used by this API.
        """
        with self.store.transaction():
            api = self.store.require_api(api_id, project_id)
            if version in self.store.versions.version_tags(api.id):
                raise ConflictError(
                    f"Version {version} already exists for API {api_id}",
                    {"version": version, "apiId": api_id},
                )
            snapshot = self.store.versions.current_snapshot(api)
            self.store.versions.archive_current(api.id)
            if api.current_version_id:
                self.store.versions.set_status(
                    api.current_version_id, VersionStatus.ARCHIVED
                )
            published = self.store.versions.insert_version(
                api,
                version,
                snapshot,
                status=VersionStatus.CURRENT,
                summary=summary,
                changelog=changelog,
                published=True,
            )
            self.store.update_api(
                api.id, current_version_id=published.id, status=APIStatus.PUBLISHED
            )

        logger.info(f"Published {version} of API {api_id}")
        return published

    def list_versions(self, project_id: str, api_id: str) -> list[Version]:
        self.store.require_api(api_id, project_id)
        return self.store.versions.list_versions(api_id)
