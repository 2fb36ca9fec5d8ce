"""Bounded-depth, filterable reads of the group forest."""

from __future__ import annotations

import logging
from collections import defaultdict

from ..models.api import ApiDefinition
from ..models.group import Group
from ..models.requests import GetSubtreeRequest
from ..models.tree import ApiLeaf, GroupNode, SubtreeView
from .tree_store import MAX_TREE_DEPTH, TreeStore

logger = logging.getLogger(__name__)


class SubtreeQueries:
    """Builds ``SubtreeView`` results from the tree store.

    The whole subtree is loaded once so that pruning can see matches below
    the depth cut; only the returned view is depth-limited.
    """

    def __init__(self, store: TreeStore):
        self.store = store

    def get_subtree(self, project_id: str, request: GetSubtreeRequest) -> SubtreeView:
        """Run a subtree query.

        Args:
            project_id: Project whose forest is read.
            request: Validated query parameters.

        Returns:
            A view rooted at ``subtree_root_id`` or at every project root.

        Raises:
            NotFoundError: If ``subtree_root_id`` is not a group of the project.
        """
        root_id = request.subtree_root_id
        if root_id is not None:
            self.store.require_group(root_id, project_id)

        rows = self.store.subtree_groups(project_id, root_id, MAX_TREE_DEPTH)
        groups: dict[str, Group] = {}
        depths: dict[str, int] = {}
        children: dict[str, list[str]] = defaultdict(list)
        for group, depth in rows:
            groups[group.id] = group
            depths[group.id] = depth
        for group, _ in rows:
            if group.parent_id in groups and depths[group.id] > 0:
                children[group.parent_id].append(group.id)

        matched = self._matching_apis(list(groups), request)
        keep = self._keep_set(groups, depths, children, matched, request)

        max_depth = request.max_depth or MAX_TREE_DEPTH
        versions = {}
        if request.include_current_version:
            version_ids = [
                api.current_version_id
                for apis in matched.values()
                for api in apis
                if api.current_version_id
            ]
            versions = self.store.versions.get_versions(version_ids)

        def build(group_id: str) -> GroupNode:
            group = groups[group_id]
            depth = depths[group_id]
            apis = matched.get(group_id, [])
            limit = request.api_limit_per_group or len(apis)
            child_nodes = []
            if depth < max_depth:
                child_nodes = [
                    build(child_id)
                    for child_id in children.get(group_id, [])
                    if child_id in keep
                ]
            return GroupNode(
                id=group.id,
                name=group.name,
                parent_id=group.parent_id,
                description=group.description,
                sort_order=group.sort_order,
                depth=depth,
                children=child_nodes,
                apis=[
                    ApiLeaf(
                        api=api,
                        current_version=versions.get(api.current_version_id)
                        if api.current_version_id
                        else None,
                    )
                    for api in apis[:limit]
                ],
                api_total=len(apis),
                child_group_count=len(children.get(group_id, [])),
            )

        roots = [
            build(group_id)
            for group_id, depth in depths.items()
            if depth == 0 and group_id in keep
        ]
        logger.debug(
            f"Subtree of {root_id or project_id}: {len(roots)} root(s), "
            f"{len(groups)} group(s) scanned"
        )
        return SubtreeView(
            project_id=project_id,
            root_id=root_id,
            max_depth=request.max_depth,
            sort=request.sort,
            roots=roots,
        )

    def _matching_apis(
        self, group_ids: list[str], request: GetSubtreeRequest
    ) -> dict[str, list[ApiDefinition]]:
        by_group: dict[str, list[ApiDefinition]] = defaultdict(list)
        for api in self.store.list_apis_in_groups(
            group_ids,
            method=request.api_method,
            status=request.api_status,
            search=request.search,
        ):
            by_group[api.group_id].append(api)
        return by_group

    def _keep_set(
        self,
        groups: dict[str, Group],
        depths: dict[str, int],
        children: dict[str, list[str]],
        matched: dict[str, list[ApiDefinition]],
        request: GetSubtreeRequest,
    ) -> set[str]:
        """Groups that survive pruning.

        Without filters every group is kept. With filters a group is kept
        when it or any descendant holds a matching API, and the explicit
        root is always kept.
        """
        if not request.has_filters:
            return set(groups)

        has_match: dict[str, bool] = {}
        # Deepest first so children are settled before their parents
        for group_id in sorted(groups, key=lambda g: depths[g], reverse=True):
            has_match[group_id] = bool(matched.get(group_id)) or any(
                has_match.get(child_id, False) for child_id in children.get(group_id, [])
            )

        keep = {group_id for group_id, hit in has_match.items() if hit}
        if request.subtree_root_id is not None:
            keep.add(request.subtree_root_id)
        return keep
