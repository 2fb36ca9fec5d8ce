"""Depth-limited tree view produced by subtree queries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from pydantic import Field

from .api import ApiDefinition
from .base import CamelModel, NodeKind, TreeSort
from .version import Version


class ApiLeaf(CamelModel):
    """An API as it appears inside a tree view."""

    api: ApiDefinition
    current_version: Version | None = None

    @property
    def id(self) -> str:
        return self.api.id

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.api.sort_order, self.api.id)


class GroupNode(CamelModel):
    """A group with its (depth-limited) children and (capped) APIs."""

    id: str
    name: str
    parent_id: str | None = None
    description: str | None = None
    sort_order: int = 0
    depth: int = 0
    children: list[GroupNode] = Field(default_factory=list)
    apis: list[ApiLeaf] = Field(default_factory=list)
    api_total: int = 0
    child_group_count: int = 0

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.sort_order, self.id)

    def find(self, group_id: str) -> GroupNode | None:
        """Depth-first lookup of a group inside this node."""
        if self.id == group_id:
            return self
        for child in self.children:
            found = child.find(group_id)
            if found is not None:
                return found
        return None


@dataclass
class TreeRow:
    """A display row produced by flattening a tree view."""

    depth: int
    kind: NodeKind
    node: Union[GroupNode, ApiLeaf]


class SubtreeView(CamelModel):
    """Result of a subtree query: one or more depth-0 roots."""

    project_id: str
    root_id: str | None = None
    max_depth: int | None = None
    sort: TreeSort = TreeSort.GROUPS
    roots: list[GroupNode] = Field(default_factory=list)

    def find(self, group_id: str) -> GroupNode | None:
        for root in self.roots:
            found = root.find(group_id)
            if found is not None:
                return found
        return None

    def group_ids(self) -> list[str]:
        """Every group id present in the view, pre-order."""
        return [row.node.id for row in self.flatten() if row.kind == NodeKind.GROUP]

    def flatten(self, sort: TreeSort | None = None) -> list[TreeRow]:
        """Pre-order display rows.

        ``sort`` picks groups-first or apis-first within each group and
        defaults to the order the view was requested with.
        """
        return list(self._walk(self.roots, sort or self.sort))

    def _walk(self, groups: list[GroupNode], sort: TreeSort) -> Iterator[TreeRow]:
        for group in sorted(groups, key=lambda g: g.sort_key):
            yield TreeRow(group.depth, NodeKind.GROUP, group)
            api_rows = [
                TreeRow(group.depth + 1, NodeKind.API, leaf)
                for leaf in sorted(group.apis, key=lambda a: a.sort_key)
            ]
            if sort == TreeSort.APIS:
                yield from api_rows
                yield from self._walk(group.children, sort)
            else:
                yield from self._walk(group.children, sort)
                yield from api_rows


class DeleteResult(CamelModel):
    """What a delete removed."""

    group_ids: list[str] = Field(default_factory=list)
    api_ids: list[str] = Field(default_factory=list)
    version_count: int = 0
