"""Group entity model."""

from datetime import datetime

from pydantic import Field

from .base import CamelModel, NodeKind


class Group(CamelModel):
    """A named node of the API organisation tree."""

    id: str
    project_id: str
    parent_id: str | None = Field(default=None, title="Parent")
    name: str = Field(..., title="Name")
    description: str | None = Field(default=None, title="Description")
    sort_order: int = Field(default=0, ge=0, title="Sort order")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.GROUP

    @property
    def is_root(self) -> bool:
        return self.parent_id is None
