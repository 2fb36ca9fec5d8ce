"""Operation log models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import CamelModel, NodeKind, OperationType


class OperationLogEntry(CamelModel):
    """Single append-only record of a committed mutation."""

    id: int
    project_id: str
    target_kind: NodeKind
    target_id: str
    operation: OperationType
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
