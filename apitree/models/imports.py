"""Transient value objects of the OpenAPI import pipeline."""

from __future__ import annotations

from pydantic import Field

from .api import ApiResponse, RequestShape
from .base import APIMethod, CamelModel, ConflictStrategy, ImportOutcome


class ParsedOperation(CamelModel):
    """One normalized operation taken from an OpenAPI document."""

    path: str
    method: APIMethod
    name: str
    operation_id: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    request: RequestShape = Field(default_factory=RequestShape)
    responses: list[ApiResponse] = Field(default_factory=list)

    @property
    def route_key(self) -> tuple[str, str]:
        return (self.path, self.method.value)

    @property
    def group_path(self) -> list[str]:
        """Group names derived from the first tag (``a/b`` nests ``b`` in ``a``)."""
        if not self.tags:
            return []
        return [part.strip() for part in self.tags[0].split("/") if part.strip()]


class OpenApiInfo(CamelModel):
    """Document ``info`` block."""

    title: str = "Untitled API"
    version: str = "1.0.0"
    description: str | None = None


class ServerInfo(CamelModel):
    url: str
    description: str | None = None


class ParsedDocument(CamelModel):
    """Everything the parser extracts from a document."""

    info: OpenApiInfo = Field(default_factory=OpenApiInfo)
    servers: list[ServerInfo] = Field(default_factory=list)
    operations: list[ParsedOperation] = Field(default_factory=list)


class PreviewGroup(CamelModel):
    """A group the import would route operations into."""

    name: str
    path: list[str] = Field(default_factory=list)
    api_count: int = 0
    exists: bool = False


class PreviewOperation(CamelModel):
    """Planned handling of one operation; nothing is committed."""

    operation: ParsedOperation
    matched_existing_api_id: str | None = None
    proposed_action: str


class ImportStats(CamelModel):
    total: int = 0
    new: int = 0
    conflicts: int = 0


class ImportPreview(CamelModel):
    """Result of ``parse_openapi``."""

    info: OpenApiInfo
    servers: list[ServerInfo] = Field(default_factory=list)
    groups: list[PreviewGroup] = Field(default_factory=list)
    operations: list[PreviewOperation] = Field(default_factory=list)
    stats: ImportStats = Field(default_factory=ImportStats)
    conflict_strategy: ConflictStrategy | None = None
    content: str


class ImportedApiResult(CamelModel):
    """Committed outcome of one operation."""

    name: str
    path: str
    method: APIMethod
    outcome: ImportOutcome
    api_id: str | None = None
    group_id: str | None = None


class ImportResult(CamelModel):
    """Result of ``execute_import``."""

    results: list[ImportedApiResult] = Field(default_factory=list)
    created_group_ids: list[str] = Field(default_factory=list)
    created_count: int = 0
    overwritten_count: int = 0
    renamed_count: int = 0
    skipped_count: int = 0

    def record(self, result: ImportedApiResult) -> None:
        """Append a per-operation result and bump its counter."""
        self.results.append(result)
        if result.outcome == ImportOutcome.CREATED:
            self.created_count += 1
        elif result.outcome == ImportOutcome.OVERWRITTEN:
            self.overwritten_count += 1
        elif result.outcome == ImportOutcome.RENAMED:
            self.renamed_count += 1
        else:
            self.skipped_count += 1
