"""API definition entity model and its request/response shape."""

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import APIMethod, APIStatus, BodyType, CamelModel, NodeKind, ParamType


class ApiParam(CamelModel):
    """A header, path or query parameter (or a form field)."""

    name: str
    type: ParamType = ParamType.STRING
    required: bool = False
    description: str = ""
    example: Any | None = None
    default: Any | None = None


class RequestBody(CamelModel):
    """Request body description."""

    type: BodyType = BodyType.NONE
    json_schema: dict[str, Any] | None = None
    form_fields: list[ApiParam] | None = None
    description: str | None = None


class ApiResponse(CamelModel):
    """A single documented response; ``http_status`` 0 stands for ``default``."""

    name: str
    http_status: int = Field(default=0, ge=0)
    body: dict[str, Any] | None = None


class RequestShape(CamelModel):
    """Everything a client sends."""

    headers: list[ApiParam] = Field(default_factory=list)
    path_params: list[ApiParam] = Field(default_factory=list)
    query_params: list[ApiParam] = Field(default_factory=list)
    body: RequestBody | None = None


class ApiDefinition(CamelModel):
    """An HTTP operation (path + method) owned by exactly one group."""

    id: str
    project_id: str
    group_id: str = Field(..., title="Group")
    name: str = Field(..., title="Name")
    path: str = Field(..., title="Path")
    method: APIMethod
    status: APIStatus = APIStatus.DRAFT
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    sort_order: int = Field(default=0, ge=0)
    current_version_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.API

    @property
    def route_key(self) -> tuple[str, str]:
        """Identity of the operation inside a project."""
        return (self.path, self.method.value)
