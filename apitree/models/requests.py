"""Request shapes consumed by the workspace facade.

Each contract is a pydantic model; ``validate_request`` turns pydantic's
error list into a field-level ``ValidationError`` before any write happens.
"""

from __future__ import annotations

from typing import Any, TypeVar
from urllib.parse import urlparse

import pydantic
from pydantic import Field, field_validator, model_validator

from ..errors import ValidationError
from .api import ApiResponse, RequestShape
from .base import APIMethod, APIStatus, CamelModel, ConflictStrategy, TreeSort
from .version import VERSION_PATTERN

MAX_SUBTREE_DEPTH = 32
MAX_API_LIMIT_PER_GROUP = 1000
MAX_API_NAME_LENGTH = 128

RequestT = TypeVar("RequestT", bound=pydantic.BaseModel)


def validate_request(model: type[RequestT], data: Any) -> RequestT:
    """Validate raw input against a request model.

    Args:
        model: Request model class.
        data: A mapping, an instance of ``model``, or None for an empty body.

    Returns:
        The validated model instance.

    Raises:
        ValidationError: With one entry per failing field.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except pydantic.ValidationError as e:
        raise ValidationError.from_pydantic(e) from e


def _upper_method(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


class GetSubtreeRequest(CamelModel):
    subtree_root_id: str | None = None
    max_depth: int | None = Field(default=None, ge=1, le=MAX_SUBTREE_DEPTH)
    include_current_version: bool = False
    api_method: APIMethod | None = None
    api_status: APIStatus | None = None
    search: str | None = None
    api_limit_per_group: int | None = Field(
        default=None, ge=1, le=MAX_API_LIMIT_PER_GROUP
    )
    sort: TreeSort = TreeSort.GROUPS

    @field_validator("api_method", mode="before")
    @classmethod
    def _method_upper(cls, value: Any) -> Any:
        return _upper_method(value)

    @field_validator("search")
    @classmethod
    def _blank_search(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def has_filters(self) -> bool:
        return bool(self.api_method or self.api_status or self.search)


class CreateGroupRequest(CamelModel):
    name: str = Field(..., min_length=1)
    parent_id: str | None = None
    description: str | None = None
    sort_order: int | None = Field(default=None, ge=0)


class UpdateGroupRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    sort_order: int | None = Field(default=None, ge=0)


class MoveGroupRequest(CamelModel):
    """Reparent and/or reorder a node.

    Leaving ``new_parent_id`` out keeps the current parent; passing it as
    None moves a group to the project root.
    """

    new_parent_id: str | None = None
    sort_order: int | None = Field(default=None, ge=0)

    @property
    def reparent(self) -> bool:
        return "new_parent_id" in self.model_fields_set


class DeleteGroupRequest(CamelModel):
    cascade: bool = False


class SortItem(CamelModel):
    id: str = Field(..., min_length=1)
    sort_order: int = Field(..., ge=0)


class SortItemsRequest(CamelModel):
    items: list[SortItem] = Field(..., min_length=1)

    @field_validator("items")
    @classmethod
    def _unique_ids(cls, items: list[SortItem]) -> list[SortItem]:
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"duplicate id {item.id}")
            seen.add(item.id)
        return items


class ParseOpenapiRequest(CamelModel):
    """Preview request; exactly one of ``content`` and ``url``."""

    content: str | None = None
    url: str | None = None
    conflict_strategy: ConflictStrategy | None = None

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("URL must start with http:// or https://")
        return value

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "ParseOpenapiRequest":
        has_content = bool(self.content)
        has_url = bool(self.url)
        if has_content == has_url:
            raise ValueError("provide exactly one of content or url")
        return self


class ExecuteImportRequest(CamelModel):
    content: str = Field(..., min_length=1)
    conflict_strategy: ConflictStrategy
    target_group_id: str | None = None
    create_missing_groups: bool | None = None


class CloneApiRequest(CamelModel):
    target_group_id: str = Field(..., min_length=1)
    name: str | None = Field(default=None, min_length=1, max_length=MAX_API_NAME_LENGTH)
    path: str | None = None
    method: APIMethod | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _method_upper(cls, value: Any) -> Any:
        return _upper_method(value)

    @field_validator("path")
    @classmethod
    def _leading_slash(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith("/"):
            raise ValueError("path must start with /")
        return value


class PublishVersionRequest(CamelModel):
    version: str = Field(..., pattern=VERSION_PATTERN.pattern)
    summary: str | None = Field(default=None, max_length=1024)
    changelog: str | None = Field(default=None, max_length=2048)


class CreateApiRequest(CamelModel):
    group_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=MAX_API_NAME_LENGTH)
    path: str = Field(..., min_length=1)
    method: APIMethod
    status: APIStatus = APIStatus.DRAFT
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    sort_order: int | None = Field(default=None, ge=0)
    request: RequestShape = Field(default_factory=RequestShape)
    responses: list[ApiResponse] = Field(default_factory=list)

    @field_validator("method", mode="before")
    @classmethod
    def _method_upper(cls, value: Any) -> Any:
        return _upper_method(value)

    @field_validator("path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must start with /")
        return value


class UpdateApiRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=MAX_API_NAME_LENGTH)
    status: APIStatus | None = None
    description: str | None = None
    tags: list[str] | None = None
