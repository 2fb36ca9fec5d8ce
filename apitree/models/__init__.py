"""Pydantic models for the API organisation tree."""

from .base import (
    APIMethod,
    APIStatus,
    BodyType,
    CamelModel,
    ConflictStrategy,
    ImportOutcome,
    NodeKind,
    OperationType,
    ParamType,
    TreeSort,
    VersionStatus,
)
from .group import Group
from .api import ApiDefinition, ApiParam, ApiResponse, RequestBody, RequestShape
from .version import (
    INITIAL_VERSION,
    VERSION_PATTERN,
    ApiSnapshot,
    Version,
    next_patch_version,
    parse_version_tag,
)
from .history import OperationLogEntry
from .tree import ApiLeaf, DeleteResult, GroupNode, SubtreeView, TreeRow
from .imports import (
    ImportedApiResult,
    ImportPreview,
    ImportResult,
    ImportStats,
    OpenApiInfo,
    ParsedDocument,
    ParsedOperation,
    PreviewGroup,
    PreviewOperation,
    ServerInfo,
)
from .requests import (
    CloneApiRequest,
    CreateApiRequest,
    CreateGroupRequest,
    DeleteGroupRequest,
    ExecuteImportRequest,
    GetSubtreeRequest,
    MoveGroupRequest,
    ParseOpenapiRequest,
    PublishVersionRequest,
    SortItem,
    SortItemsRequest,
    UpdateApiRequest,
    UpdateGroupRequest,
    validate_request,
)

__all__ = [
    "APIMethod",
    "APIStatus",
    "BodyType",
    "CamelModel",
    "ConflictStrategy",
    "ImportOutcome",
    "NodeKind",
    "OperationType",
    "ParamType",
    "TreeSort",
    "VersionStatus",
    "Group",
    "ApiDefinition",
    "ApiParam",
    "ApiResponse",
    "RequestBody",
    "RequestShape",
    "INITIAL_VERSION",
    "VERSION_PATTERN",
    "ApiSnapshot",
    "Version",
    "next_patch_version",
    "parse_version_tag",
    "OperationLogEntry",
    "ApiLeaf",
    "DeleteResult",
    "GroupNode",
    "SubtreeView",
    "TreeRow",
    "ImportedApiResult",
    "ImportPreview",
    "ImportResult",
    "ImportStats",
    "OpenApiInfo",
    "ParsedDocument",
    "ParsedOperation",
    "PreviewGroup",
    "PreviewOperation",
    "ServerInfo",
    "CloneApiRequest",
    "CreateApiRequest",
    "CreateGroupRequest",
    "DeleteGroupRequest",
    "ExecuteImportRequest",
    "GetSubtreeRequest",
    "MoveGroupRequest",
    "ParseOpenapiRequest",
    "PublishVersionRequest",
    "SortItem",
    "SortItemsRequest",
    "UpdateApiRequest",
    "UpdateGroupRequest",
    "validate_request",
]
