"""Closed enumerations shared by the tree, version and import models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class NodeKind(str, Enum):
    """Kinds of node stored in the group forest."""

    GROUP = "group"
    API = "api"


class APIMethod(str, Enum):
    """Supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def from_str(cls, value: str) -> "APIMethod":
        """Parse an HTTP method, handling case insensitivity."""
        return cls(value.strip().upper())


class APIStatus(str, Enum):
    """Business status of an API definition."""

    DRAFT = "DRAFT"
    TESTING = "TESTING"
    PUBLISHED = "PUBLISHED"
    DEPRECATED = "DEPRECATED"


class VersionStatus(str, Enum):
    """Lifecycle of a single Version row."""

    DRAFT = "DRAFT"
    CURRENT = "CURRENT"
    ARCHIVED = "ARCHIVED"


class ParamType(str, Enum):
    """Value types a request parameter can declare."""

    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    FILE = "file"


class BodyType(str, Enum):
    """Request body encodings."""

    JSON = "json"
    FORM_DATA = "form-data"
    URL_ENCODED = "x-www-form-urlencoded"
    XML = "xml"
    TEXT = "text"
    BINARY = "binary"
    NONE = "none"


class ConflictStrategy(str, Enum):
    """How an imported operation colliding on (path, method) is handled."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"


class ImportOutcome(str, Enum):
    """Committed outcome of one imported operation."""

    CREATED = "created"
    OVERWRITTEN = "overwritten"
    RENAMED = "renamed"
    SKIPPED = "skipped"


class TreeSort(str, Enum):
    """Display order of siblings when flattening a subtree."""

    GROUPS = "groups"  # child groups before APIs
    APIS = "apis"  # APIs before child groups


class OperationType(str, Enum):
    """Operation log entry types."""

    CREATE = "create"
    UPDATE = "update"
    MOVE = "move"
    DELETE = "delete"
    CLONE = "clone"
    IMPORT = "import"
    PUBLISH = "publish"
    SORT = "sort"


class CamelModel(BaseModel):
    """Base model whose wire names are camelCase (``parentId``, ``sortOrder``).

    Python code uses the snake_case attribute names; both spellings are
    accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
