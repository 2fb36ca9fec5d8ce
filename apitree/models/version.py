"""Version models: immutable snapshots of an API's contract."""

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime

from pydantic import Field

from .api import ApiResponse, RequestShape
from .base import APIMethod, CamelModel, VersionStatus

VERSION_PATTERN = re.compile(r"^v\d+\.\d+\.\d+$")
INITIAL_VERSION = "v1.0.0"


class ApiSnapshot(CamelModel):
    """Frozen copy of an API definition at the time a Version was taken."""

    name: str
    method: APIMethod
    path: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    request: RequestShape = Field(default_factory=RequestShape)
    responses: list[ApiResponse] = Field(default_factory=list)

    def shape_hash(self) -> str:
        """SHA-256 over the request/response shape, independent of key order."""
        payload = {
            "request": self.request.model_dump(mode="json", by_alias=True),
            "responses": [
                r.model_dump(mode="json", by_alias=True) for r in self.responses
            ],
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class Version(CamelModel):
    """Append-only Version row."""

    id: str
    api_id: str
    project_id: str
    version: str = Field(..., pattern=VERSION_PATTERN.pattern)
    revision: int = Field(..., ge=1)
    status: VersionStatus = VersionStatus.DRAFT
    summary: str | None = None
    changelog: str | None = None
    snapshot: ApiSnapshot
    shape_hash: str
    created_at: datetime | None = None
    published_at: datetime | None = None


def parse_version_tag(tag: str) -> tuple[int, int, int]:
    """Split ``vX.Y.Z`` into integers.

    Raises:
        ValueError: If the tag does not match ``vX.Y.Z``.
    """
    if not VERSION_PATTERN.match(tag):
        raise ValueError(f"Invalid version tag: {tag}")
    major, minor, patch = tag[1:].split(".")
    return int(major), int(minor), int(patch)


def next_patch_version(existing: list[str]) -> str:
    """Bump the patch component of the highest existing tag."""
    parsed = []
    for tag in existing:
        try:
            parsed.append(parse_version_tag(tag))
        except ValueError:
            continue
    if not parsed:
        return INITIAL_VERSION
    major, minor, patch = max(parsed)
    return f"v{major}.{minor}.{patch + 1}"
