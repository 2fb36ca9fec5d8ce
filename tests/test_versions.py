"""Tests for publishing and listing API versions."""

from __future__ import annotations

import pytest

from apitree.db import MutationEngine
from apitree.errors import ConflictError, NotFoundError
from apitree.models import (
    APIStatus,
    ApiResponse,
    VersionStatus,
    next_patch_version,
    parse_version_tag,
)

from conftest import PROJECT


@pytest.fixture
def engine(store) -> MutationEngine:
    return MutationEngine(store)


class TestPublish:
    def test_publish_repoints_current_and_marks_published(self, engine, store, tree):
        api_id = tree["X"].id

        version = engine.publish_version(
            PROJECT, api_id, "v1.1.0", summary="First release", changelog="Initial"
        )

        api = store.get_api(api_id)
        assert api.current_version_id == version.id
        assert api.status == APIStatus.PUBLISHED
        assert version.status == VersionStatus.CURRENT
        assert version.revision == 2
        assert version.summary == "First release"
        assert version.published_at is not None

    def test_second_publish_archives_previous(self, engine, tree):
        api_id = tree["X"].id
        first = engine.publish_version(PROJECT, api_id, "v1.1.0")
        second = engine.publish_version(PROJECT, api_id, "v1.2.0")

        versions = {v.id: v for v in engine.list_versions(PROJECT, api_id)}
        assert versions[first.id].status == VersionStatus.ARCHIVED
        assert versions[second.id].status == VersionStatus.CURRENT
        # Initial draft is archived once superseded
        statuses = [v.status for v in versions.values()]
        assert statuses.count(VersionStatus.CURRENT) == 1

    def test_duplicate_tag_is_conflict(self, engine, store, tree):
        api_id = tree["X"].id
        with pytest.raises(ConflictError):
            engine.publish_version(PROJECT, api_id, "v1.0.0")
        assert len(store.versions.list_versions(api_id)) == 1

    def test_snapshot_carries_live_fields(self, engine, store, tree):
        api_id = tree["X"].id
        store.update_api(api_id, name="Ping v2", tags=["health"])

        version = engine.publish_version(PROJECT, api_id, "v1.0.1")

        assert version.snapshot.name == "Ping v2"
        assert version.snapshot.tags == ["health"]

    def test_unknown_api(self, engine):
        with pytest.raises(NotFoundError):
            engine.publish_version(PROJECT, "ghost", "v1.0.1")


class TestListVersions:
    def test_newest_first(self, engine, tree):
        api_id = tree["X"].id
        engine.publish_version(PROJECT, api_id, "v1.1.0")
        engine.publish_version(PROJECT, api_id, "v2.0.0")

        versions = engine.list_versions(PROJECT, api_id)

        assert [v.version for v in versions] == ["v2.0.0", "v1.1.0", "v1.0.0"]
        assert [v.revision for v in versions] == [3, 2, 1]


class TestTags:
    def test_parse_version_tag(self):
        assert parse_version_tag("v1.2.3") == (1, 2, 3)
        with pytest.raises(ValueError):
            parse_version_tag("1.2.3")

    def test_next_patch_uses_highest_tag(self):
        assert next_patch_version([]) == "v1.0.0"
        assert next_patch_version(["v1.0.0", "v1.10.0", "v1.9.4"]) == "v1.10.1"
        assert next_patch_version(["garbage", "v0.0.9"]) == "v0.0.10"

    def test_shape_hash_ignores_descriptive_fields(self, store, tree):
        version = store.versions.get_version(tree["X"].current_version_id)
        renamed = version.snapshot.model_copy(update={"name": "Other", "tags": ["x"]})
        changed = version.snapshot.model_copy(
            update={"responses": [ApiResponse(name="OK", http_status=200)]}
        )

        assert renamed.shape_hash() == version.shape_hash
        assert changed.shape_hash() != version.shape_hash
