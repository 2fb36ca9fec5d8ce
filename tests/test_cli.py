"""Tests for the apitree command line."""

from __future__ import annotations

import pytest
import yaml

from apitree.main import main

from conftest import PROJECT


@pytest.fixture
def cli(tmp_path, petstore_yaml):
    document = tmp_path / "petstore.yaml"
    document.write_text(petstore_yaml, encoding="utf-8")
    db = str(tmp_path / "tree.duckdb")

    def run(*args: str) -> int:
        return main(["--config", str(tmp_path), "--db", db, *args])

    run.document = document
    return run


class TestCli:
    def test_import_then_tree(self, cli, capsys):
        code = cli(
            "import", "--project", PROJECT, "--file", str(cli.document), "--strategy", "skip"
        )
        assert code == 0
        result = yaml.safe_load(capsys.readouterr().out)
        assert result["createdCount"] == 4

        assert cli("tree", "--project", PROJECT) == 0
        tree = yaml.safe_load(capsys.readouterr().out)

        assert tree["project"] == PROJECT
        assert tree["tree"][0].startswith("pets/")
        assert any("GET /health" in line for line in tree["tree"])

    def test_tree_lists_apis_first_on_request(self, cli, capsys):
        cli("import", "--project", PROJECT, "--file", str(cli.document), "--strategy", "skip")
        capsys.readouterr()

        assert cli("tree", "--project", PROJECT, "--sort", "apis") == 0
        lines = yaml.safe_load(capsys.readouterr().out)["tree"]

        assert lines[0].startswith("pets/")
        assert lines[1].startswith("  GET /pets ")
        assert lines[2].startswith("  POST /pets ")
        assert lines[3].startswith("  details/")

    def test_preview_omits_content(self, cli, capsys):
        assert cli("preview", "--project", PROJECT, "--file", str(cli.document)) == 0

        preview = yaml.safe_load(capsys.readouterr().out)

        assert "content" not in preview
        assert preview["stats"] == {"total": 4, "new": 4, "conflicts": 0}

    def test_taxonomy_error_exits_non_zero(self, cli, capsys):
        assert cli("tree", "--project", PROJECT, "--root", "ghost") == 1
        assert "error: NOT_FOUND:" in capsys.readouterr().err

    def test_validation_error(self, cli, capsys):
        assert cli("tree", "--project", PROJECT, "--depth", "99") == 1
        assert "VALIDATION_ERROR" in capsys.readouterr().err
