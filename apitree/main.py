"""Entry point for the apitree command line."""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .config.loader import load_config
from .errors import ApiTreeError
from .models import ConflictStrategy, TreeSort
from .state import WorkspaceState

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apitree",
        description="Organize API definitions in group trees and import OpenAPI documents.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Directory holding apitree.yaml (default: current directory)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="DuckDB database file (overrides database.path from config)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    tree = commands.add_parser("tree", help="Print a project's group tree")
    tree.add_argument("--project", required=True)
    tree.add_argument("--root", default=None, help="Subtree root group id")
    tree.add_argument("--depth", type=int, default=None, help="Maximum depth (1-32)")
    tree.add_argument("--search", default=None, help="Filter APIs by name or path")
    tree.add_argument(
        "--sort",
        choices=[s.value for s in TreeSort],
        default=TreeSort.GROUPS.value,
        help="List child groups or APIs first within each group",
    )

    preview = commands.add_parser("preview", help="Preview an OpenAPI import")
    preview.add_argument("--project", required=True)
    source = preview.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", type=Path)
    source.add_argument("--url")

    do_import = commands.add_parser("import", help="Import an OpenAPI document")
    do_import.add_argument("--project", required=True)
    do_import.add_argument("--file", type=Path, required=True)
    do_import.add_argument(
        "--strategy",
        choices=[s.value for s in ConflictStrategy],
        required=True,
        help="How to handle operations whose path and method already exist",
    )
    do_import.add_argument("--target-group", default=None)
    do_import.add_argument(
        "--no-create-groups",
        action="store_true",
        help="Do not create groups for unknown tags",
    )
    return parser


def _dump(data) -> None:
    yaml.safe_dump(
        data,
        sys.stdout,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


def _tree_rows(view) -> list[str]:
    lines = []
    for row in view.flatten():
        indent = "  " * row.depth
        if row.kind.value == "group":
            node = row.node
            lines.append(
                f"{indent}{node.name}/ ({node.api_total} APIs, "
                f"{node.child_group_count} groups)"
            )
        else:
            api = row.node.api
            lines.append(f"{indent}{api.method.value} {api.path}  {api.name}")
    return lines


def main(argv: list[str] | None = None) -> int:
    """Run the apitree command line."""
    args = _build_parser().parse_args(argv)

    config_dir = (args.config or Path.cwd()).resolve()
    config = load_config(config_dir)
    logging.basicConfig(
        level=getattr(logging, config.settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    state = WorkspaceState(config_dir, config=config, db_path=args.db)
    try:
        if args.command == "tree":
            view = state.get_subtree(
                args.project,
                {
                    "subtreeRootId": args.root,
                    "maxDepth": args.depth,
                    "search": args.search,
                    "sort": args.sort,
                },
            )
            _dump({"project": args.project, "tree": _tree_rows(view)})
        elif args.command == "preview":
            request = (
                {"url": args.url}
                if args.url
                else {"content": args.file.read_text(encoding="utf-8")}
            )
            preview = state.parse_openapi(args.project, request)
            _dump(preview.model_dump(mode="json", by_alias=True, exclude={"content"}))
        else:
            result = state.execute_import(
                args.project,
                {
                    "content": args.file.read_text(encoding="utf-8"),
                    "conflictStrategy": args.strategy,
                    "targetGroupId": args.target_group,
                    "createMissingGroups": False if args.no_create_groups else None,
                },
            )
            _dump(result.model_dump(mode="json", by_alias=True))
    except ApiTreeError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"error: {e.code}: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        state.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
