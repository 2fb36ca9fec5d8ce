"""DuckDB persistence for the API group forest."""

from .schema import create_schema, drop_schema, get_connection
from .tree_store import MAX_TREE_DEPTH, TreeStore
from .ordering import OrderingPolicy
from .subtree import SubtreeQueries
from .mutations import MutationEngine
from .version_queries import VersionQueries
from .history_queries import HistoryQueries

__all__ = [
    "MAX_TREE_DEPTH",
    "HistoryQueries",
    "MutationEngine",
    "OrderingPolicy",
    "SubtreeQueries",
    "TreeStore",
    "VersionQueries",
    "create_schema",
    "drop_schema",
    "get_connection",
]
