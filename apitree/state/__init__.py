"""State management for apitree."""

from .workspace_state import WorkspaceState

__all__ = ["WorkspaceState"]
