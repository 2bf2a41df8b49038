"""Local working-copy management."""

from .manager import WorkspaceContext, WorkspaceManager

__all__ = ["WorkspaceContext", "WorkspaceManager"]
