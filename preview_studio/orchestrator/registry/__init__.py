"""Workspace registry implementations."""

from preview_studio.orchestrator.registry.base import (
    DuplicateActiveWorkspace,
    WorkspaceRegistry,
    mark_error,
    mark_ready,
)
from preview_studio.orchestrator.registry.memory import MemoryWorkspaceRegistry
from preview_studio.orchestrator.registry.sql import SqlWorkspaceRegistry

__all__ = [
    "DuplicateActiveWorkspace",
    "MemoryWorkspaceRegistry",
    "SqlWorkspaceRegistry",
    "WorkspaceRegistry",
    "mark_error",
    "mark_ready",
]
