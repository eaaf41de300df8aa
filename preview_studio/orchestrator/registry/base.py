"""Workspace registry interface.

The registry is the only shared mutable resource in the orchestrator.  It
maps a workspace id to its record and keeps a secondary index from
``(repo_full_name, pr_number)`` to the PR's current workspace.  All access
goes through these async operations; callers never cache records across
awaited calls.

``create`` is the concurrency control point: two concurrent creates for the
same PR cannot both succeed while one of them is active.
"""

from __future__ import annotations

import secrets
import time
from typing import Protocol, runtime_checkable

from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.models.workspace import Workspace

MUTABLE_FIELDS = frozenset({"status", "preview_url", "sandbox_id"})


class DuplicateActiveWorkspace(ValueError):
    """Raised when the PR already has an active (non-error) workspace."""

    def __init__(self, repo_full_name: str, pr_number: int, workspace_id: str | None = None) -> None:
        self.repo_full_name = repo_full_name
        self.pr_number = pr_number
        self.workspace_id = workspace_id
        super().__init__(f"{repo_full_name}#{pr_number} already has active workspace {workspace_id or '?'}")


def new_workspace_id(repo_full_name: str, pr_number: int) -> str:
    """Generate a workspace id unique across repeated creations for one PR.

    Millisecond timestamp plus random suffix, so back-to-back replacements
    in the same millisecond still differ.
    """
    slug = repo_full_name.replace("/", "-").lower()
    return f"pr-preview-{slug}-{pr_number}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def check_mutable(fields: dict[str, object]) -> None:
    """Reject updates touching identity, repo, PR number, branch, or timestamps."""
    forbidden = set(fields) - MUTABLE_FIELDS
    if forbidden:
        msg = f"Immutable workspace fields cannot be updated: {', '.join(sorted(forbidden))}"
        raise ValueError(msg)


@runtime_checkable
class WorkspaceRegistry(Protocol):
    """Async protocol for the workspace registry."""

    async def create(self, repo_full_name: str, pr_number: int, branch: str) -> Workspace:
        """Insert a ``creating`` record.  Raises ``DuplicateActiveWorkspace``."""
        ...

    async def get(self, workspace_id: str) -> Workspace | None: ...

    async def get_by_pr(self, repo_full_name: str, pr_number: int) -> Workspace | None:
        """Return the PR's indexed workspace, whatever its status."""
        ...

    async def update(self, workspace_id: str, **fields: object) -> Workspace | None:
        """Merge mutable fields and bump ``updated_at``.  ``None`` if missing."""
        ...

    async def delete(self, workspace_id: str) -> bool:
        """Remove the record and its index entry.  ``False`` if missing."""
        ...

    async def list_workspaces(self, status: WorkspaceStatus | None = None) -> list[Workspace]:
        """All records, newest first, optionally filtered by status."""
        ...


# -- Helpers shared by the controller and driver -------------------------------


async def mark_ready(registry: WorkspaceRegistry, workspace_id: str, preview_url: str) -> Workspace | None:
    return await registry.update(workspace_id, status=WorkspaceStatus.READY, preview_url=preview_url)


async def mark_error(registry: WorkspaceRegistry, workspace_id: str) -> Workspace | None:
    return await registry.update(workspace_id, status=WorkspaceStatus.ERROR)
