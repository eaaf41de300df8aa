"""In-process workspace registry.

Ephemeral: empty on process restart.  Used when no database is configured
and in tests.  A single ``asyncio.Lock`` guards the primary map and the PR
index together, so no caller ever observes one without the other.  The index
always points at the newest record held for a PR, matching the SQL backend.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from loguru import logger

from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.models.workspace import Workspace
from preview_studio.orchestrator.registry.base import DuplicateActiveWorkspace, check_mutable, new_workspace_id


def _pr_key(repo_full_name: str, pr_number: int) -> str:
    return f"{repo_full_name}:{pr_number}"


class MemoryWorkspaceRegistry:
    """Dict-backed implementation of the WorkspaceRegistry protocol."""

    def __init__(self) -> None:
        self._workspaces: dict[str, Workspace] = {}
        self._pr_index: dict[str, str] = {}
        self._lock = asyncio.Lock()

    # -- Mutation --------------------------------------------------------------

    async def create(self, repo_full_name: str, pr_number: int, branch: str) -> Workspace:
        key = _pr_key(repo_full_name, pr_number)
        async with self._lock:
            current_id = self._pr_index.get(key)
            current = self._workspaces.get(current_id) if current_id else None
            if current is not None and current.is_active:
                raise DuplicateActiveWorkspace(repo_full_name, pr_number, current.id)

            now = datetime.now(tz=UTC)
            workspace = Workspace(
                id=new_workspace_id(repo_full_name, pr_number),
                repo_full_name=repo_full_name,
                pr_number=pr_number,
                branch=branch,
                status=WorkspaceStatus.CREATING,
                created_at=now,
                updated_at=now,
            )
            self._workspaces[workspace.id] = workspace
            self._pr_index[key] = workspace.id

        if current is not None:
            logger.debug("Registry: {} supersedes failed workspace {}", workspace.id, current.id)
        logger.debug("Registry: created {} for {}", workspace.id, key)
        return workspace

    async def update(self, workspace_id: str, **fields: object) -> Workspace | None:
        check_mutable(fields)
        async with self._lock:
            workspace = self._workspaces.get(workspace_id)
            if workspace is None:
                return None
            # Clock steps backwards must not make updated_at go backwards.
            updated_at = max(datetime.now(tz=UTC), workspace.updated_at)
            updated = workspace.model_copy(update={**fields, "updated_at": updated_at})
            self._workspaces[workspace_id] = updated
            return updated

    async def delete(self, workspace_id: str) -> bool:
        async with self._lock:
            workspace = self._workspaces.pop(workspace_id, None)
            if workspace is None:
                return False
            key = _pr_key(workspace.repo_full_name, workspace.pr_number)
            if self._pr_index.get(key) == workspace_id:
                # Fall back to the newest record still held for the PR.
                remaining = [
                    w
                    for w in self._workspaces.values()
                    if w.repo_full_name == workspace.repo_full_name and w.pr_number == workspace.pr_number
                ]
                if remaining:
                    self._pr_index[key] = max(remaining, key=lambda w: w.created_at).id
                else:
                    del self._pr_index[key]
        logger.debug("Registry: deleted {}", workspace_id)
        return True

    # -- Query -----------------------------------------------------------------

    async def get(self, workspace_id: str) -> Workspace | None:
        return self._workspaces.get(workspace_id)

    async def get_by_pr(self, repo_full_name: str, pr_number: int) -> Workspace | None:
        workspace_id = self._pr_index.get(_pr_key(repo_full_name, pr_number))
        if workspace_id is None:
            return None
        return self._workspaces.get(workspace_id)

    async def list_workspaces(self, status: WorkspaceStatus | None = None) -> list[Workspace]:
        workspaces = [w for w in self._workspaces.values() if status is None or w.status == status]
        return sorted(workspaces, key=lambda w: w.created_at, reverse=True)

    @property
    def count(self) -> int:
        return len(self._workspaces)

    def clear(self) -> None:
        """Drop every record (tests only)."""
        self._workspaces.clear()
        self._pr_index.clear()
