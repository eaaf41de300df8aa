"""Workspace data model.

A workspace is one ephemeral sandbox bound to exactly one open pull request.
The registry owns the canonical record; everything else holds ids and
re-reads before acting.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from preview_studio.orchestrator.models.enums import WorkspaceStatus


class Workspace(BaseModel):
    """Registry record for a preview workspace."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    repo_full_name: str
    pr_number: int
    branch: str
    status: WorkspaceStatus = WorkspaceStatus.CREATING
    preview_url: str | None = None
    sandbox_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        """Error records never count as the PR's active workspace."""
        return self.status != WorkspaceStatus.ERROR

    @property
    def remote_id(self) -> str:
        """Identifier to use when addressing the sandbox provider."""
        return self.sandbox_id or self.id
