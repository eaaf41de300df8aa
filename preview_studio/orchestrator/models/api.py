"""API response schemas for the HTTP surface.

Workspaces are served with the domain model itself; only the event endpoint
needs a dedicated envelope.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from preview_studio.orchestrator.models.enums import LifecycleOutcome


class EventResponse(BaseModel):
    """Result of dispatching one pull-request event."""

    action: str
    outcome: LifecycleOutcome
    pr_number: int | None = None
    workspace_id: str | None = Field(default=None, description="Workspace created or deleted, if any.")
