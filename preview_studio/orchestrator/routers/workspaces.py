"""Workspace inspection endpoints (RPC-style).

Reads use GET; the pause/resume actions use POST.  Creation and deletion
only happen through pull-request events.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from preview_studio.orchestrator.deps import Driver, Registry, verify_token
from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.models.workspace import Workspace

router = APIRouter(prefix="/workspaces", tags=["workspaces"], dependencies=[Depends(verify_token)])


@router.get("/list", response_model=list[Workspace])
async def list_workspaces(
    registry: Registry,
    status_filter: Annotated[WorkspaceStatus | None, Query(alias="status")] = None,
) -> list[Workspace]:
    """List workspaces, newest first, optionally filtered by status."""
    return await registry.list_workspaces(status_filter)


@router.get("/{workspace_id}/get", response_model=Workspace)
async def get_workspace(workspace_id: str, registry: Registry) -> Workspace:
    """Get a single workspace by ID."""
    workspace = await registry.get(workspace_id)
    if workspace is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.")
    return workspace


@router.post("/{workspace_id}/stop", response_model=Workspace)
async def stop_workspace(workspace_id: str, registry: Registry, driver: Driver) -> Workspace:
    """Pause a workspace's sandbox."""
    return await _lifecycle(workspace_id, registry, accepted=await driver.stop_workspace(workspace_id))


@router.post("/{workspace_id}/start", response_model=Workspace)
async def start_workspace(workspace_id: str, registry: Registry, driver: Driver) -> Workspace:
    """Resume a stopped workspace's sandbox."""
    return await _lifecycle(workspace_id, registry, accepted=await driver.start_workspace(workspace_id))


async def _lifecycle(workspace_id: str, registry: Registry, *, accepted: bool) -> Workspace:
    workspace = await registry.get(workspace_id)
    if workspace is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.")
    if not accepted:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail="Sandbox provider rejected the request.")
    return workspace
