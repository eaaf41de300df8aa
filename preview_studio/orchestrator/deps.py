"""FastAPI dependency injection for the orchestrator's process singletons.

Usage in route handlers::

    @router.post("/things")
    async def handle(controller: Controller) -> ...:
        ...

All collaborators are built once in the app lifespan and stored on
``app.state``.  Dependencies raise HTTP 503 if the lifespan did not set
them up.
"""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from preview_studio.orchestrator.execution.controller import LifecycleController
from preview_studio.orchestrator.managers.sandbox import SandboxDriver
from preview_studio.orchestrator.registry.base import WorkspaceRegistry

_bearer = HTTPBearer(auto_error=False)


def _state(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Orchestrator not initialised ({name} missing).",
        )
    return value


def get_controller(request: Request) -> LifecycleController:
    return _state(request, "controller")  # type: ignore[return-value]


def get_registry(request: Request) -> WorkspaceRegistry:
    return _state(request, "registry")  # type: ignore[return-value]


def get_driver(request: Request) -> SandboxDriver:
    return _state(request, "driver")  # type: ignore[return-value]


def verify_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> None:
    """Check the bearer token sent by the webhook gateway."""
    expected = getattr(request.app.state, "auth_token", None)
    if expected is None:
        return
    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


# -- Annotated type aliases for concise route signatures ---------------------

Controller = Annotated[LifecycleController, Depends(get_controller)]
"""Annotated dependency: the process-wide lifecycle controller."""

Registry = Annotated[WorkspaceRegistry, Depends(get_registry)]
"""Annotated dependency: the process-wide workspace registry."""

Driver = Annotated[SandboxDriver, Depends(get_driver)]
"""Annotated dependency: the process-wide sandbox driver."""
