"""Inbound pull-request events.

The webhook gateway has already verified the GitHub signature; this
endpoint only checks the shared bearer token, narrows the payload into its
event variant and hands it to the lifecycle controller.  Failures are
returned as non-2xx so the gateway reports the delivery as failed.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from preview_studio.orchestrator.credentials import CredentialUnavailable
from preview_studio.orchestrator.deps import Controller, verify_token
from preview_studio.orchestrator.managers.comments import CommentPostFailed
from preview_studio.orchestrator.managers.sandbox import SandboxProvisionFailed
from preview_studio.orchestrator.models.api import EventResponse
from preview_studio.orchestrator.models.events import PullRequestIgnored, parse_pull_request_event
from preview_studio.orchestrator.tracker import ShuttingDownError

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(verify_token)])


@router.post("/pull_request", response_model=EventResponse)
async def pull_request_event(controller: Controller, payload: dict[str, Any] = Body(...)) -> EventResponse:
    """Handle one ``pull_request`` webhook payload."""
    try:
        event = parse_pull_request_event(payload)
    except ValidationError as exc:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from None

    try:
        result = await controller.handle(event)
    except ShuttingDownError:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Shutting down, retry later.") from None
    except SandboxProvisionFailed as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from None
    except CredentialUnavailable as exc:
        raise HTTPException(status.HTTP_424_FAILED_DEPENDENCY, detail=str(exc)) from None
    except CommentPostFailed as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from None

    return EventResponse(
        action=event.action,
        outcome=result.outcome,
        pr_number=None if isinstance(event, PullRequestIgnored) else event.pr_number,
        workspace_id=result.workspace_id,
    )
