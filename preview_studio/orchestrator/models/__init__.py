"""Data models for the orchestrator."""

from preview_studio.orchestrator.models.api import EventResponse
from preview_studio.orchestrator.models.comments import CommentRef
from preview_studio.orchestrator.models.enums import LifecycleOutcome, PullRequestAction, WorkspaceStatus
from preview_studio.orchestrator.models.events import (
    PullRequestClosed,
    PullRequestEvent,
    PullRequestIgnored,
    PullRequestOpened,
    PullRequestReopened,
    PullRequestSynchronize,
    Repository,
    parse_pull_request_event,
)
from preview_studio.orchestrator.models.workspace import Workspace

__all__ = [
    # Comments
    "CommentRef",
    # API schemas
    "EventResponse",
    # Enums
    "LifecycleOutcome",
    "PullRequestAction",
    # Events
    "PullRequestClosed",
    "PullRequestEvent",
    "PullRequestIgnored",
    "PullRequestOpened",
    "PullRequestReopened",
    "PullRequestSynchronize",
    "Repository",
    # Workspace
    "Workspace",
    "WorkspaceStatus",
    "parse_pull_request_event",
]
