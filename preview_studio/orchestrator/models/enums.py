"""Shared enumerations used across the orchestrator."""

from __future__ import annotations

from enum import StrEnum

# -- Workspace ---------------------------------------------------------------


class WorkspaceStatus(StrEnum):
    """Lifecycle status of a preview workspace.

    Typical progression is ``creating -> running -> ready``.  ``error`` is
    reachable from any state; ``stopped`` is a paused ready/running sandbox.
    """

    CREATING = "creating"
    RUNNING = "running"
    READY = "ready"
    ERROR = "error"
    STOPPED = "stopped"

    @classmethod
    def from_provider(cls, value: str | None) -> WorkspaceStatus:
        """Map a provider status string, treating anything unknown as ``error``."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.ERROR


# -- Events ------------------------------------------------------------------


class PullRequestAction(StrEnum):
    """Pull-request webhook actions the lifecycle controller acts on."""

    OPENED = "opened"
    SYNCHRONIZE = "synchronize"
    CLOSED = "closed"
    REOPENED = "reopened"


class LifecycleOutcome(StrEnum):
    """What the controller did in response to one event."""

    CREATED = "created"
    REPLACED = "replaced"
    DELETED = "deleted"
    SKIPPED = "skipped"
    IGNORED = "ignored"
    FAILED = "failed"
