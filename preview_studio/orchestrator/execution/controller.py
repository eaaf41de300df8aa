"""Lifecycle controller -- decides what each pull-request event does to its workspace.

Per-PR state is never stored here; it is derived from the registry on every
event:

=============  =======================  ===========================================
action         precondition             effect
=============  =======================  ===========================================
opened         no active workspace      create, wait for ready, post comment
opened         active workspace         no-op (redelivery)
synchronize    no active workspace      same as opened
synchronize    active workspace         delete old, create replacement, upsert comment
closed         active workspace         delete workspace, post cleanup comment
closed         error workspace only     delete workspace, no comment
closed         no workspace             no-op, no remote calls
reopened       any                      same as opened
=============  =======================  ===========================================

A workspace in ``error`` is never "active": it is reclaimed and replaced by
the next opened/synchronize instead of wedging the PR.  Older error records
left behind for the same PR are swept on every reclaim and on close.

The controller is the only component that orchestrates across the registry,
the sandbox driver and the comment synchronizer.  Units of work for one PR
are serialized through the event tracker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, assert_never

from preview_studio.orchestrator.credentials import CredentialUnavailable
from preview_studio.orchestrator.execution.templates import render_cleanup_comment, render_preview_comment
from preview_studio.orchestrator.log import pr_context
from preview_studio.orchestrator.managers.comments import CommentPostFailed
from preview_studio.orchestrator.managers.sandbox import ReadinessTimeout
from preview_studio.orchestrator.models.enums import LifecycleOutcome, WorkspaceStatus
from preview_studio.orchestrator.models.events import (
    PullRequestClosed,
    PullRequestIgnored,
    PullRequestOpened,
    PullRequestReopened,
    PullRequestSynchronize,
)
from preview_studio.orchestrator.registry.base import DuplicateActiveWorkspace, mark_error
from preview_studio.orchestrator.tracker import EventTracker, pr_key

if TYPE_CHECKING:
    from preview_studio.orchestrator.managers.comments import CommentSynchronizer
    from preview_studio.orchestrator.managers.sandbox import SandboxDriver
    from preview_studio.orchestrator.models.comments import CommentRef
    from preview_studio.orchestrator.models.events import PullRequestEvent
    from preview_studio.orchestrator.registry.base import WorkspaceRegistry

    ProvisioningEvent = PullRequestOpened | PullRequestSynchronize | PullRequestReopened

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class LifecycleResult:
    """Outcome of handling one pull-request event."""

    outcome: LifecycleOutcome
    workspace_id: str | None = None
    preview_url: str | None = None
    comment: CommentRef | None = None


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class LifecycleController:
    """State machine mapping pull-request events onto workspace operations.

    Instantiated once during app lifespan with the process-wide registry,
    driver, synchronizer and tracker.

    Failures while provisioning (``SandboxProvisionFailed``,
    ``ReadinessTimeout``) and while commenting (``CommentPostFailed``,
    ``CredentialUnavailable``) propagate to the caller.  Before a
    provisioning failure propagates, the new workspace's record is in
    ``error``; a comment failure leaves the ready workspace as it is.
    """

    def __init__(
        self,
        registry: WorkspaceRegistry,
        driver: SandboxDriver,
        comments: CommentSynchronizer,
        tracker: EventTracker | None = None,
        *,
        max_attempts: int | None = None,
        interval_ms: int | None = None,
    ) -> None:
        self._registry = registry
        self._driver = driver
        self._comments = comments
        self._tracker = tracker or EventTracker()
        self._max_attempts = max_attempts
        self._interval_ms = interval_ms

    # -- Dispatch --------------------------------------------------------------

    async def handle(self, event: PullRequestEvent) -> LifecycleResult:
        """Dispatch an event by action."""
        if isinstance(event, PullRequestIgnored):
            logger.info("Ignoring pull_request action: %s", event.action)
            return LifecycleResult(LifecycleOutcome.IGNORED)

        with pr_context(pr_key(event.repo_full_name, event.pr_number)):
            match event:
                case PullRequestOpened():
                    return await self.handle_opened(event)
                case PullRequestSynchronize():
                    return await self.handle_synchronize(event)
                case PullRequestClosed():
                    return await self.handle_closed(event)
                case PullRequestReopened():
                    return await self.handle_reopened(event)
                case _:
                    assert_never(event)

    async def handle_opened(self, event: PullRequestOpened | PullRequestReopened) -> LifecycleResult:
        logger.info("PR %s#%d %s", event.repo_full_name, event.pr_number, event.action)
        async with self._tracker.lock(pr_key(event.repo_full_name, event.pr_number)):
            return await self._opened(event)

    async def handle_reopened(self, event: PullRequestReopened) -> LifecycleResult:
        return await self.handle_opened(event)

    async def handle_synchronize(self, event: PullRequestSynchronize) -> LifecycleResult:
        logger.info("PR %s#%d synchronized (head=%s)", event.repo_full_name, event.pr_number, event.branch)
        async with self._tracker.lock(pr_key(event.repo_full_name, event.pr_number)):
            return await self._synchronize(event)

    async def handle_closed(self, event: PullRequestClosed) -> LifecycleResult:
        logger.info("PR %s#%d closed", event.repo_full_name, event.pr_number)
        async with self._tracker.lock(pr_key(event.repo_full_name, event.pr_number)):
            return await self._closed(event)

    # -- Transitions -----------------------------------------------------------

    async def _opened(self, event: ProvisioningEvent) -> LifecycleResult:
        existing = await self._registry.get_by_pr(event.repo_full_name, event.pr_number)
        if existing is not None and existing.is_active:
            logger.info("Workspace %s already exists for PR #%d, skipping", existing.id, event.pr_number)
            return LifecycleResult(LifecycleOutcome.SKIPPED, existing.id, existing.preview_url)

        await self._reclaim_failed(event.repo_full_name, event.pr_number)
        # A previous attempt may have left a comment behind; reuse it.
        return await self._provision(event, LifecycleOutcome.CREATED, upsert=existing is not None)

    async def _synchronize(self, event: PullRequestSynchronize) -> LifecycleResult:
        existing = await self._registry.get_by_pr(event.repo_full_name, event.pr_number)
        if existing is None or not existing.is_active:
            logger.info("No active workspace for PR #%d, creating one", event.pr_number)
            return await self._opened(event)

        await self._reclaim_failed(event.repo_full_name, event.pr_number)
        logger.info("Replacing workspace %s for PR #%d", existing.id, event.pr_number)
        if not await self._driver.delete_workspace(existing.id):
            # Keep the record for a later sweep, but stop it counting as active
            # so the replacement can be created.
            logger.warning("Could not delete old workspace %s, continuing", existing.id)
            await mark_error(self._registry, existing.id)

        return await self._provision(event, LifecycleOutcome.REPLACED, upsert=True)

    async def _closed(self, event: PullRequestClosed) -> LifecycleResult:
        existing = await self._registry.get_by_pr(event.repo_full_name, event.pr_number)
        if existing is None:
            logger.info("No workspace to clean up for PR #%d", event.pr_number)
            return LifecycleResult(LifecycleOutcome.SKIPPED)

        if not existing.is_active:
            # Nothing was announced for a failed workspace; remove it quietly.
            leftovers = await self._reclaim_failed(event.repo_full_name, event.pr_number)
            if leftovers:
                return LifecycleResult(LifecycleOutcome.FAILED, existing.id)
            logger.info("Removed failed workspace %s for closed PR #%d", existing.id, event.pr_number)
            return LifecycleResult(LifecycleOutcome.DELETED, existing.id)

        if not await self._driver.delete_workspace(existing.id):
            # Record kept; a redelivered ``closed`` retries the delete.
            logger.warning("Failed to delete workspace %s for closed PR #%d", existing.id, event.pr_number)
            return LifecycleResult(LifecycleOutcome.FAILED, existing.id)
        await self._reclaim_failed(event.repo_full_name, event.pr_number)

        repository = event.repository
        comment = await self._comment(
            repository.owner_login,
            repository.repo_name,
            event.pr_number,
            render_cleanup_comment(existing.id),
            upsert=False,
        )
        logger.info("Cleaned up workspace %s for PR #%d", existing.id, event.pr_number)
        return LifecycleResult(LifecycleOutcome.DELETED, existing.id, comment=comment)

    # -- Steps -----------------------------------------------------------------

    async def _reclaim_failed(self, repo_full_name: str, pr_number: int) -> list[str]:
        """Best-effort removal of every error record for the PR.

        Returns the ids that could not be deleted; they stay in the registry
        and are retried by the next sweep.
        """
        failed = [
            w
            for w in await self._registry.list_workspaces(WorkspaceStatus.ERROR)
            if w.repo_full_name == repo_full_name and w.pr_number == pr_number
        ]
        leftovers = []
        for workspace in failed:
            logger.info("Reclaiming failed workspace %s", workspace.id)
            if not await self._driver.delete_workspace(workspace.id):
                logger.warning("Could not reclaim failed workspace %s, leaving record", workspace.id)
                leftovers.append(workspace.id)
        return leftovers

    async def _provision(self, event: ProvisioningEvent, outcome: LifecycleOutcome, *, upsert: bool) -> LifecycleResult:
        try:
            workspace = await self._driver.create_workspace(
                event.clone_url,
                event.branch,
                event.pr_number,
                event.repo_full_name,
            )
        except DuplicateActiveWorkspace as exc:
            # Lost a race with a concurrent delivery (e.g. another replica).
            logger.info("Concurrent create for PR #%d already handled (%s)", event.pr_number, exc.workspace_id)
            return LifecycleResult(LifecycleOutcome.SKIPPED, exc.workspace_id)
        logger.info("Created workspace %s for PR #%d", workspace.id, event.pr_number)

        try:
            ready = await self._driver.wait_for_ready(workspace.id, self._max_attempts, self._interval_ms)
        except BaseException:
            await mark_error(self._registry, workspace.id)
            raise

        if ready is None or ready.preview_url is None:
            await mark_error(self._registry, workspace.id)
            raise ReadinessTimeout(workspace.id, self._max_attempts)

        repository = event.repository
        comment = await self._comment(
            repository.owner_login,
            repository.repo_name,
            event.pr_number,
            render_preview_comment(ready.preview_url, ready.id, ready.branch),
            upsert=upsert,
        )
        logger.info("Preview for PR #%d ready at %s", event.pr_number, ready.preview_url)
        return LifecycleResult(outcome, ready.id, ready.preview_url, comment)

    async def _comment(self, owner: str, repo: str, pr_number: int, body: str, *, upsert: bool) -> CommentRef:
        """Post (or update) the bot comment.  Never touches the workspace."""
        try:
            async with self._comments.session(owner, repo) as comments:
                if upsert:
                    return await comments.upsert(pr_number, body)
                return await comments.post(pr_number, body)
        except (CommentPostFailed, CredentialUnavailable) as exc:
            logger.error("Comment on %s/%s#%d failed: %s", owner, repo, pr_number, exc)
            raise
