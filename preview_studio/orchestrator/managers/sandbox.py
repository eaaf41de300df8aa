"""Sandbox driver -- thin wrapper around the sandbox provider API.

The driver owns the remote half of a workspace's life: it allocates the
registry record, asks the provider for a sandbox, mirrors the provider's
status and preview address back into the registry, and tears the sandbox
down again.  ``wait_for_ready`` is the one bounded wait in the system.

Only ``create_workspace`` raises on remote errors.  Status lookups, deletes
and start/stop are soft: they log and report failure through their return
value so the caller can retry with the same workspace id.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
from loguru import logger

from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.models.sandbox import SandboxCreateRequest, SandboxResponse
from preview_studio.orchestrator.registry.base import mark_error

if TYPE_CHECKING:
    from preview_studio.orchestrator.models.workspace import Workspace
    from preview_studio.orchestrator.registry.base import WorkspaceRegistry
    from preview_studio.orchestrator.settings import PreviewSettings

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_INTERVAL_MS = 5000

# ValueError covers undecodable JSON and pydantic ValidationError.
_REMOTE_ERRORS = (httpx.HTTPError, ValueError)


class SandboxProvisionFailed(RuntimeError):
    """The provider could not create the sandbox.  The record is left in ``error``."""

    def __init__(self, workspace_id: str, reason: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Failed to provision workspace {workspace_id}: {reason}")


class ReadinessTimeout(SandboxProvisionFailed):
    """The workspace errored or never became ready within the poll budget."""

    def __init__(self, workspace_id: str, max_attempts: int | None = None) -> None:
        self.max_attempts = max_attempts
        budget = f"{max_attempts} attempts" if max_attempts is not None else "the readiness budget"
        super().__init__(workspace_id, f"not ready within {budget}")


def create_sandbox_client(settings: PreviewSettings) -> httpx.AsyncClient:
    """Build the shared provider client from settings."""
    headers = {"Content-Type": "application/json"}
    if settings.sandbox_api_key is not None:
        headers["Authorization"] = f"Bearer {settings.sandbox_api_key.get_secret_value()}"
    return httpx.AsyncClient(
        base_url=settings.sandbox_api_url,
        headers=headers,
        timeout=settings.sandbox_request_timeout,
    )


class SandboxDriver:
    """Drives the sandbox provider and mirrors its state into the registry.

    Instantiated once during app lifespan.  Holds no workspace state of its
    own: every operation re-reads the registry by id.
    """

    def __init__(
        self,
        registry: WorkspaceRegistry,
        client: httpx.AsyncClient,
        *,
        template: str | None = None,
        public: bool = True,
        auto_stop_interval: int | None = None,
        preview_port: int | None = 3000,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_ms: int = DEFAULT_INTERVAL_MS,
    ) -> None:
        self._registry = registry
        self._client = client
        self._template = template
        self._public = public
        self._auto_stop_interval = auto_stop_interval
        self._preview_port = preview_port
        self._max_attempts = max_attempts
        self._interval_ms = interval_ms

    @classmethod
    def from_settings(
        cls, settings: PreviewSettings, registry: WorkspaceRegistry, client: httpx.AsyncClient
    ) -> SandboxDriver:
        return cls(
            registry,
            client,
            template=settings.sandbox_template,
            public=settings.sandbox_public,
            auto_stop_interval=settings.sandbox_auto_stop_interval,
            preview_port=settings.sandbox_preview_port,
            max_attempts=settings.ready_max_attempts,
            interval_ms=settings.ready_interval_ms,
        )

    # -- Create ----------------------------------------------------------------

    async def create_workspace(self, repo_url: str, branch: str, pr_number: int, repo_full_name: str) -> Workspace:
        """Allocate a registry record and provision its sandbox.

        Raises ``DuplicateActiveWorkspace`` (from the registry) if the PR
        already has an active workspace, and ``SandboxProvisionFailed`` if the
        provider call fails.  On failure the record stays, in ``error``.
        """
        workspace = await self._registry.create(repo_full_name, pr_number, branch)

        request = SandboxCreateRequest(
            repo_url=repo_url,
            branch=branch,
            name=workspace.id,
            template=self._template,
            public=self._public,
            auto_stop_interval=self._auto_stop_interval,
            preview_port=self._preview_port,
            env_vars={
                "PR_NUMBER": str(pr_number),
                "REPO_FULL_NAME": repo_full_name,
                "BRANCH": branch,
            },
        )

        try:
            response = await self._client.post("/workspaces", json=request.to_json())
            response.raise_for_status()
            data = SandboxResponse.model_validate(response.json())
        except _REMOTE_ERRORS as exc:
            logger.error("Sandbox: failed to create workspace {}: {}", workspace.id, exc)
            await mark_error(self._registry, workspace.id)
            raise SandboxProvisionFailed(workspace.id, str(exc)) from exc
        except BaseException:
            # Cancelled mid-request: the sandbox may or may not exist, but the
            # record must not stay active.
            await mark_error(self._registry, workspace.id)
            raise

        status = WorkspaceStatus.READY if data.preview_url else WorkspaceStatus.RUNNING
        updated = await self._registry.update(
            workspace.id,
            status=status,
            preview_url=data.preview_url,
            sandbox_id=data.id,
        )
        logger.info(
            "Sandbox: workspace {} created (sandbox={}, preview={})",
            workspace.id,
            data.id,
            data.preview_url or "pending",
        )
        return updated or workspace

    # -- Status ----------------------------------------------------------------

    async def get_status(self, workspace_id: str) -> Workspace | None:
        """Refresh the record from the provider.

        Returns ``None`` if the record is gone or the provider lookup failed;
        a failed lookup is transient and leaves the record untouched.
        """
        workspace = await self._registry.get(workspace_id)
        if workspace is None:
            return None

        try:
            response = await self._client.get(f"/workspaces/{workspace.remote_id}")
            response.raise_for_status()
            data = SandboxResponse.model_validate(response.json())
        except _REMOTE_ERRORS as exc:
            logger.warning("Sandbox: failed to get status of {}: {}", workspace_id, exc)
            return None

        fields: dict[str, object] = {"status": WorkspaceStatus.from_provider(data.status)}
        if data.preview_url:
            fields["preview_url"] = data.preview_url
        return await self._registry.update(workspace_id, **fields)

    async def wait_for_ready(
        self,
        workspace_id: str,
        max_attempts: int | None = None,
        interval_ms: int | None = None,
    ) -> Workspace | None:
        """Poll until the workspace is ready with a preview URL.

        Returns the ready record, or ``None`` as soon as the workspace is in
        ``error`` or after ``max_attempts`` polls.  Cancelling the awaiting
        task interrupts the wait.
        """
        attempts = max_attempts if max_attempts is not None else self._max_attempts
        interval = (interval_ms if interval_ms is not None else self._interval_ms) / 1000

        for attempt in range(1, attempts + 1):
            workspace = await self.get_status(workspace_id)
            if workspace is not None:
                if workspace.status == WorkspaceStatus.READY and workspace.preview_url:
                    return workspace
                if workspace.status == WorkspaceStatus.ERROR:
                    logger.error("Sandbox: workspace {} reported error", workspace_id)
                    return None

            if attempt < attempts:
                logger.debug("Sandbox: waiting for {} (attempt {}/{})", workspace_id, attempt, attempts)
                await asyncio.sleep(interval)

        logger.error("Sandbox: timed out waiting for {} after {} attempts", workspace_id, attempts)
        return None

    # -- Delete ----------------------------------------------------------------

    async def delete_workspace(self, workspace_id: str) -> bool:
        """Delete the sandbox, then the registry record.

        The record is removed only once the provider confirmed deletion (a 404
        counts: the sandbox is already gone).  On failure returns ``False``
        and keeps the record so the delete can be retried by id.
        """
        workspace = await self._registry.get(workspace_id)
        remote_id = workspace.remote_id if workspace is not None else workspace_id

        try:
            response = await self._client.delete(f"/workspaces/{remote_id}")
            if response.status_code != httpx.codes.NOT_FOUND:
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Sandbox: failed to delete workspace {}: {}", workspace_id, exc)
            return False

        await self._registry.delete(workspace_id)
        logger.info("Sandbox: workspace {} deleted", workspace_id)
        return True

    # -- Start / stop ----------------------------------------------------------

    async def stop_workspace(self, workspace_id: str) -> bool:
        """Pause the sandbox.  Best-effort."""
        return await self._lifecycle_call(workspace_id, "stop", WorkspaceStatus.STOPPED)

    async def start_workspace(self, workspace_id: str) -> bool:
        """Resume a stopped sandbox.  Best-effort."""
        return await self._lifecycle_call(workspace_id, "start", WorkspaceStatus.RUNNING)

    async def _lifecycle_call(self, workspace_id: str, verb: str, confirmed: WorkspaceStatus) -> bool:
        workspace = await self._registry.get(workspace_id)
        if workspace is None:
            logger.warning("Sandbox: cannot {} unknown workspace {}", verb, workspace_id)
            return False

        try:
            response = await self._client.post(f"/workspaces/{workspace.remote_id}/{verb}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Sandbox: failed to {} workspace {}: {}", verb, workspace_id, exc)
            return False

        await self._registry.update(workspace_id, status=confirmed)
        logger.info("Sandbox: workspace {} {}", workspace_id, "stopped" if verb == "stop" else "started")
        return True
