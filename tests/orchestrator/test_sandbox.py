"""Tests for the sandbox driver against a fake provider."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from preview_studio.orchestrator.managers.sandbox import (
    ReadinessTimeout,
    SandboxDriver,
    SandboxProvisionFailed,
    create_sandbox_client,
)
from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.registry.memory import MemoryWorkspaceRegistry
from preview_studio.orchestrator.settings import PreviewSettings
from tests.orchestrator.fakes import FakeSandboxProvider

# ---------------------------------------------------------------------------
# create_workspace
# ---------------------------------------------------------------------------


async def test_create_sends_request(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "feature/login", 42, "acme/site")

    (request,) = sandbox_api.calls("POST", "/workspaces")
    body = json.loads(request.content)
    assert body["repoUrl"] == "https://github.com/acme/site.git"
    assert body["branch"] == "feature/login"
    assert body["name"] == ws.id
    assert body["public"] is True
    assert body["previewPort"] == 3000
    assert body["envVars"] == {"PR_NUMBER": "42", "REPO_FULL_NAME": "acme/site", "BRANCH": "feature/login"}
    assert "template" not in body


async def test_create_without_preview_is_running(driver: SandboxDriver, registry: MemoryWorkspaceRegistry) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert ws.status == WorkspaceStatus.RUNNING
    assert ws.sandbox_id == "sbx-1"
    assert ws.preview_url is None
    assert (await registry.get(ws.id)).status == WorkspaceStatus.RUNNING


async def test_create_with_preview_is_ready(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    sandbox_api.preview_on_create = True

    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert ws.status == WorkspaceStatus.READY
    assert ws.preview_url == FakeSandboxProvider.preview_url("sbx-1")


async def test_create_failure_marks_error(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    sandbox_api.create_error = 500

    with pytest.raises(SandboxProvisionFailed) as exc_info:
        await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    record = await registry.get(exc_info.value.workspace_id)
    assert record is not None
    assert record.status == WorkspaceStatus.ERROR
    assert not isinstance(exc_info.value, ReadinessTimeout)


async def test_create_undecodable_response_fails(registry: MemoryWorkspaceRegistry) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>oops</html>"))
    async with httpx.AsyncClient(transport=transport, base_url="http://sandbox.test") as client:
        driver = SandboxDriver(registry, client)
        with pytest.raises(SandboxProvisionFailed):
            await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    (record,) = await registry.list_workspaces()
    assert record.status == WorkspaceStatus.ERROR


# ---------------------------------------------------------------------------
# get_status / wait_for_ready
# ---------------------------------------------------------------------------


async def test_get_status_maps_unknown_to_error(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.final_status = "archived"

    refreshed = await driver.get_status(ws.id)

    assert refreshed is not None
    assert refreshed.status == WorkspaceStatus.ERROR


async def test_get_status_failure_returns_none(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.status_error = 503

    assert await driver.get_status(ws.id) is None
    assert (await registry.get(ws.id)).status == WorkspaceStatus.RUNNING


async def test_get_status_unknown_workspace(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    assert await driver.get_status("missing") is None
    assert sandbox_api.requests == []


async def test_wait_for_ready_immediate_does_not_sleep(driver: SandboxDriver) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    with patch("preview_studio.orchestrator.managers.sandbox.asyncio.sleep", new_callable=AsyncMock) as sleep:
        ready = await driver.wait_for_ready(ws.id, max_attempts=3, interval_ms=5000)

    assert ready is not None
    assert ready.status == WorkspaceStatus.READY
    assert ready.preview_url == FakeSandboxProvider.preview_url("sbx-1")
    sleep.assert_not_awaited()


async def test_wait_for_ready_polls_until_ready(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    sandbox_api.ready_after = 2
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    with patch("preview_studio.orchestrator.managers.sandbox.asyncio.sleep", new_callable=AsyncMock) as sleep:
        ready = await driver.wait_for_ready(ws.id, max_attempts=5, interval_ms=250)

    assert ready is not None
    assert len(sandbox_api.calls("GET")) == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.25)


async def test_wait_for_ready_exhausts_budget(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    sandbox_api.ready_after = 100
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert await driver.wait_for_ready(ws.id, max_attempts=4, interval_ms=0) is None
    assert len(sandbox_api.calls("GET")) == 4


async def test_wait_for_ready_stops_on_error(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    sandbox_api.final_status = "error"
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert await driver.wait_for_ready(ws.id, max_attempts=10, interval_ms=0) is None
    assert len(sandbox_api.calls("GET")) == 1


async def test_wait_for_ready_tolerates_transient_failures(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.status_error = 502

    assert await driver.wait_for_ready(ws.id, max_attempts=2, interval_ms=0) is None

    sandbox_api.status_error = None
    assert await driver.wait_for_ready(ws.id, max_attempts=2, interval_ms=0) is not None


# ---------------------------------------------------------------------------
# delete_workspace
# ---------------------------------------------------------------------------


async def test_delete_removes_sandbox_and_record(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert await driver.delete_workspace(ws.id) is True
    assert sandbox_api.sandboxes == {}
    assert await registry.get(ws.id) is None
    # Addressed by the provider's id, not ours.
    assert sandbox_api.calls("DELETE")[0].url.path == "/workspaces/sbx-1"


async def test_delete_already_gone_counts_as_success(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.sandboxes.clear()

    assert await driver.delete_workspace(ws.id) is True
    assert await registry.get(ws.id) is None


async def test_delete_failure_keeps_record(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.delete_error = 500

    assert await driver.delete_workspace(ws.id) is False
    assert await registry.get(ws.id) is not None

    sandbox_api.delete_error = None
    assert await driver.delete_workspace(ws.id) is True


# ---------------------------------------------------------------------------
# stop / start
# ---------------------------------------------------------------------------


async def test_stop_and_start(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")

    assert await driver.stop_workspace(ws.id) is True
    assert (await registry.get(ws.id)).status == WorkspaceStatus.STOPPED
    assert sandbox_api.sandboxes["sbx-1"]["status"] == "stopped"

    assert await driver.start_workspace(ws.id) is True
    assert (await registry.get(ws.id)).status == WorkspaceStatus.RUNNING


async def test_stop_unknown_workspace(driver: SandboxDriver, sandbox_api: FakeSandboxProvider) -> None:
    assert await driver.stop_workspace("missing") is False
    assert sandbox_api.requests == []


async def test_stop_provider_failure(
    driver: SandboxDriver, sandbox_api: FakeSandboxProvider, registry: MemoryWorkspaceRegistry
) -> None:
    ws = await driver.create_workspace("https://github.com/acme/site.git", "main", 42, "acme/site")
    sandbox_api.sandboxes.clear()

    assert await driver.stop_workspace(ws.id) is False
    assert (await registry.get(ws.id)).status == WorkspaceStatus.RUNNING


# ---------------------------------------------------------------------------
# Construction from settings
# ---------------------------------------------------------------------------


async def test_client_and_driver_from_settings(registry: MemoryWorkspaceRegistry) -> None:
    settings = PreviewSettings(
        sandbox_api_url="http://sandbox.internal",
        sandbox_api_key="sk-test",
        sandbox_template="node-20",
        ready_max_attempts=3,
    )
    client = create_sandbox_client(settings)
    try:
        assert client.headers["Authorization"] == "Bearer sk-test"
        assert client.base_url.host == "sandbox.internal"
        driver = SandboxDriver.from_settings(settings, registry, client)
        assert driver._template == "node-20"
        assert driver._max_attempts == 3
    finally:
        await client.aclose()
