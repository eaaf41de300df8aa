"""Shared fixtures for orchestrator tests.

The sandbox provider and the GitHub API are replaced by the fakes in
``fakes.py``, so the real clients, drivers and synchronizers run
unmodified against them.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from preview_studio.orchestrator.credentials import StaticTokenProvider
from preview_studio.orchestrator.execution.controller import LifecycleController
from preview_studio.orchestrator.managers.comments import CommentSynchronizer
from preview_studio.orchestrator.managers.sandbox import SandboxDriver
from preview_studio.orchestrator.registry.memory import MemoryWorkspaceRegistry
from preview_studio.orchestrator.tracker import EventTracker
from tests.orchestrator.fakes import BOT_LOGIN, GITHUB_BASE_URL, SANDBOX_BASE_URL, FakeGitHub, FakeSandboxProvider

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> MemoryWorkspaceRegistry:
    return MemoryWorkspaceRegistry()


@pytest.fixture
def sandbox_api() -> FakeSandboxProvider:
    return FakeSandboxProvider()


@pytest.fixture
def github_api() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
async def sandbox_client(sandbox_api: FakeSandboxProvider) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.MockTransport(sandbox_api.handler)
    async with httpx.AsyncClient(transport=transport, base_url=SANDBOX_BASE_URL) as client:
        yield client


@pytest.fixture
async def github_client(github_api: FakeGitHub) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.MockTransport(github_api.handler)
    async with httpx.AsyncClient(transport=transport, base_url=GITHUB_BASE_URL) as client:
        yield client


@pytest.fixture
def driver(registry: MemoryWorkspaceRegistry, sandbox_client: httpx.AsyncClient) -> SandboxDriver:
    """Driver with a short, sleep-free readiness budget."""
    return SandboxDriver(registry, sandbox_client, preview_port=3000, max_attempts=5, interval_ms=0)


@pytest.fixture
def comments(github_client: httpx.AsyncClient) -> CommentSynchronizer:
    return CommentSynchronizer(StaticTokenProvider("test-token"), github_client, BOT_LOGIN)


@pytest.fixture
def tracker() -> EventTracker:
    return EventTracker()


@pytest.fixture
def controller(
    registry: MemoryWorkspaceRegistry,
    driver: SandboxDriver,
    comments: CommentSynchronizer,
    tracker: EventTracker,
) -> LifecycleController:
    return LifecycleController(registry, driver, comments, tracker)


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    """Build a GitHub ``pull_request`` webhook payload."""

    def _make(
        action: str,
        number: int = 42,
        *,
        repo: str = "acme/site",
        branch: str = "feature/login",
    ) -> dict[str, Any]:
        owner, name = repo.split("/")
        return {
            "action": action,
            "number": number,
            "repository": {"full_name": repo, "name": name, "owner": {"login": owner}},
            "pull_request": {
                "number": number,
                "state": "closed" if action == "closed" else "open",
                "head": {
                    "ref": branch,
                    "sha": "0123abc",
                    "repo": {"full_name": repo, "clone_url": f"https://github.com/{repo}.git"},
                },
            },
            "sender": {"login": "octocat"},
        }

    return _make
