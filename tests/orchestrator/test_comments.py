"""Tests for the comment synchronizer against a fake GitHub."""

from __future__ import annotations

import httpx
import pytest

from preview_studio.orchestrator.credentials import (
    AppInstallationTokenProvider,
    CredentialUnavailable,
    StaticInstallationDirectory,
)
from preview_studio.orchestrator.execution.templates import (
    COMMENT_MARKER,
    render_cleanup_comment,
    render_preview_comment,
)
from preview_studio.orchestrator.managers.comments import PER_PAGE, CommentPostFailed, CommentSynchronizer
from tests.orchestrator.fakes import BOT_LOGIN, FakeGitHub


async def test_post_comment(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    ref = await comments.post_comment("acme", "site", 42, "hello")

    (stored,) = github_api.thread("acme/site", 42)
    assert ref.id == stored["id"]
    assert ref.body == "hello"
    assert ref.author_login == BOT_LOGIN

    (request,) = github_api.requests
    assert request.url.path == "/repos/acme/site/issues/42/comments"
    assert request.headers["Authorization"] == "Bearer test-token"


async def test_find_existing_none(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    github_api.add_comment("acme/site", 42, "LGTM", login="octocat")

    assert await comments.find_existing_comment("acme", "site", 42) is None


async def test_find_existing_returns_most_recent_bot_comment(
    comments: CommentSynchronizer, github_api: FakeGitHub
) -> None:
    github_api.add_comment("acme/site", 42, "old")
    newest = github_api.add_comment("acme/site", 42, "new")
    github_api.add_comment("acme/site", 42, "human reply", login="octocat")

    found = await comments.find_existing_comment("acme", "site", 42)

    assert found is not None
    assert found.id == newest["id"]
    assert found.body == "new"


async def test_find_existing_other_author(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    github_api.add_comment("acme/site", 42, "bot")
    human = github_api.add_comment("acme/site", 42, "human", login="octocat")

    found = await comments.find_existing_comment("acme", "site", 42, author_login="octocat")

    assert found is not None
    assert found.id == human["id"]


async def test_find_existing_paginates(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    for i in range(PER_PAGE):
        github_api.add_comment("acme/site", 42, f"chatter {i}", login="octocat")
    bot = github_api.add_comment("acme/site", 42, "preview")

    found = await comments.find_existing_comment("acme", "site", 42)

    assert found is not None
    assert found.id == bot["id"]
    pages = [r.url.params["page"] for r in github_api.requests]
    assert pages == ["1", "2"]


async def test_update_comment(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    existing = github_api.add_comment("acme/site", 42, "v1")

    ref = await comments.update_comment("acme", "site", existing["id"], "v2")

    assert ref.body == "v2"
    assert github_api.thread("acme/site", 42)[0]["body"] == "v2"


async def test_upsert_updates_existing(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    existing = github_api.add_comment("acme/site", 42, "v1")

    ref = await comments.upsert_comment("acme", "site", 42, "v2")

    assert ref.id == existing["id"]
    assert len(github_api.thread("acme/site", 42)) == 1


async def test_upsert_posts_when_missing(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    await comments.upsert_comment("acme", "site", 42, "v1")

    assert len(github_api.thread("acme/site", 42)) == 1


async def test_api_failure_raises(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    github_api.comment_error = 500

    with pytest.raises(CommentPostFailed):
        await comments.post_comment("acme", "site", 42, "hello")
    with pytest.raises(CommentPostFailed):
        await comments.find_existing_comment("acme", "site", 42)


async def test_missing_credential_makes_no_api_call(github_client: httpx.AsyncClient, github_api: FakeGitHub) -> None:
    provider = AppInstallationTokenProvider(
        StaticInstallationDirectory({}),
        github_client,
        app_id=1,
        private_key="unused",
    )
    synchronizer = CommentSynchronizer(provider, github_client, BOT_LOGIN)

    with pytest.raises(CredentialUnavailable):
        await synchronizer.post_comment("acme", "site", 42, "hello")
    assert github_api.requests == []


async def test_session_keeps_single_bot_comment(comments: CommentSynchronizer, github_api: FakeGitHub) -> None:
    async with comments.session("acme", "site") as session:
        await session.upsert(42, "v1")
        await session.upsert(42, "v2")

    (comment,) = github_api.thread("acme/site", 42)
    assert comment["body"] == "v2"
    methods = [r.method for r in github_api.requests]
    assert methods == ["GET", "POST", "GET", "PATCH"]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def test_preview_comment_body() -> None:
    body = render_preview_comment("https://3000-sbx-1.preview.test", "pr-preview-acme-site-42-1", "feature/login")

    assert body.startswith(COMMENT_MARKER)
    assert "https://3000-sbx-1.preview.test" in body
    assert "`feature/login`" in body
    assert "pr-preview-acme-site-42-1" in body


def test_cleanup_comment_body() -> None:
    body = render_cleanup_comment("pr-preview-acme-site-42-1")

    assert body.startswith(COMMENT_MARKER)
    assert "pr-preview-acme-site-42-1" in body
    assert "removed" in body

