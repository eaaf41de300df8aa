"""Comment synchronizer -- keeps one bot comment per PR in step with its preview.

Comments are remote resources identified by (repository, PR number, bot
author); nothing about them is stored locally.  "Does the bot already have
a comment here?" is always answered by listing the PR's comments.

Credentials are resolved once per logical operation through
``CommentSynchronizer.session`` and discarded when it ends.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from preview_studio.orchestrator.models.comments import CommentRef

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from preview_studio.orchestrator.credentials import CredentialProvider
    from preview_studio.orchestrator.settings import PreviewSettings

GITHUB_API_VERSION = "2022-11-28"
PER_PAGE = 100

_EPOCH = datetime.min.replace(tzinfo=UTC)


class CommentPostFailed(RuntimeError):
    """A GitHub comment API call failed (create, list or update)."""


def create_github_client(settings: PreviewSettings) -> httpx.AsyncClient:
    """Build the shared GitHub REST client.  Auth headers are added per call."""
    return httpx.AsyncClient(
        base_url=settings.github_api_url,
        headers={
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        },
        timeout=30.0,
    )


class CommentSession:
    """Comment operations on one repository, bound to one resolved token."""

    def __init__(self, client: httpx.AsyncClient, token: str, owner: str, repo: str, bot_login: str) -> None:
        self._client = client
        self._headers = {"Authorization": f"Bearer {token}"}
        self.owner = owner
        self.repo = repo
        self.bot_login = bot_login

    @property
    def _base(self) -> str:
        return f"/repos/{self.owner}/{self.repo}/issues"

    async def post(self, pr_number: int, body: str) -> CommentRef:
        data = await self._request("POST", f"{self._base}/{pr_number}/comments", json={"body": body})
        comment = CommentRef.from_api(data)
        logger.info("Comments: posted {} on {}/{}#{}", comment.id, self.owner, self.repo, pr_number)
        return comment

    async def update(self, comment_id: int, body: str) -> CommentRef:
        data = await self._request("PATCH", f"{self._base}/comments/{comment_id}", json={"body": body})
        logger.info("Comments: updated {} on {}/{}", comment_id, self.owner, self.repo)
        return CommentRef.from_api(data)

    async def find_existing(self, pr_number: int, author_login: str | None = None) -> CommentRef | None:
        """Return the most recent comment by ``author_login`` (default: the bot).

        There should only ever be one, but duplicates are tolerated.
        """
        author = author_login or self.bot_login
        matches: list[CommentRef] = []
        page = 1
        while True:
            items = await self._request(
                "GET",
                f"{self._base}/{pr_number}/comments",
                params={"per_page": PER_PAGE, "page": page},
            )
            matches.extend(
                comment
                for comment in (CommentRef.from_api(item) for item in items)
                if comment.author_login == author
            )
            if len(items) < PER_PAGE:
                break
            page += 1

        if not matches:
            return None
        return max(matches, key=lambda c: (c.created_at or _EPOCH, c.id))

    async def upsert(self, pr_number: int, body: str) -> CommentRef:
        """Update the bot's comment if there is one, else post a new one."""
        existing = await self.find_existing(pr_number)
        if existing is not None:
            return await self.update(existing.id, body)
        return await self.post(pr_number, body)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Comments: {} {} failed: {}", method, url, exc)
            msg = f"{method} {url} failed: {exc}"
            raise CommentPostFailed(msg) from exc


class CommentSynchronizer:
    """Finds, creates and updates the bot's preview comment on a PR.

    Each standalone method resolves its own credential.  The lifecycle
    controller uses ``session`` to resolve it once for a whole event.
    """

    def __init__(self, credentials: CredentialProvider, client: httpx.AsyncClient, bot_login: str) -> None:
        self._credentials = credentials
        self._client = client
        self.bot_login = bot_login

    @asynccontextmanager
    async def session(self, owner: str, repo: str) -> AsyncIterator[CommentSession]:
        """Resolve a token for ``owner/repo`` and yield a bound session.

        Raises ``CredentialUnavailable`` before yielding if no credential exists.
        """
        token = await self._credentials.token_for(owner, repo)
        yield CommentSession(self._client, token, owner, repo, self.bot_login)

    async def post_comment(self, owner: str, repo: str, pr_number: int, body: str) -> CommentRef:
        async with self.session(owner, repo) as comments:
            return await comments.post(pr_number, body)

    async def find_existing_comment(
        self, owner: str, repo: str, pr_number: int, author_login: str | None = None
    ) -> CommentRef | None:
        async with self.session(owner, repo) as comments:
            return await comments.find_existing(pr_number, author_login)

    async def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> CommentRef:
        async with self.session(owner, repo) as comments:
            return await comments.update(comment_id, body)

    async def upsert_comment(self, owner: str, repo: str, pr_number: int, body: str) -> CommentRef:
        async with self.session(owner, repo) as comments:
            return await comments.upsert(pr_number, body)
