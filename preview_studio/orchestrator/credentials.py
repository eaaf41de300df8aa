"""Installation lookup and comment-posting credentials.

The orchestrator posts comments as a GitHub App installation.  Two pieces
are consumed read-only here:

- an **installation directory** mapping ``owner/repo`` to the installation
  id and its suspension flag, and
- a **credential provider** that turns that installation into a
  short-lived token.

Tokens are never cached by the provider; the comment synchronizer resolves
one per logical operation and drops it when the operation ends.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx
from jose import jwt
from jose.exceptions import JOSEError
from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from preview_studio.orchestrator.settings import PreviewSettings

APP_JWT_ALGORITHM = "RS256"
# GitHub rejects app JWTs valid for more than 10 minutes; backdate iat for clock drift.
APP_JWT_LIFETIME_SECONDS = 9 * 60
APP_JWT_BACKDATE_SECONDS = 60


class CredentialUnavailable(LookupError):
    """No usable installation credential exists for the repository."""

    def __init__(self, owner: str, repo: str, reason: str) -> None:
        self.owner = owner
        self.repo = repo
        super().__init__(f"No credential for {owner}/{repo}: {reason}")


# ---------------------------------------------------------------------------
# Installation directory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Installation:
    installation_id: int
    suspended: bool = False


@runtime_checkable
class InstallationDirectory(Protocol):
    async def lookup(self, owner: str, repo: str) -> Installation | None:
        """Return the installation covering ``owner/repo``, or ``None``."""
        ...


class StaticInstallationDirectory:
    """Settings-backed directory for single-tenant deployments."""

    def __init__(self, installations: Mapping[str, int], suspended: Iterable[int] = ()) -> None:
        self._installations = {name.lower(): installation_id for name, installation_id in installations.items()}
        self._suspended = frozenset(suspended)

    async def lookup(self, owner: str, repo: str) -> Installation | None:
        installation_id = self._installations.get(f"{owner}/{repo}".lower())
        if installation_id is None:
            return None
        return Installation(installation_id, suspended=installation_id in self._suspended)


# ---------------------------------------------------------------------------
# Credential providers
# ---------------------------------------------------------------------------


@runtime_checkable
class CredentialProvider(Protocol):
    async def token_for(self, owner: str, repo: str) -> str:
        """Return a token allowed to comment on ``owner/repo``.

        Raises ``CredentialUnavailable``.
        """
        ...


class StaticTokenProvider:
    """Use one fixed token for every repository (development, PATs)."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def token_for(self, owner: str, repo: str) -> str:
        return self._token


class AppInstallationTokenProvider:
    """Exchange a GitHub App JWT for an installation access token."""

    def __init__(
        self,
        directory: InstallationDirectory,
        client: httpx.AsyncClient,
        *,
        app_id: int,
        private_key: str,
    ) -> None:
        self._directory = directory
        self._client = client
        self._app_id = app_id
        self._private_key = private_key

    def create_app_jwt(self, now: float | None = None) -> str:
        issued = int(now if now is not None else time.time())
        payload = {
            "iat": issued - APP_JWT_BACKDATE_SECONDS,
            "exp": issued + APP_JWT_LIFETIME_SECONDS,
            "iss": str(self._app_id),
        }
        return jwt.encode(payload, self._private_key, algorithm=APP_JWT_ALGORITHM)

    async def token_for(self, owner: str, repo: str) -> str:
        installation = await self._directory.lookup(owner, repo)
        if installation is None:
            raise CredentialUnavailable(owner, repo, "no installation")
        if installation.suspended:
            raise CredentialUnavailable(owner, repo, f"installation {installation.installation_id} is suspended")

        try:
            app_jwt = self.create_app_jwt()
        except JOSEError as exc:
            raise CredentialUnavailable(owner, repo, f"cannot sign app JWT: {exc}") from exc

        try:
            response = await self._client.post(
                f"/app/installations/{installation.installation_id}/access_tokens",
                headers={"Authorization": f"Bearer {app_jwt}"},
            )
            response.raise_for_status()
            token = response.json()["token"]
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Credentials: token exchange failed for {}/{}: {}", owner, repo, exc)
            raise CredentialUnavailable(owner, repo, "token exchange failed") from exc

        logger.debug("Credentials: issued installation token for {}/{}", owner, repo)
        return token


def create_credential_provider(settings: PreviewSettings, client: httpx.AsyncClient) -> CredentialProvider:
    """Pick the credential provider the settings describe.

    A static ``github_token`` wins over app credentials.
    """
    if settings.github_token is not None:
        return StaticTokenProvider(settings.github_token.get_secret_value())
    if settings.github_app_id is None or settings.github_private_key is None:
        msg = "Set PREVIEW_GITHUB_TOKEN or both PREVIEW_GITHUB_APP_ID and PREVIEW_GITHUB_PRIVATE_KEY"
        raise ValueError(msg)
    directory = StaticInstallationDirectory(settings.installations, settings.suspended_installations)
    return AppInstallationTokenProvider(
        directory,
        client,
        app_id=settings.github_app_id,
        private_key=settings.github_private_key.get_secret_value(),
    )
