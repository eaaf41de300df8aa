"""Pull-request event models.

Inbound ``pull_request`` payloads are narrowed at the HTTP boundary into one
variant per action, so the lifecycle controller can ``match`` on the type
instead of probing optional fields.  Only the fields the controller needs
are modelled; everything else in the GitHub payload is ignored.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from preview_studio.orchestrator.models.enums import PullRequestAction


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RepositoryOwner(_Payload):
    login: str


class Repository(_Payload):
    full_name: str
    name: str | None = None
    owner: RepositoryOwner | None = None

    @property
    def owner_login(self) -> str:
        if self.owner is not None:
            return self.owner.login
        return self.full_name.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        if self.name:
            return self.name
        return self.full_name.split("/", 1)[-1]


class HeadRepository(_Payload):
    clone_url: str
    full_name: str | None = None


class PullRequestHead(_Payload):
    ref: str
    repo: HeadRepository


class PullRequestRef(_Payload):
    number: int


class PullRequestWithHead(PullRequestRef):
    head: PullRequestHead


class _PullRequestEvent(_Payload):
    repository: Repository
    pull_request: PullRequestRef

    @property
    def repo_full_name(self) -> str:
        return self.repository.full_name

    @property
    def pr_number(self) -> int:
        return self.pull_request.number


class _ProvisioningEvent(_PullRequestEvent):
    """Event that needs a workspace built from the PR head."""

    pull_request: PullRequestWithHead

    @property
    def branch(self) -> str:
        return self.pull_request.head.ref

    @property
    def clone_url(self) -> str:
        return self.pull_request.head.repo.clone_url


class PullRequestOpened(_ProvisioningEvent):
    action: Literal["opened"]


class PullRequestSynchronize(_ProvisioningEvent):
    action: Literal["synchronize"]


class PullRequestReopened(_ProvisioningEvent):
    action: Literal["reopened"]


class PullRequestClosed(_PullRequestEvent):
    action: Literal["closed"]


class PullRequestIgnored(_Payload):
    """Any action the controller does not act on (edited, labeled, ...)."""

    action: str


HandledPullRequestEvent = Annotated[
    PullRequestOpened | PullRequestSynchronize | PullRequestClosed | PullRequestReopened,
    Field(discriminator="action"),
]

PullRequestEvent = PullRequestOpened | PullRequestSynchronize | PullRequestClosed | PullRequestReopened | PullRequestIgnored

_HANDLED_ACTIONS = frozenset(action.value for action in PullRequestAction)
_handled_adapter: TypeAdapter[HandledPullRequestEvent] = TypeAdapter(HandledPullRequestEvent)


def parse_pull_request_event(payload: Mapping[str, Any]) -> PullRequestEvent:
    """Narrow a raw ``pull_request`` webhook payload into its event variant.

    Unknown actions become ``PullRequestIgnored`` without further validation.
    Raises ``pydantic.ValidationError`` if a handled action lacks the fields
    the controller needs.
    """
    action = payload.get("action")
    if action not in _HANDLED_ACTIONS:
        return PullRequestIgnored(action=str(action))
    return _handled_adapter.validate_python(dict(payload))
