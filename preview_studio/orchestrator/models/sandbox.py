"""Wire models for the sandbox provider API (camelCase JSON)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SandboxCreateRequest(BaseModel):
    """Body of ``POST /workspaces``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    repo_url: str
    branch: str
    name: str
    template: str | None = None
    public: bool = True
    auto_stop_interval: int | None = None
    preview_port: int | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SandboxResponse(BaseModel):
    """Provider view of a sandbox: create and status responses share it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str | None = None
    preview_url: str | None = None
    status: str | None = None
