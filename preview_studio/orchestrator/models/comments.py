"""Review comment references returned by the comment synchronizer."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class CommentRef(BaseModel):
    """A PR comment as seen through the GitHub issues API."""

    model_config = ConfigDict(frozen=True)

    id: int
    html_url: str | None = None
    body: str | None = None
    author_login: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CommentRef:
        """Build from a GitHub ``issue comment`` JSON object."""
        user = data.get("user") or {}
        return cls(
            id=data["id"],
            html_url=data.get("html_url"),
            body=data.get("body"),
            author_login=user.get("login"),
            created_at=data.get("created_at"),
        )
