"""SQLAlchemy ORM models for PostgreSQL.

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.
Tables are created idempotently at startup (``Base.metadata.create_all``).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Timezone-aware timestamp type for all datetime columns.
TimestampTZ = DateTime(timezone=True)

_ACTIVE = text("status <> 'error'")


class Base(DeclarativeBase):
    """Declarative base with naming convention for constraints."""

    pass


Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class WorkspaceRow(Base):
    __tablename__ = "preview_workspaces"
    __table_args__ = (
        # At most one non-error workspace per PR.  This is what makes two
        # concurrent creates for the same PR fail on the second insert.
        Index(
            "uq_preview_workspaces_active_pr",
            "repo_full_name",
            "pr_number",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        Index("ix_preview_workspaces_pr", "repo_full_name", "pr_number"),
        Index("ix_preview_workspaces_status", "status"),
    )

    workspace_id: Mapped[str] = mapped_column(primary_key=True)
    repo_full_name: Mapped[str]
    pr_number: Mapped[int]
    branch: Mapped[str]
    status: Mapped[str] = mapped_column(server_default="creating")
    preview_url: Mapped[str | None]
    sandbox_id: Mapped[str | None]
    created_at: Mapped[datetime] = mapped_column(TimestampTZ)
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ)
