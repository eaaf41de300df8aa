"""PostgreSQL-backed workspace registry.

Durable across restarts.  The PR "index" is the partial unique index on
``(repo_full_name, pr_number) WHERE status <> 'error'``: the database, not
this process, rejects a second active workspace for a PR, so the guarantee
holds across replicas too.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from preview_studio.orchestrator.db.tables import WorkspaceRow
from preview_studio.orchestrator.models.enums import WorkspaceStatus
from preview_studio.orchestrator.models.workspace import Workspace
from preview_studio.orchestrator.registry.base import DuplicateActiveWorkspace, check_mutable, new_workspace_id

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def _to_model(row: WorkspaceRow) -> Workspace:
    return Workspace(
        id=row.workspace_id,
        repo_full_name=row.repo_full_name,
        pr_number=row.pr_number,
        branch=row.branch,
        status=WorkspaceStatus.from_provider(row.status),
        preview_url=row.preview_url,
        sandbox_id=row.sandbox_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlWorkspaceRegistry:
    """SQLAlchemy implementation of the WorkspaceRegistry protocol.

    Opens one short-lived ``AsyncSession`` per operation; the registry itself
    is a process-level singleton built in the app lifespan.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- Mutation --------------------------------------------------------------

    async def create(self, repo_full_name: str, pr_number: int, branch: str) -> Workspace:
        now = datetime.now(tz=UTC)
        row = WorkspaceRow(
            workspace_id=new_workspace_id(repo_full_name, pr_number),
            repo_full_name=repo_full_name,
            pr_number=pr_number,
            branch=branch,
            status=WorkspaceStatus.CREATING.value,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                current = await self._active_for_pr(db, repo_full_name, pr_number)
                raise DuplicateActiveWorkspace(
                    repo_full_name, pr_number, current.workspace_id if current else None
                ) from None
        logger.debug("Registry: created {} for {}#{}", row.workspace_id, repo_full_name, pr_number)
        return _to_model(row)

    async def update(self, workspace_id: str, **fields: object) -> Workspace | None:
        check_mutable(fields)
        async with self._session_factory() as db:
            row = await db.get(WorkspaceRow, workspace_id, with_for_update=True)
            if row is None:
                return None
            for key, value in fields.items():
                if isinstance(value, WorkspaceStatus):
                    value = value.value
                setattr(row, key, value)
            row.updated_at = max(datetime.now(tz=UTC), row.updated_at)
            await db.commit()
            return _to_model(row)

    async def delete(self, workspace_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(delete(WorkspaceRow).where(WorkspaceRow.workspace_id == workspace_id))
            await db.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.debug("Registry: deleted {}", workspace_id)
        return deleted

    # -- Query -----------------------------------------------------------------

    async def get(self, workspace_id: str) -> Workspace | None:
        async with self._session_factory() as db:
            row = await db.get(WorkspaceRow, workspace_id)
            return _to_model(row) if row is not None else None

    async def get_by_pr(self, repo_full_name: str, pr_number: int) -> Workspace | None:
        stmt = (
            select(WorkspaceRow)
            .where(WorkspaceRow.repo_full_name == repo_full_name, WorkspaceRow.pr_number == pr_number)
            .order_by(WorkspaceRow.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).scalar_one_or_none()
            return _to_model(row) if row is not None else None

    async def list_workspaces(self, status: WorkspaceStatus | None = None) -> list[Workspace]:
        stmt = select(WorkspaceRow).order_by(WorkspaceRow.created_at.desc())
        if status is not None:
            stmt = stmt.where(WorkspaceRow.status == status.value)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [_to_model(row) for row in result.scalars().all()]

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    async def _active_for_pr(db: AsyncSession, repo_full_name: str, pr_number: int) -> WorkspaceRow | None:
        stmt = select(WorkspaceRow).where(
            WorkspaceRow.repo_full_name == repo_full_name,
            WorkspaceRow.pr_number == pr_number,
            WorkspaceRow.status != WorkspaceStatus.ERROR.value,
        )
        return (await db.execute(stmt)).scalars().first()
