from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import InvalidRequestError, NotFoundError, PersistenceError
from devfusion.models.message_db import ProjectMessageDB
from devfusion.models.project import Project, ProjectMember
from devfusion.models.project_db import ProjectDB, project_members
from devfusion.models.session_db import ProjectSessionDB
from devfusion.models.user import User


class ProjectNotFoundError(NotFoundError):
    """Raised when a project identifier cannot be resolved."""

    def __init__(self, project_id: str):
        super().__init__(f"Project '{project_id}' was not found")
        self.project_id = project_id


class ProjectRepository:
    """Repository for projects, their members and their file trees."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _project_db_to_model(self, project_db: ProjectDB) -> Project:
        """Convert database model to domain model."""
        return Project(
            id=project_db.id,
            name=project_db.name,
            owner_id=project_db.owner_id,
            users=[ProjectMember(id=user.id, email=user.email) for user in project_db.members],
            pending_users=[
                ProjectMember(id=user.id, email=user.email) for user in project_db.pending_members
            ],
            file_tree=project_db.file_tree or {},
            created_at=project_db.created_at,
            updated_at=project_db.updated_at,
        )

    async def _load(self, project_id: str) -> ProjectDB:
        result = await self.session.execute(select(ProjectDB).where(ProjectDB.id == project_id))
        project_db = result.scalar_one_or_none()
        if not project_db:
            raise ProjectNotFoundError(project_id)
        return project_db

    async def _load_users(self, user_ids: Iterable[str]) -> list[User]:
        wanted = list(dict.fromkeys(user_ids))
        result = await self.session.execute(select(User).where(User.id.in_(wanted)))
        users = list(result.scalars().all())
        missing = set(wanted) - {user.id for user in users}
        if missing:
            raise NotFoundError(f"Unknown user id(s): {', '.join(sorted(missing))}")
        return users

    async def _commit(self, project_db: ProjectDB) -> Project:
        project_db.updated_at = datetime.now(UTC)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to save project '{project_db.id}': {exc}") from exc
        await self.session.refresh(project_db)
        return self._project_db_to_model(project_db)

    async def create_project(self, name: str, owner_id: str, project_id: str | None = None) -> Project:
        owner = await self.session.get(User, owner_id)
        if owner is None:
            raise NotFoundError(f"Unknown user id(s): {owner_id}")

        project_db = ProjectDB(
            id=project_id or uuid4().hex,
            name=name,
            owner_id=owner_id,
            file_tree={},
        )
        project_db.members = [owner]
        project_db.pending_members = []
        self.session.add(project_db)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise InvalidRequestError("Project name already exists") from exc
        await self.session.refresh(project_db)
        return self._project_db_to_model(project_db)

    async def find_by_id(self, project_id: str) -> Project | None:
        result = await self.session.execute(select(ProjectDB).where(ProjectDB.id == project_id))
        project_db = result.scalar_one_or_none()
        return self._project_db_to_model(project_db) if project_db else None

    async def get_project(self, project_id: str) -> Project:
        return self._project_db_to_model(await self._load(project_id))

    async def list_user_projects(self, user_id: str) -> list[Project]:
        result = await self.session.execute(
            select(ProjectDB)
            .join(project_members, project_members.c.project_id == ProjectDB.id)
            .where(project_members.c.user_id == user_id)
            .order_by(ProjectDB.created_at.desc())
        )
        return [self._project_db_to_model(p) for p in result.scalars().all()]

    async def update_file_tree(self, project_id: str, file_tree: dict[str, Any]) -> Project:
        project_db = await self._load(project_id)
        project_db.file_tree = file_tree
        return await self._commit(project_db)

    async def add_members(self, project_id: str, user_ids: Iterable[str]) -> Project:
        project_db = await self._load(project_id)
        current = {user.id for user in project_db.members}
        for user in await self._load_users(user_ids):
            if user.id not in current:
                project_db.members.append(user)
                current.add(user.id)
        return await self._commit(project_db)

    async def remove_member(self, project_id: str, user_id: str) -> Project:
        project_db = await self._load(project_id)
        if project_db.owner_id == user_id:
            raise InvalidRequestError("Cannot remove project owner")
        project_db.members = [user for user in project_db.members if user.id != user_id]
        return await self._commit(project_db)

    async def add_pending_member(self, project_id: str, user_id: str) -> Project:
        project_db = await self._load(project_id)
        if any(user.id == user_id for user in project_db.members):
            raise InvalidRequestError("User already in project")
        if any(user.id == user_id for user in project_db.pending_members):
            raise InvalidRequestError("User already pending")
        [user] = await self._load_users([user_id])
        project_db.pending_members.append(user)
        return await self._commit(project_db)

    async def resolve_pending_member(self, project_id: str, user_id: str, *, accept: bool) -> Project:
        project_db = await self._load(project_id)
        pending = [user for user in project_db.pending_members if user.id == user_id]
        if not pending:
            raise NotFoundError("Request not found (or user already removed)")
        project_db.pending_members = [
            user for user in project_db.pending_members if user.id != user_id
        ]
        if accept and all(user.id != user_id for user in project_db.members):
            project_db.members.append(pending[0])
        return await self._commit(project_db)

    async def delete_project(self, project_id: str) -> None:
        project_db = await self._load(project_id)
        await self.session.execute(
            delete(ProjectMessageDB).where(ProjectMessageDB.project_id == project_id)
        )
        await self.session.execute(
            delete(ProjectSessionDB).where(ProjectSessionDB.project_id == project_id)
        )
        await self.session.delete(project_db)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to delete project '{project_id}': {exc}") from exc
