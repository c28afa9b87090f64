from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import PermissionDeniedError
from devfusion.models.api import FileSearchHit, SearchResults, SessionStats
from devfusion.models.chat import ChatMessage
from devfusion.models.project import Project
from devfusion.models.user import User
from devfusion.repositories.message_repository import MessageRepository
from devfusion.repositories.project_repository import ProjectRepository
from devfusion.repositories.session_repository import SessionRepository
from devfusion.tools.clock import Clock, utcnow
from devfusion.tools.file_tree import iter_file_tree, merge_file_trees, validate_file_tree

logger = logging.getLogger(__name__)

SearchType = Literal["file", "chat", "all"]


class ProjectService:
    """Coordinator for project operations requested over REST."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.repository = ProjectRepository(session)
        self.messages = MessageRepository(session)
        self.sessions = SessionRepository(session)
        self.clock = clock

    @staticmethod
    def _require_member(project: Project, user: User) -> None:
        if not (user.is_admin or project.has_member(user.id)):
            raise PermissionDeniedError("You are not a member of this project")

    @staticmethod
    def _require_owner(project: Project, user: User) -> None:
        if not (user.is_admin or project.owner_id == user.id):
            raise PermissionDeniedError("Only the project owner can do this")

    async def create_project(self, name: str, user: User) -> Project:
        project = await self.repository.create_project(name=name.strip(), owner_id=user.id)
        logger.info("Project %s created by %s", project.id, user.id)
        return project

    async def list_user_projects(self, user: User) -> list[Project]:
        return await self.repository.list_user_projects(user.id)

    async def get_project(self, project_id: str, user: User) -> Project:
        project = await self.repository.get_project(project_id)
        self._require_member(project, user)
        return project

    async def delete_project(self, project_id: str, user: User) -> None:
        project = await self.repository.get_project(project_id)
        self._require_owner(project, user)
        await self.repository.delete_project(project_id)
        logger.info("Project %s deleted by %s", project_id, user.id)

    async def add_users(self, project_id: str, user_ids: list[str], user: User) -> Project:
        await self.get_project(project_id, user)
        return await self.repository.add_members(project_id, user_ids)

    async def remove_user(self, project_id: str, user_id: str, user: User) -> Project:
        project = await self.repository.get_project(project_id)
        self._require_owner(project, user)
        return await self.repository.remove_member(project_id, user_id)

    async def request_to_join(self, project_id: str, user: User) -> Project:
        return await self.repository.add_pending_member(project_id, user.id)

    async def decide_join_request(self, project_id: str, user_id: str, *, accept: bool, user: User) -> Project:
        project = await self.repository.get_project(project_id)
        self._require_owner(project, user)
        return await self.repository.resolve_pending_member(project_id, user_id, accept=accept)

    async def replace_file_tree(self, project_id: str, file_tree: dict[str, Any], user: User) -> Project:
        await self.get_project(project_id, user)
        return await self.repository.update_file_tree(project_id, validate_file_tree(file_tree))

    async def patch_file_tree(self, project_id: str, patch: dict[str, Any], user: User) -> Project:
        """Merge *patch* into the stored tree and persist the single merged result."""
        project = await self.get_project(project_id, user)
        merged = merge_file_trees(project.file_tree, validate_file_tree(patch), now=self.clock())
        return await self.repository.update_file_tree(project_id, merged)

    async def list_messages(self, project_id: str, user: User) -> list[ChatMessage]:
        await self.get_project(project_id, user)
        return await self.messages.list_by_project(project_id)

    async def get_stats(self, project_id: str, user: User) -> dict[str, SessionStats]:
        await self.get_project(project_id, user)
        raw = await self.sessions.stats_by_email(project_id)
        return {
            email: SessionStats(logins=int(values["logins"]), totalDuration=values["totalDuration"])
            for email, values in raw.items()
        }

    async def search(
        self,
        project_id: str,
        user: User,
        *,
        query: str | None = None,
        search_type: SearchType = "all",
        day: date | None = None,
    ) -> SearchResults:
        project = await self.get_project(project_id, user)
        results = SearchResults()
        needle = (query or "").lower()

        if search_type in ("file", "all") and needle:
            for path, name, node in iter_file_tree(project.file_tree):
                if needle in name.lower():
                    results.files.append(
                        FileSearchHit(name=name, path=path, type="file" if "file" in node else "directory")
                    )

        if search_type in ("chat", "all") and (needle or day):
            start = end = None
            if day is not None:
                start = datetime.combine(day, time.min, tzinfo=UTC)
                end = start + timedelta(days=1) - timedelta(microseconds=1)
            results.chats = await self.messages.search(project_id, query=needle or None, start=start, end=end)

        return results
