from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qs

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devfusion.exceptions import AuthenticationError, PersistenceError
from devfusion.models.chat import Identity
from devfusion.models.project import Project
from devfusion.repositories.project_repository import ProjectNotFoundError, ProjectRepository
from devfusion.services.auth_service import AuthService


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(slots=True)
class ConnectionContext:
    """State bound to one realtime connection for its lifetime."""

    sid: str
    identity: Identity
    project: Project
    state: ConnectionState = ConnectionState.CONNECTING
    session_id: str | None = None

    @property
    def room(self) -> str:
        return self.project.id


def extract_handshake_token(environ: dict[str, Any], auth: Any) -> str | None:
    """Bearer token from the handshake auth payload or the Authorization header."""

    if isinstance(auth, dict):
        token = auth.get("token")
        if isinstance(token, str) and token:
            return token

    authorization = environ.get("HTTP_AUTHORIZATION")
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    return None


def extract_project_id(environ: dict[str, Any]) -> str | None:
    values = parse_qs(environ.get("QUERY_STRING", "")).get("projectId")
    return values[0] if values and values[0] else None


class ConnectionGateway:
    """Authorizes a realtime handshake against a token and a project."""

    def __init__(self, auth_service: AuthService, session_factory: async_sessionmaker[AsyncSession]):
        self.auth_service = auth_service
        self.session_factory = session_factory

    async def authorize(self, sid: str, environ: dict[str, Any], auth: Any = None) -> ConnectionContext:
        token = extract_handshake_token(environ, auth)
        if not token:
            raise AuthenticationError("Authentication error")

        project_id = extract_project_id(environ)
        if not project_id:
            raise AuthenticationError("Project id missing from handshake")

        identity = self.auth_service.verify(token)

        try:
            async with self.session_factory() as session:
                project = await ProjectRepository(session).find_by_id(project_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load project '{project_id}': {exc}") from exc
        if project is None:
            raise ProjectNotFoundError(project_id)

        return ConnectionContext(sid=sid, identity=identity, project=project)
