from __future__ import annotations

from http.cookies import CookieError, SimpleCookie
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from devfusion.database import get_db
from devfusion.exceptions import AuthenticationError
from devfusion.models.user import User
from devfusion.services.ai_service import AIService
from devfusion.services.assistant_service import AssistantService
from devfusion.services.auth_service import AuthService
from devfusion.services.project_service import ProjectService
from devfusion.services.rate_limiter import AIRateLimiter

AsyncDBSession = Annotated[AsyncSession, Depends(get_db)]

TOKEN_COOKIE_KEYS = ("token", "access_token")


def _extract_token_from_request(
    authorization: str | None = None,
    cookie: str | None = None,
    token_param: str | None = None,
) -> str | None:
    """Extract JWT token from Authorization header, cookie, or query parameter."""

    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    if token_param:
        return token_param

    if not cookie:
        return None

    try:
        jar = SimpleCookie()
        jar.load(cookie)
    except CookieError:
        return None

    for key in TOKEN_COOKIE_KEYS:
        if key in jar:
            return jar[key].value
    return None


def get_auth_service(connection: HTTPConnection) -> AuthService:
    return connection.app.state.auth_service


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


async def get_current_user(
    request: Request,
    db: AsyncDBSession,
    auth: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
    token: Annotated[str | None, Query()] = None,
) -> User:
    """Resolve the caller from a bearer token, cookie, or query parameter."""

    token_value = _extract_token_from_request(
        authorization=authorization,
        cookie=request.headers.get("cookie", ""),
        token_param=token,
    )

    if not token_value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Provide token via Authorization header, cookie, or query parameter.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await auth.get_user_from_token(token_value, db)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_rate_limiter(connection: HTTPConnection) -> AIRateLimiter:
    return connection.app.state.rate_limiter


def get_ai_service(connection: HTTPConnection) -> AIService:
    return connection.app.state.ai_service


def get_project_service(db: AsyncDBSession) -> ProjectService:
    return ProjectService(db)


def get_assistant_service(
    db: AsyncDBSession,
    ai_service: Annotated[AIService, Depends(get_ai_service)],
    rate_limiter: Annotated[AIRateLimiter, Depends(get_rate_limiter)],
) -> AssistantService:
    return AssistantService(db, ai_service, rate_limiter)


ProjectServiceDep = Annotated[ProjectService, Depends(get_project_service)]
AssistantServiceDep = Annotated[AssistantService, Depends(get_assistant_service)]
