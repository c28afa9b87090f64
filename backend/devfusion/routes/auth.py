from __future__ import annotations

from fastapi import APIRouter

from devfusion.dependencies import AsyncDBSession, CurrentUser
from devfusion.models.api import PreferencesUpdateRequest, UserResponse
from devfusion.models.user import User
from devfusion.repositories.user_repository import UserRepository, preferences_of

router = APIRouter(prefix="/auth", tags=["auth"])


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        is_admin=user.is_admin,
        preferences=preferences_of(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: CurrentUser) -> UserResponse:
    """Get current authenticated user information."""
    return _to_response(current_user)


@router.put("/me/preferences", response_model=UserResponse)
async def update_preferences(
    payload: PreferencesUpdateRequest,
    current_user: CurrentUser,
    db: AsyncDBSession,
) -> UserResponse:
    user = await UserRepository(db).update_preferences(current_user, **payload.model_dump())
    return _to_response(user)
