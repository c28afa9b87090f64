from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import AuthenticationError
from devfusion.models.chat import Identity, UserPreferences
from devfusion.models.user import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def get_or_create(self, identity: Identity) -> User:
        """Load the user behind *identity*, provisioning it from the claims."""

        user = await self.get(identity.id)
        if user:
            return user
        if not identity.email:
            raise AuthenticationError("Token missing email")
        user = User(id=identity.id, email=identity.email.lower())
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        user = await self.get(user_id)
        if user is None:
            return None
        return preferences_of(user)

    async def update_preferences(self, user: User, **changes: str | None) -> User:
        for key, value in changes.items():
            if value is not None:
                setattr(user, key, value)
        await self.session.commit()
        await self.session.refresh(user)
        return user


def preferences_of(user: User) -> UserPreferences:
    return UserPreferences(
        preferred_stack=user.preferred_stack,
        code_style=user.code_style,
        language=user.language,
    )
