from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.ext.asyncio import AsyncSession

from devfusion.exceptions import AuthenticationError
from devfusion.models.chat import Identity
from devfusion.models.user import User
from devfusion.repositories.user_repository import UserRepository


class AuthService:
    """Issues and verifies the signed access tokens shared by REST and Socket.IO."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expires_hours: int = 24):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_hours = expires_hours

    def issue_token(self, user_id: str, email: str, *, expires_in: timedelta | None = None) -> str:
        expires_at = datetime.now(UTC) + (expires_in or timedelta(hours=self.expires_hours))
        return jwt.encode(
            {"id": user_id, "email": email, "exp": expires_at},
            self.secret_key,
            algorithm=self.algorithm,
        )

    def verify(self, token: str) -> Identity:
        """Verify signature and expiry of *token* and return its identity claims."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except InvalidTokenError as exc:
            raise AuthenticationError(f"Invalid token: {exc}") from exc

        user_id = payload.get("id") or payload.get("_id") or payload.get("sub")
        if not user_id:
            raise AuthenticationError("Token missing user ID")
        return Identity(id=str(user_id), email=payload.get("email"))

    async def get_user_from_token(self, token: str, db: AsyncSession) -> User:
        """Get user from token, creating user if not exists."""
        identity = self.verify(token)
        return await UserRepository(db).get_or_create(identity)

