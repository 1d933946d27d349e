"""Abstract base class for authentication providers."""
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session as DBSession

from aurora_hunts.models.user import User


class AuthProvider(ABC):
    """
    Abstract authentication provider interface.

    Routes depend on this interface only, so the local password provider
    can be swapped for an external identity provider.
    """

    @abstractmethod
    async def authenticate(self, db: DBSession, email: str, password: str) -> Optional[User]:
        """Return the User if the credentials are valid, None otherwise."""
        pass

    @abstractmethod
    async def create_user(
        self,
        db: DBSession,
        email: str,
        password: str,
        name: Optional[str] = None,
        is_admin: bool = False,
    ) -> User:
        """Create a new user with the given credentials."""
        pass

    @abstractmethod
    async def get_user_from_request(self, db: DBSession, request: Request) -> Optional[User]:
        """Extract and validate the user from the request (session cookie)."""
        pass

    @abstractmethod
    async def create_session(self, db: DBSession, user: User, request: Request) -> str:
        """Create a new session and return the token to store in the cookie."""
        pass

    @abstractmethod
    async def revoke_session(self, db: DBSession, token: str) -> bool:
        """Invalidate a session. Returns False if it did not exist."""
        pass
