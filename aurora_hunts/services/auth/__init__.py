"""
Authentication service package.

Usage:
    from aurora_hunts.services.auth import get_auth_provider
    from aurora_hunts.services.auth.dependencies import get_current_user

    @router.post("/hunts/{hunt_id}/join")
    async def join(hunt_id: int, user: User = Depends(get_current_user)):
        ...
"""
from aurora_hunts.services.auth.base import AuthProvider
from aurora_hunts.services.auth.local_provider import local_auth_provider


def get_auth_provider() -> AuthProvider:
    """Return the configured auth provider."""
    return local_auth_provider


__all__ = [
    "AuthProvider",
    "get_auth_provider",
    "local_auth_provider",
]
