"""
Identity context for collaboration operations.

Authentication itself happens upstream; this module only answers
"who is acting?" and rejects anonymous actors.
"""

from __future__ import annotations

from typing import Optional, Protocol

from fastapi import Header

from taskmarket.core.errors import Unauthenticated


class AuthContext(Protocol):
    def current_user_id(self) -> Optional[str]: ...


class StaticAuthContext:
    """Auth context bound to a fixed user id (or to nobody)."""

    def __init__(self, user_id: Optional[str]):
        self._user_id = user_id or None

    def current_user_id(self) -> Optional[str]:
        return self._user_id


def require_user(auth: AuthContext) -> str:
    user_id = auth.current_user_id()
    if not user_id:
        raise Unauthenticated("Sign in required")
    return user_id


async def get_auth_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> AuthContext:
    """FastAPI dependency: identity forwarded by the authenticating proxy."""
    return StaticAuthContext(x_user_id)
