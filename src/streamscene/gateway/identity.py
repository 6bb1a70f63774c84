"""Identity middleware and dependencies.

Turns the identity reference carried by a session into ``request.state.user``.
It never blocks a request: handlers decide whether they need a user via
``require_user``.
"""

from typing import Any, Awaitable, Callable, Optional

from fastapi import HTTPException, Request, status
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .database import Database, User
from .repositories import UserRepository
from .sessions import get_session

# Looks up the user behind a session reference; None when it no longer exists
UserResolver = Callable[[str], Awaitable[Optional[Any]]]


class DatabaseUserResolver:
    """Resolve session identity references against the users table."""

    def __init__(self, database: Database):
        self.database = database

    async def __call__(self, reference: str) -> Optional[Any]:
        async with self.database.session() as session:
            repository = UserRepository(User, session)
            return await repository.get_by_session_reference(reference)


class IdentityMiddleware(BaseHTTPMiddleware):
    """Attach the session's user to the request, or mark it unauthenticated."""

    def __init__(self, app, resolve_user: UserResolver):
        super().__init__(app)
        self.resolve_user = resolve_user

    async def authenticate(self, request: Request) -> None:
        request.state.user = None
        request.state.authenticated = False

        session = get_session(request)
        reference = session.user_id
        request.state.user_id = reference
        if not reference:
            return

        try:
            user = await self.resolve_user(reference)
        except Exception:
            # Possibly transient: keep the identity on the session
            logger.exception(f"Could not resolve session identity {reference}")
            return

        if user is None:
            # User was deleted while the session was alive
            logger.info(f"Session identity {reference} no longer resolves, clearing it")
            session.user_id = None
            request.state.user_id = None
            return

        request.state.user = user
        request.state.authenticated = True

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        await self.authenticate(request)
        return await call_next(request)


def current_user(request: Request) -> Optional[Any]:
    """Dependency: the authenticated user, or None."""
    return getattr(request.state, "user", None)


def require_user(request: Request) -> Any:
    """Dependency: the authenticated user; 401 when there is none."""
    user = current_user(request)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user
