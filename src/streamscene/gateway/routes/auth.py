"""Session-facing authentication endpoints.

Login strategies (password, OAuth) live in their own packages and call
``login_user``; this router only reports and ends the session.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..identity import current_user, require_user
from ..schemas import MessageResponse, SessionStatusResponse, SessionUserResponse
from ..sessions import logout_user

router = APIRouter(tags=["auth"])


@router.get("/session", response_model=SessionStatusResponse)
async def session_status(user: Any = Depends(current_user)):
    """Report whether the request carries an authenticated session."""
    if user is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(
        authenticated=True,
        user=SessionUserResponse.model_validate(user),
    )


@router.get("/user", response_model=SessionUserResponse)
async def get_user(user: Any = Depends(require_user)):
    """Get the user attached to the session."""
    return SessionUserResponse.model_validate(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request):
    """Destroy the session and clear its cookie."""
    logout_user(request)
    return MessageResponse(message="Logged out")
