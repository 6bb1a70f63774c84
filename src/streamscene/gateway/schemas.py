"""Pydantic schemas for gateway responses."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ServerStatus(BaseModel):
    """Liveness acknowledgment."""
    message: str = "Server is working!"


class ErrorResponse(BaseModel):
    """Structured error body."""
    error: str


class SessionUserResponse(BaseModel):
    """Identity attached to the current session."""
    id: UUID
    email: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionStatusResponse(BaseModel):
    """Authentication state of the current request."""
    authenticated: bool
    user: Optional[SessionUserResponse] = None


class MessageResponse(BaseModel):
    message: str
