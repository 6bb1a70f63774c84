"""Server-side sessions keyed by a signed cookie.

The cookie carries only an opaque, signed session id; the record lives in a
session store (in-memory for development, Redis in deployments).

Semantics:
- A fresh session is only stored (and its cookie issued) once written to.
- Loaded sessions that were not modified are not written back.
- Expiry is fixed 24 hours after creation; reads do not extend it.
- Secure cookies are only issued on requests whose effective scheme is https.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

import redis.asyncio as redis
from itsdangerous import BadSignature, Signer
from loguru import logger
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .config import CookiePolicy, GatewayConfig
from .core.exceptions import SessionStoreError

PREFIX_SESSION = "session:"
SIGNER_SALT = "streamscene.session"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionRecord(BaseModel):
    """Server-side session state."""

    id: str = Field(default_factory=new_session_id)
    created_at: datetime = Field(default_factory=_now)
    expires_at: datetime
    user_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def issue(cls, ttl_seconds: int) -> "SessionRecord":
        created = _now()
        return cls(created_at=created, expires_at=created + timedelta(seconds=ttl_seconds))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _now()) >= self.expires_at

    def remaining_seconds(self) -> int:
        return max(0, int((self.expires_at - _now()).total_seconds()))


# =============================================================================
# Stores
# =============================================================================


class SessionStore(Protocol):
    """Storage backend for session records."""

    async def get(self, session_id: str) -> Optional[SessionRecord]: ...

    async def set(self, record: SessionRecord) -> None: ...

    async def destroy(self, session_id: str) -> None: ...

    async def close(self) -> None: ...


class MemorySessionStore:
    """Process-local session store (development and tests)."""

    def __init__(self):
        self._records: dict[str, SessionRecord] = {}

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        record = self._records.get(session_id)
        if record is None:
            return None
        if record.is_expired():
            self._records.pop(session_id, None)
            return None
        return record.model_copy(deep=True)

    async def set(self, record: SessionRecord) -> None:
        self.sweep()
        self._records[record.id] = record.model_copy(deep=True)

    async def destroy(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    async def close(self) -> None:
        self._records.clear()

    def sweep(self) -> int:
        """Drop expired records; returns how many were removed."""
        now = _now()
        expired = [key for key, record in self._records.items() if record.is_expired(now)]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RedisSessionStore:
    """Redis-backed session store; records expire with the session TTL."""

    def __init__(self, client):
        self.redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisSessionStore":
        return cls(redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        try:
            raw = await self.redis.get(PREFIX_SESSION + session_id)
        except redis.RedisError as e:
            raise SessionStoreError("get", str(e)) from e
        if raw is None:
            return None
        try:
            record = SessionRecord.model_validate_json(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable session record {session_id[:8]}...")
            return None
        return None if record.is_expired() else record

    async def set(self, record: SessionRecord) -> None:
        ttl = record.remaining_seconds()
        if ttl <= 0:
            await self.destroy(record.id)
            return
        try:
            await self.redis.setex(PREFIX_SESSION + record.id, ttl, record.model_dump_json())
        except redis.RedisError as e:
            raise SessionStoreError("set", str(e)) from e

    async def destroy(self, session_id: str) -> None:
        try:
            await self.redis.delete(PREFIX_SESSION + session_id)
        except redis.RedisError as e:
            raise SessionStoreError("destroy", str(e)) from e

    async def close(self) -> None:
        await self.redis.aclose()


def create_session_store(url: Optional[str]) -> SessionStore:
    """In-memory store unless a Redis URL is configured."""
    if url:
        logger.info("Using Redis session store")
        return RedisSessionStore.from_url(url)
    return MemorySessionStore()


# =============================================================================
# Session handle
# =============================================================================


class Session:
    """Mutable view of a session record for the lifetime of one request."""

    def __init__(self, record: SessionRecord, *, is_new: bool):
        self.record = record
        self.is_new = is_new
        self.modified = False
        self.destroyed = False
        self.previous_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def user_id(self) -> Optional[str]:
        return self.record.user_id

    @user_id.setter
    def user_id(self, value: Optional[str]) -> None:
        self.record.user_id = value
        self.modified = True

    def __getitem__(self, key: str) -> Any:
        return self.record.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.record.data[key] = value
        self.modified = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.record.data.get(key, default)

    def regenerate(self) -> None:
        """Move the session to a fresh id and expiry, dropping all data."""
        if not self.is_new and self.previous_id is None:
            self.previous_id = self.record.id
        ttl = int((self.record.expires_at - self.record.created_at).total_seconds())
        self.record = SessionRecord.issue(ttl)
        self.is_new = True
        self.modified = True

    def destroy(self) -> None:
        self.destroyed = True


# =============================================================================
# Middleware
# =============================================================================


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Load the session named by the cookie and persist it after the handler.

    Cookie attributes come from the environment's CookiePolicy and are fixed
    when the middleware is constructed.
    """

    def __init__(
        self,
        app,
        store: SessionStore,
        secret: str,
        cookie_name: str = "connect.sid",
        policy: Optional[CookiePolicy] = None,
    ):
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name
        self.policy = policy or CookiePolicy.for_environment(False)
        self.signer = Signer(secret, salt=SIGNER_SALT)

    @classmethod
    def options(cls, config: GatewayConfig, store: SessionStore) -> dict[str, Any]:
        """Keyword arguments for ``app.add_middleware(SessionMiddleware, ...)``."""
        return {
            "store": store,
            "secret": config.session_secret,
            "cookie_name": config.cookie_name,
            "policy": config.cookie_policy,
        }

    def sign(self, session_id: str) -> str:
        return self.signer.sign(session_id).decode("utf-8")

    def unsign(self, cookie_value: str) -> Optional[str]:
        try:
            return self.signer.unsign(cookie_value).decode("utf-8")
        except BadSignature:
            return None

    async def load(self, request: Request) -> Session:
        cookie_value = request.cookies.get(self.cookie_name)
        if cookie_value:
            session_id = self.unsign(cookie_value)
            if session_id is not None:
                record = await self.store.get(session_id)
                if record is not None:
                    return Session(record, is_new=False)
        return Session(SessionRecord.issue(self.policy.max_age), is_new=True)

    async def commit(self, request: Request, response: Response, session: Session) -> None:
        if session.previous_id is not None:
            await self.store.destroy(session.previous_id)

        if session.destroyed:
            if not session.is_new:
                await self.store.destroy(session.id)
            self._clear_cookie(response)
            return

        if not session.modified:
            return

        await self.store.set(session.record)
        self._set_cookie(request, response, session)

    def _set_cookie(self, request: Request, response: Response, session: Session) -> None:
        if self.policy.secure and request.url.scheme != "https":
            logger.debug("Not issuing secure session cookie over insecure connection")
            return
        response.set_cookie(
            self.cookie_name,
            self.sign(session.id),
            max_age=session.record.remaining_seconds(),
            path=self.policy.path,
            secure=self.policy.secure,
            httponly=self.policy.http_only,
            samesite=self.policy.same_site,
        )

    def _clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            self.cookie_name,
            path=self.policy.path,
            secure=self.policy.secure,
            httponly=self.policy.http_only,
            samesite=self.policy.same_site,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        session = await self.load(request)
        request.state.session = session
        response = await call_next(request)
        await self.commit(request, response, session)
        return response


# =============================================================================
# Helpers for route handlers
# =============================================================================


def get_session(request: Request) -> Session:
    """Return the request's session (requires SessionMiddleware)."""
    session = getattr(request.state, "session", None)
    if session is None:
        raise LookupError("No active session. Ensure SessionMiddleware is installed.")
    return session


def login_user(request: Request, user_id: Any) -> Session:
    """Attach an identity to the session, rotating the session id first."""
    session = get_session(request)
    session.regenerate()
    session.user_id = str(user_id)
    request.state.user_id = str(user_id)
    return session


def logout_user(request: Request) -> None:
    """Destroy the session and clear the request identity."""
    get_session(request).destroy()
    request.state.user = None
    request.state.user_id = None
    request.state.authenticated = False
