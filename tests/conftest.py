"""Pytest configuration and shared fixtures."""

from datetime import datetime
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import APIRouter, Request
from httpx import ASGITransport, AsyncClient
from loguru import logger

from streamscene.gateway.config import CookiePolicy, GatewayConfig, build_trusted_origins
from streamscene.gateway.routes import auth_router, default_bindings
from streamscene.gateway.server import build_gateway, create_app
from streamscene.gateway.sessions import MemorySessionStore, get_session, login_user

TEST_SECRET = "test-session-secret"
CLIENT_URL = "https://app.streamscene.net"

INDEX_HTML = "<!doctype html><html><body><div id=\"root\"></div></body></html>"


# ============================================================================
# Configuration
# ============================================================================

@pytest.fixture
def public_dir(tmp_path):
    """Public directory with an SPA entry document and one asset."""
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "index.html").write_text(INDEX_HTML)
    (directory / "app.js").write_text("console.log('streamscene');")
    return directory


@pytest.fixture
def make_config(public_dir):
    """Factory for GatewayConfig instances."""
    def _factory(production: bool = False, **overrides) -> GatewayConfig:
        values = dict(
            production=production,
            host="0.0.0.0",
            port=8000,
            trusted_origins=build_trusted_origins(CLIENT_URL, None),
            session_secret=TEST_SECRET,
            cookie_name="connect.sid",
            cookie_policy=CookiePolicy.for_environment(production),
            public_dir=public_dir,
            trust_proxy_hops=1,
        )
        values.update(overrides)
        return GatewayConfig(**values)
    return _factory


# ============================================================================
# Identity
# ============================================================================

@pytest.fixture
def users():
    """In-memory users keyed by the session identity reference."""
    user = SimpleNamespace(
        id=uuid4(),
        email="viewer@streamscene.net",
        display_name="Viewer",
        created_at=datetime(2026, 1, 1),
    )
    return {str(user.id): user}


@pytest.fixture
def resolve_user(users):
    async def _resolve(reference: str):
        return users.get(reference)
    return _resolve


# ============================================================================
# Routers
# ============================================================================

def build_auth_router() -> APIRouter:
    """Session endpoints plus a login route standing in for a login strategy."""
    router = APIRouter()
    router.include_router(auth_router)

    @router.post("/login/{user_id}")
    async def login(user_id: str, request: Request):
        login_user(request, user_id)
        return {"logged_in": user_id}

    @router.post("/visit")
    async def visit(request: Request):
        session = get_session(request)
        session["visits"] = session.get("visits", 0) + 1
        return {"visits": session["visits"]}

    return router


def build_general_router() -> APIRouter:
    """General routes that echo what the pipeline resolved."""
    router = APIRouter()

    @router.get("/echo/request")
    async def echo_request(request: Request):
        return {
            "scheme": request.url.scheme,
            "client": request.client.host if request.client else None,
            "forwarded_proto": request.headers.get("x-forwarded-proto"),
            "authenticated": request.state.authenticated,
        }

    return router


def build_ai_router() -> APIRouter:
    router = APIRouter()

    @router.post("/generate")
    async def generate():
        return {"handler": "ai", "action": "generate"}

    @router.get("/generate")
    async def generate_status():
        return {"handler": "ai", "action": "status"}

    return router


@pytest.fixture
def bindings():
    return default_bindings(
        overrides={
            "/auth": build_auth_router(),
            "/": build_general_router(),
            "/api/ai": build_ai_router(),
        }
    )


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def make_app(make_config, session_store, resolve_user, bindings):
    """Factory for gateway applications wired with test collaborators."""
    def _factory(production: bool = False, **overrides):
        config = make_config(production, **overrides)
        gateway = build_gateway(config, session_store, resolve_user, bindings)
        return create_app(config, gateway=gateway)
    return _factory


@pytest.fixture
def make_client(make_app):
    """Factory for async HTTP clients bound to a gateway application."""
    def _factory(production: bool = False, base_url: str = "http://test", **overrides):
        transport = ASGITransport(app=make_app(production, **overrides))
        return AsyncClient(transport=transport, base_url=base_url)

    return _factory


@pytest.fixture
async def client(make_client):
    """Development-mode client."""
    async with make_client() as ac:
        yield ac


@pytest.fixture
async def prod_client(make_client):
    """Production-mode client."""
    async with make_client(production=True) as ac:
        yield ac


# ============================================================================
# Test Utilities
# ============================================================================

@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


def parse_set_cookie(header: str) -> dict[str, str]:
    """Split a Set-Cookie header into lower-cased attributes (value under 'value')."""
    parts = [part.strip() for part in header.split(";")]
    name, _, value = parts[0].partition("=")
    attributes = {"name": name, "value": value}
    for part in parts[1:]:
        key, _, attr_value = part.partition("=")
        attributes[key.lower()] = attr_value or "true"
    return attributes


@pytest.fixture
def session_cookie():
    """Return the parsed session Set-Cookie of a response, or None."""
    def _read(response, name: str = "connect.sid"):
        for header in response.headers.get_list("set-cookie"):
            attributes = parse_set_cookie(header)
            if attributes["name"] == name:
                return attributes
        return None
    return _read
