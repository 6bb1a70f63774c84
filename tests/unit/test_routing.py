"""Unit tests for the route priority table."""

import pytest
from fastapi import APIRouter
from starlette.routing import Match

from streamscene.gateway.core.exceptions import RouteConflictError
from streamscene.gateway.routes import default_bindings
from streamscene.gateway.routes.domains import API_DOMAINS
from streamscene.gateway.routing import (
    GatewayBuilder,
    RouteBinding,
    RouteTable,
    RouteTier,
    owns_path,
)


def router_with(*paths, methods=("GET",)):
    router = APIRouter()
    for path in paths:
        router.add_api_route(path, lambda: {"ok": True}, methods=list(methods))
    return router


# ============================================================================
# Prefix ownership
# ============================================================================

@pytest.mark.parametrize(
    "prefix,path,expected",
    [
        ("/api/ai", "/api/ai", True),
        ("/api/ai", "/api/ai/generate", True),
        ("/api/ai", "/api/aix", False),
        ("/api/ai", "/api/files/x", False),
        ("/", "/anything", True),
    ],
)
def test_owns_path(prefix, path, expected):
    assert owns_path(prefix, path) is expected


def test_binding_match_levels():
    binding = RouteBinding("/api/ai", router_with("/generate", methods=("POST",)))

    assert binding.match("/api/ai/generate", "POST") == Match.FULL
    assert binding.match("/api/ai/generate", "GET") == Match.PARTIAL
    assert binding.match("/api/ai/other", "POST") == Match.NONE
    assert binding.match("/api/files/generate", "POST") == Match.NONE


# ============================================================================
# Builder
# ============================================================================

def test_builder_keeps_registration_order():
    gateway = (
        GatewayBuilder()
        .auth("/auth", router_with("/session"))
        .route("/", router_with("/health"))
        .api("/api/ai", router_with("/generate"))
        .api("/api/files", router_with("/list"))
        .build()
    )

    assert gateway.routes.prefixes == ("/auth", "/", "/api/ai", "/api/files")
    assert [binding.tier for binding in gateway.routes] == [
        RouteTier.AUTH,
        RouteTier.GENERAL,
        RouteTier.API,
        RouteTier.API,
    ]


def test_builder_rejects_auth_after_api():
    builder = GatewayBuilder().api("/api/ai", router_with("/generate"))

    with pytest.raises(RouteConflictError) as exc_info:
        builder.auth("/auth", router_with("/session"))

    assert exc_info.value.prefix == "/auth"
    assert "before" in exc_info.value.message


def test_builder_rejects_duplicate_prefix():
    builder = GatewayBuilder().api("/api/ai", router_with("/generate"))

    with pytest.raises(RouteConflictError):
        builder.api("/api/ai/", router_with("/other"))


def test_builder_rejects_relative_prefix():
    with pytest.raises(RouteConflictError):
        GatewayBuilder().api("api/ai", router_with("/generate"))


def test_builder_records_middleware_in_order():
    class First:
        pass

    class Second:
        pass

    gateway = GatewayBuilder().use(First, flag=True).use(Second).build()

    assert [spec.cls for spec in gateway.middleware] == [First, Second]
    assert gateway.middleware[0].options == {"flag": True}


def test_default_bindings_order():
    bindings = default_bindings()

    assert [binding.prefix for binding in bindings[:3]] == ["/auth", "/social", "/"]
    assert [binding.prefix for binding in bindings[3:]] == [prefix for prefix, _ in API_DOMAINS]
    # Valid as a table
    GatewayBuilder().extend(bindings).build()


def test_default_bindings_overrides():
    ai_router = router_with("/generate")
    bindings = default_bindings(overrides={"/api/ai": ai_router})

    assert next(b for b in bindings if b.prefix == "/api/ai").router is ai_router


# ============================================================================
# Resolution
# ============================================================================

def table() -> RouteTable:
    return (
        GatewayBuilder()
        .auth("/auth", router_with("/session", "/logout"))
        .route("/", router_with("/echo/request"))
        .api("/api/ai", router_with("/generate", methods=("POST",)))
        .api("/api/files", router_with("/list"))
        .build()
        .routes
    )


def test_resolve_first_match_wins():
    routes = table()

    assert routes.resolve("/auth/session").prefix == "/auth"
    assert routes.resolve("/echo/request").prefix == "/"
    assert routes.resolve("/api/ai/generate", "POST").prefix == "/api/ai"
    assert routes.resolve("/api/files/list").prefix == "/api/files"


def test_general_binding_only_claims_its_routes():
    routes = table()

    assert routes.resolve("/dashboard") is None
    assert routes.resolve("/api/unknown") is None


def test_method_mismatch_still_claims_path():
    assert table().resolve("/api/ai/generate", "GET").prefix == "/api/ai"


def test_table_len():
    assert len(table()) == 4


# ============================================================================
# Through the application
# ============================================================================

@pytest.mark.asyncio
async def test_api_route_beats_static_file(client, public_dir):
    """A file under public/ never shadows a bound handler."""
    shadow = public_dir / "api" / "ai"
    shadow.mkdir(parents=True)
    (shadow / "generate").write_text("static")

    response = await client.get("/api/ai/generate")

    assert response.status_code == 200
    assert response.json() == {"handler": "ai", "action": "status"}


@pytest.mark.asyncio
async def test_api_handler_serves_post(client):
    response = await client.post("/api/ai/generate")

    assert response.json() == {"handler": "ai", "action": "generate"}


@pytest.mark.asyncio
async def test_general_routes_served(client):
    response = await client.get("/echo/request")

    assert response.status_code == 200
    assert response.json()["authenticated"] is False


@pytest.mark.asyncio
async def test_wrong_method_on_bound_route_is_405(client):
    response = await client.put("/api/ai/generate")

    assert response.status_code == 405


def test_get_routes_answer_head():
    binding = RouteBinding("/auth", router_with("/session"))

    assert binding.match("/auth/session", "HEAD") == Match.FULL
    assert binding.match("/auth/session", "POST") == Match.PARTIAL


@pytest.mark.asyncio
async def test_head_on_bound_get_route(client):
    response = await client.head("/echo/request")

    assert response.status_code == 200
