"""
StreamScene Gateway - Main Server

Pipeline, in request order:
- Proxy header normalization (cf-visitor, trust-proxy depth)
- Dynamic CORS origin matching
- Server-side session
- Session identity
- Request log (development only)
- Route priority table, liveness route, static assets, SPA fallback

The database readiness step completes before the listener binds; if it
fails the process exits non-zero.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import Callable, Iterable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from .config import GatewayConfig, load_config
from .core.exceptions import GatewayException, StartupError
from .cors import OriginPolicy, OriginTrustMiddleware
from .database import Database
from .fallback import FallbackResolver, PublicAssets
from .identity import DatabaseUserResolver, IdentityMiddleware, UserResolver
from .middleware import RequestLogMiddleware
from .proxy import ProxyHeaderMiddleware
from .routes import default_bindings
from .routing import Gateway, GatewayBuilder, RouteBinding
from .schemas import ErrorResponse, ServerStatus
from .sessions import SessionMiddleware, SessionStore, create_session_store

LIVENESS_PATH = "/test-server"


def _session_store_of(gateway: Gateway) -> Optional[SessionStore]:
    for spec in gateway.middleware:
        if spec.cls is SessionMiddleware:
            return spec.options.get("store")
    return None


def configure_logging(config: GatewayConfig) -> None:
    """Single stderr sink at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)


def build_gateway(
    config: GatewayConfig,
    store: SessionStore,
    resolve_user: UserResolver,
    bindings: Optional[Iterable[RouteBinding]] = None,
) -> Gateway:
    """Assemble the ordered pipeline for this environment."""
    builder = (
        GatewayBuilder()
        .use(ProxyHeaderMiddleware, trust_proxy_hops=config.trust_proxy_hops)
        .use(
            OriginTrustMiddleware,
            policy=OriginPolicy(config.trusted_origins, production=config.production),
        )
        .use(SessionMiddleware, **SessionMiddleware.options(config, store))
        .use(IdentityMiddleware, resolve_user=resolve_user)
    )
    if not config.production:
        builder.use(RequestLogMiddleware)

    builder.extend(default_bindings() if bindings is None else bindings)
    return builder.build()


def create_app(
    config: GatewayConfig,
    *,
    gateway: Optional[Gateway] = None,
    session_store: Optional[SessionStore] = None,
    resolve_user: Optional[UserResolver] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if gateway is None:
        store = session_store
        if store is None:
            store = create_session_store(config.session_store_url)
        if resolve_user is None:
            database = database or Database(config.database_url)
            resolve_user = DatabaseUserResolver(database)
        gateway = build_gateway(config, store, resolve_user)
    else:
        store = session_store
        if store is None:
            store = _session_store_of(gateway)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info("StreamScene gateway started")
        yield
        if store is not None:
            await store.close()
        if database is not None:
            await database.dispose()
        logger.info("StreamScene gateway shutting down")

    app = FastAPI(
        title="StreamScene Gateway",
        description="Edge request gateway for StreamScene",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.gateway = gateway
    app.state.session_store = store

    # Starlette wraps in reverse: the last middleware added sees the request first
    for spec in reversed(gateway.middleware):
        app.add_middleware(spec.cls, **spec.options)

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException):
        logger.error(f"{exc.message} at {request.url.path}: {exc.context}")
        return JSONResponse(
            ErrorResponse(error=exc.message).model_dump(),
            status_code=exc.status_code,
        )

    # Route priority table: first matching binding wins
    for binding in gateway.routes:
        app.include_router(binding.mounted)

    @app.get(LIVENESS_PATH, response_model=ServerStatus, tags=["health"])
    async def test_server():
        """Liveness check, independent of session state."""
        return ServerStatus()

    # Static assets and SPA fallback (must be last)
    resolver = FallbackResolver(config.public_dir, routes=gateway.routes)
    app.mount("/", PublicAssets(resolver), name="public")

    return app


async def serve(
    config: GatewayConfig,
    database: Database,
    *,
    app_factory: Callable[..., FastAPI] = create_app,
    server_factory: Callable[[uvicorn.Config], uvicorn.Server] = uvicorn.Server,
) -> int:
    """
    Initialize the database, then run the listener.

    Returns:
        Process exit code: 1 if the database is not ready (the listener is
        never created), 0 after a graceful shutdown.
    """
    try:
        await database.init()
    except Exception as e:
        logger.error(str(StartupError("database", e)))
        await database.dispose()
        return 1

    app = app_factory(config, database=database)
    server = server_factory(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            proxy_headers=False,
        )
    )

    protocol = "https" if config.production else "http"
    logger.info(f"Server is running at {protocol}://localhost:{config.port}")
    logger.info(f"External access: {protocol}://{config.host}:{config.port}")
    logger.info(f"Environment: {config.environment}")

    await server.serve()
    return 0


def run():
    """Run the server."""
    config = load_config()
    configure_logging(config)
    database = Database(config.database_url)
    sys.exit(asyncio.run(serve(config, database)))


if __name__ == "__main__":
    run()
