"""
StreamScene Gateway - Edge Request Pipeline

This is the layer that sits in front of every route handler and decides:
- How the request protocol is normalized behind proxies (cf-visitor, X-Forwarded-*)
- Whether the declared Origin may read the response (CORS)
- Which server-side session and identity belong to the request
- Which handler serves it: API route, static asset or SPA shell

The gateway does NOT implement business routes - domain routers are mounted
at fixed prefixes and tried in priority order.
"""

from .config import GatewayConfig, Settings, load_config
from .routing import Gateway, GatewayBuilder, RouteBinding, RouteTable, RouteTier
from .server import create_app, run, serve

__all__ = [
    "Gateway",
    "GatewayBuilder",
    "GatewayConfig",
    "RouteBinding",
    "RouteTable",
    "RouteTier",
    "Settings",
    "create_app",
    "load_config",
    "run",
    "serve",
]
