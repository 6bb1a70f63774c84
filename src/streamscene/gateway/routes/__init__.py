"""Default route bindings, in priority order."""

from typing import Mapping, Optional

from fastapi import APIRouter

from ..routing import RouteBinding, RouteTier
from .auth import router as auth_router
from .domains import API_DOMAINS, domain_routers, general_router, social_router


def default_bindings(
    overrides: Optional[Mapping[str, APIRouter]] = None,
) -> list[RouteBinding]:
    """
    Bindings for the standard application surface.

    Args:
        overrides: Routers to use instead of the defaults, keyed by prefix

    Returns:
        auth, social, general, then every API domain
    """
    overrides = overrides or {}

    def pick(prefix: str, default: APIRouter) -> APIRouter:
        return overrides.get(prefix, default)

    bindings = [
        RouteBinding("/auth", pick("/auth", auth_router), RouteTier.AUTH, "auth"),
        RouteBinding("/social", pick("/social", social_router), RouteTier.AUTH, "social"),
        RouteBinding("/", pick("/", general_router), RouteTier.GENERAL, "general"),
    ]
    for prefix, name in API_DOMAINS:
        bindings.append(
            RouteBinding(prefix, pick(prefix, domain_routers[name]), RouteTier.API, name)
        )
    return bindings


__all__ = ["auth_router", "default_bindings", "domain_routers"]
