"""Route priority table and gateway builder.

Bindings are ``(prefix, router)`` pairs consulted in registration order; the
first binding that owns the path and has a matching route wins. Tiers keep
the order honest: authentication routes first, then the general route set,
then the API domains. Static assets and the SPA fallback sit below all of
them and are not part of the table.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from functools import cached_property
from typing import Any, Callable, Iterable, Optional

from fastapi import APIRouter
from fastapi.routing import APIRoute
from starlette.routing import Match

from .core.exceptions import RouteConflictError


class RouteTier(IntEnum):
    """Lower value = higher priority."""

    AUTH = 0
    GENERAL = 1
    API = 2


def owns_path(prefix: str, path: str) -> bool:
    """Segment-aware prefix test: ``/api/ai`` owns ``/api/ai/x`` but not ``/api/aix``."""
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class RouteBinding:
    """A handler mounted at a path prefix."""

    prefix: str
    router: APIRouter
    tier: RouteTier = RouteTier.API
    name: str = ""

    @cached_property
    def mounted(self) -> APIRouter:
        """The handler's routes with the prefix applied; GET routes also answer HEAD."""
        mounted = APIRouter()
        mounted.include_router(self.router, prefix="" if self.prefix == "/" else self.prefix)
        for route in mounted.routes:
            if isinstance(route, APIRoute) and "GET" in route.methods:
                route.methods.add("HEAD")
        return mounted

    def match(self, path: str, method: str = "GET") -> Match:
        """FULL if a route serves the request, PARTIAL on method mismatch, else NONE."""
        if not owns_path(self.prefix, path):
            return Match.NONE

        scope = {"type": "http", "path": path, "method": method.upper(), "root_path": ""}
        best = Match.NONE
        for route in self.mounted.routes:
            result, _ = route.matches(scope)
            if result == Match.FULL:
                return Match.FULL
            if result == Match.PARTIAL:
                best = Match.PARTIAL
        return best


@dataclass(frozen=True)
class RouteTable:
    """Immutable, ordered list of bindings."""

    bindings: tuple[RouteBinding, ...] = ()

    def __iter__(self):
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    @property
    def prefixes(self) -> tuple[str, ...]:
        return tuple(binding.prefix for binding in self.bindings)

    def resolve(self, path: str, method: str = "GET") -> Optional[RouteBinding]:
        """Return the binding that serves the request, or None for the fallback tiers."""
        for binding in self.bindings:
            if binding.match(path, method) != Match.NONE:
                return binding
        return None


@dataclass(frozen=True)
class MiddlewareSpec:
    """A middleware class plus the keyword arguments it is constructed with."""

    cls: Callable[..., Any]
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Gateway:
    """
    Finished pipeline description.

    ``middleware`` is in request order (first entry sees the request first).
    """

    middleware: tuple[MiddlewareSpec, ...]
    routes: RouteTable


class GatewayBuilder:
    """
    Collects middleware and route bindings in order.

    Example:
        gateway = (
            GatewayBuilder()
            .use(ProxyHeaderMiddleware, trust_proxy_hops=1)
            .auth("/auth", auth_router)
            .route("/", general_router)
            .api("/api/ai", ai_router)
            .build()
        )
    """

    def __init__(self):
        self._middleware: list[MiddlewareSpec] = []
        self._bindings: list[RouteBinding] = []

    def use(self, cls: Callable[..., Any], **options: Any) -> "GatewayBuilder":
        self._middleware.append(MiddlewareSpec(cls, options))
        return self

    def bind(
        self,
        prefix: str,
        router: APIRouter,
        tier: RouteTier,
        name: str = "",
    ) -> "GatewayBuilder":
        if not prefix.startswith("/"):
            raise RouteConflictError(prefix, "prefix must start with '/'")
        if prefix != "/" and prefix.endswith("/"):
            prefix = prefix.rstrip("/")
        if any(binding.prefix == prefix for binding in self._bindings):
            raise RouteConflictError(prefix, "prefix is already bound")
        if self._bindings and tier < self._bindings[-1].tier:
            raise RouteConflictError(
                prefix,
                f"{tier.name.lower()} routes must be registered before "
                f"{self._bindings[-1].tier.name.lower()} routes",
            )
        self._bindings.append(RouteBinding(prefix, router, tier, name or prefix))
        return self

    def auth(self, prefix: str, router: APIRouter, name: str = "") -> "GatewayBuilder":
        return self.bind(prefix, router, RouteTier.AUTH, name)

    def route(self, prefix: str, router: APIRouter, name: str = "") -> "GatewayBuilder":
        return self.bind(prefix, router, RouteTier.GENERAL, name)

    def api(self, prefix: str, router: APIRouter, name: str = "") -> "GatewayBuilder":
        return self.bind(prefix, router, RouteTier.API, name)

    def extend(self, bindings: Iterable[RouteBinding]) -> "GatewayBuilder":
        for binding in bindings:
            self.bind(binding.prefix, binding.router, binding.tier, binding.name)
        return self

    def build(self) -> Gateway:
        return Gateway(
            middleware=tuple(self._middleware),
            routes=RouteTable(tuple(self._bindings)),
        )
