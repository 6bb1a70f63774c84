"""Proxy header normalization.

Runs first in the pipeline. Cloudflare reports the visitor's transport in
``cf-visitor`` (e.g. ``{"scheme": "https"}``); when it says https we
rewrite ``x-forwarded-proto`` before anything reads it. The trust-proxy
depth then decides whether forwarded headers set the effective scheme and
client address.
"""

import json
from typing import Callable, Optional

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

VISITOR_HEADER = b"cf-visitor"
FORWARDED_PROTO_HEADER = b"x-forwarded-proto"
FORWARDED_FOR_HEADER = b"x-forwarded-for"


def visitor_scheme(raw: str) -> Optional[str]:
    """Return the scheme declared by a visitor header, or None if unparseable."""
    try:
        visitor = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(visitor, dict):
        return None
    scheme = visitor.get("scheme")
    return scheme if isinstance(scheme, str) else None


def normalize_headers(headers: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    """
    Rewrite x-forwarded-proto to https when cf-visitor says so.

    Malformed visitor metadata is ignored and the headers come back unchanged.
    """
    raw = next((value for name, value in headers if name == VISITOR_HEADER), None)
    if raw is None:
        return headers

    if visitor_scheme(raw.decode("latin-1")) != "https":
        return headers

    rewritten = [(name, value) for name, value in headers if name != FORWARDED_PROTO_HEADER]
    rewritten.append((FORWARDED_PROTO_HEADER, b"https"))
    return rewritten


def forwarded_scheme(headers: list[tuple[bytes, bytes]]) -> Optional[str]:
    """First hop of x-forwarded-proto if it names a known scheme."""
    for name, value in headers:
        if name == FORWARDED_PROTO_HEADER:
            scheme = value.decode("latin-1").split(",")[0].strip().lower()
            if scheme in ("http", "https"):
                return scheme
            return None
    return None


def forwarded_client(
    headers: list[tuple[bytes, bytes]], peer: Optional[str], hops: int
) -> Optional[str]:
    """
    Walk ``hops`` trusted proxies back from the socket peer.

    With one trusted hop the client is the last x-forwarded-for entry; when
    the chain is shorter than the trust depth the furthest address wins.
    """
    chain: list[str] = []
    for name, value in headers:
        if name == FORWARDED_FOR_HEADER:
            chain.extend(
                part.strip() for part in value.decode("latin-1").split(",") if part.strip()
            )

    addresses = [peer] + list(reversed(chain))
    if len(addresses) == 1:
        return peer
    return addresses[min(hops, len(addresses) - 1)]


class ProxyHeaderMiddleware(BaseHTTPMiddleware):
    """Normalize protocol headers and apply the trust-proxy depth."""

    def __init__(self, app, trust_proxy_hops: int = 1):
        super().__init__(app)
        self.trust_proxy_hops = trust_proxy_hops

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        scope = request.scope
        headers = normalize_headers(list(scope["headers"]))
        scope["headers"] = headers

        if self.trust_proxy_hops > 0:
            scheme = forwarded_scheme(headers)
            if scheme is not None and scheme != scope.get("scheme"):
                logger.debug(f"Effective scheme {scheme} from forwarded headers")
                scope["scheme"] = scheme

            client = scope.get("client")
            peer = client[0] if client else None
            address = forwarded_client(headers, peer, self.trust_proxy_hops)
            if address is not None and address != peer:
                port = client[1] if client else 0
                scope["client"] = (address, port)

        return await call_next(request)
