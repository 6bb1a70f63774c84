"""Dynamic CORS origin matching.

The trusted set is built once from configuration. Matching is deliberately
permissive so that origin variants of a trusted domain still pass:

1. exact match
2. the origin starts with a trusted entry
3. the trusted host (scheme removed) appears inside the origin

Rule 3 is not a strict origin comparison - ``https://streamscene.net.evil.io``
passes. Tightening it would break subdomain variants, so it stays until the
product owners decide how those should be matched.
"""

import re
from typing import Iterable, Optional

from loguru import logger
from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from .core.exceptions import CorsRejected
from .schemas import ErrorResponse

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH")
ALLOWED_HEADERS = ("Content-Type", "Authorization", "Cookie", "X-Requested-With")

# Development convenience: any local origin, any port
LOCAL_ORIGIN_MARKERS = ("localhost", "127.0.0.1", "0.0.0.0")

_SCHEME_RE = re.compile(r"^https?://")


def strip_scheme(url: str) -> str:
    return _SCHEME_RE.sub("", url)


class OriginPolicy:
    """Decides whether a declared Origin may receive a cross-origin response."""

    def __init__(self, trusted_origins: Iterable[str], *, production: bool):
        self.trusted_origins = tuple(origin for origin in trusted_origins if origin)
        self.production = production

    def is_allowed(self, origin: Optional[str]) -> bool:
        # Same-origin, curl, mobile apps
        if not origin:
            return True

        if not self.production and any(marker in origin for marker in LOCAL_ORIGIN_MARKERS):
            return True

        for trusted in self.trusted_origins:
            if (
                origin == trusted
                or origin.startswith(trusted)
                or strip_scheme(trusted) in origin
            ):
                return True

        if not self.production:
            logger.info(f"CORS blocked origin: {origin}")
            logger.info(f"Allowed origins: {list(self.trusted_origins)}")
        return False

    def check(self, origin: Optional[str]) -> None:
        """Raise CorsRejected unless the origin is allowed."""
        if not self.is_allowed(origin):
            raise CorsRejected(origin or "")


class OriginTrustMiddleware(CORSMiddleware):
    """
    Starlette CORS middleware driven by an OriginPolicy.

    Allowed origins are echoed back with credentials permitted and the fixed
    method/header sets. Rejected origins get no CORS headers at all and never
    reach the rest of the pipeline: preflights are refused with a bare 400,
    every other request ends with a 403 error body.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy):
        super().__init__(
            app,
            allow_origins=(),
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            allow_credentials=True,
        )
        self.policy = policy

    def is_allowed_origin(self, origin: str) -> bool:
        return self.policy.is_allowed(origin)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        origin = headers.get("origin")
        if origin is None:
            await self.app(scope, receive, send)
            return

        try:
            self.policy.check(origin)
        except CorsRejected as exc:
            if scope["method"] == "OPTIONS" and "access-control-request-method" in headers:
                response = PlainTextResponse("Disallowed CORS origin", status_code=400)
            else:
                response = JSONResponse(
                    ErrorResponse(error=exc.message).model_dump(), status_code=exc.status_code
                )
            await response(scope, receive, send)
            return

        await super().__call__(scope, receive, send)
