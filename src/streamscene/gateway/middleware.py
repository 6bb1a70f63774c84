"""Development request logging."""

from typing import Callable

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .context import RequestContext


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    Log every request with its origin and authentication state.

    Only installed outside production. Runs after the identity middleware so
    the authentication state is known.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = RequestContext.from_request(request)
        method = getattr(context.method, "value", context.method)
        logger.info(
            "{} {} origin={} user={}",
            method,
            context.path,
            context.origin,
            "authenticated" if context.authenticated else "not authenticated",
        )
        return await call_next(request)
