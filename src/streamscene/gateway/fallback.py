"""Terminal tier: static assets, SPA shell, or a structured not-found.

API and auth paths never receive the SPA shell, so a missing API route
surfaces as JSON instead of being masked by the client app.
"""

from pathlib import Path
from typing import Iterable, Optional

from fastapi import status
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from .core.exceptions import EntryDocumentMissing
from .routing import RouteTable
from .schemas import ErrorResponse

RESERVED_PREFIXES = ("/api/", "/auth/", "/social/")
ENTRY_DOCUMENT = "index.html"


class FallbackResolver:
    """Decide what an unmatched request gets."""

    def __init__(
        self,
        public_dir: Path,
        reserved_prefixes: Iterable[str] = RESERVED_PREFIXES,
        routes: Optional[RouteTable] = None,
    ):
        self.public_dir = Path(public_dir)
        self.reserved_prefixes = tuple(reserved_prefixes)
        self.routes = routes

    @property
    def entry_document(self) -> Path:
        return (self.public_dir / ENTRY_DOCUMENT).absolute()

    def is_reserved(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.reserved_prefixes)

    def not_found(self) -> JSONResponse:
        return JSONResponse(
            ErrorResponse(error="Route not found").model_dump(),
            status_code=status.HTTP_404_NOT_FOUND,
        )

    def resolve(self, method: str, path: str) -> Response:
        """
        Args:
            method: Request method
            path: Request path

        Returns:
            405 when a bound handler serves the path with other methods,
            JSON 404 for reserved prefixes and non-GET requests, otherwise
            the SPA entry document.

        Raises:
            EntryDocumentMissing: The entry document is not deployed
        """
        # The static mount matches every path, so it outranks a handler's
        # method-mismatch match inside the router
        if self.routes is not None and self.routes.resolve(path, method) is not None:
            return JSONResponse(
                {"detail": "Method Not Allowed"},
                status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            )

        if self.is_reserved(path) or method.upper() not in ("GET", "HEAD"):
            return self.not_found()

        entry = self.entry_document
        if not entry.is_file():
            raise EntryDocumentMissing(str(entry))
        return FileResponse(entry, media_type="text/html")


class PublicAssets(StaticFiles):
    """Static files from the public directory; misses go to the FallbackResolver."""

    def __init__(self, resolver: FallbackResolver):
        super().__init__(directory=resolver.public_dir, check_dir=False)
        self.resolver = resolver

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except HTTPException as exc:
            if exc.status_code not in (
                status.HTTP_404_NOT_FOUND,
                status.HTTP_405_METHOD_NOT_ALLOWED,
            ):
                raise
        request = Request(scope)
        return self.resolver.resolve(request.method, request.url.path)
