"""Per-request context snapshot."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from starlette.requests import Request


class HttpMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"


def _method(value: str) -> Union[HttpMethod, str]:
    # Extension methods (WebDAV etc.) pass through as plain strings
    try:
        return HttpMethod(value.upper())
    except ValueError:
        return value


@dataclass(frozen=True)
class RequestContext:
    """What the gateway knows about a request at a given point in the pipeline."""

    path: str
    method: Union[HttpMethod, str]
    protocol: str
    origin: Optional[str] = None
    authenticated: bool = False
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        return cls(
            path=request.url.path,
            method=_method(request.method),
            protocol=request.url.scheme,
            origin=request.headers.get("origin"),
            authenticated=bool(getattr(request.state, "authenticated", False)),
            headers=dict(request.headers),
        )
