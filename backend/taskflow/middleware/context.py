"""
Request context passed through the middleware pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response

NextHandler = Callable[[], Awaitable[Response]]
UserIdExtractor = Callable[[Request], Optional[str]]


@dataclass
class RequestContext:
    """
    Explicit per-request state shared by pipeline stages.

    ``response_headers`` acts as the response builder: stages write headers
    there at any point, and the pipeline applies them to whichever response
    finally leaves it, including short-circuit and error responses.
    """

    method: str
    path: str
    headers: Headers
    query_string: str = ""
    user_id: Optional[str] = None
    client_host: Optional[str] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    state: Dict[str, Any] = field(default_factory=dict)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive request header lookup."""
        return self.headers.get(name, default)

    def set_header(self, name: str, value: str) -> None:
        self.response_headers[name] = value

    @property
    def identity(self) -> str:
        return self.user_id or "anonymous"

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        query_string: str = "",
        user_id: Optional[str] = None,
        client_host: Optional[str] = None,
    ) -> "RequestContext":
        """Construct a context without a live request (tests, internal calls)."""
        return cls(
            method=method.upper(),
            path=path,
            headers=Headers(headers=dict(headers or {})),
            query_string=query_string,
            user_id=user_id,
            client_host=client_host,
        )

    @classmethod
    def from_request(
        cls, request: Request, user_id_extractor: Optional[UserIdExtractor] = None
    ) -> "RequestContext":
        """Build a context from a Starlette request."""
        extractor = user_id_extractor or default_user_id_extractor
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers=request.headers,
            query_string=request.url.query,
            user_id=extractor(request),
            client_host=request.client.host if request.client else None,
        )


def default_user_id_extractor(request: Request) -> Optional[str]:
    """
    Resolve the authenticated user id.

    An upstream authentication layer sets ``request.state.user_id``; trusted
    internal callers may pass ``X-User-ID`` instead.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)

    return request.headers.get("X-User-ID") or None
