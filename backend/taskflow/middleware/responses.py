"""
Helpers for stages that need the buffered body of a downstream response.

Responses coming back through ``BaseHTTPMiddleware`` are streaming; stages
that inspect or transform the body read it once and hand on a plain
``Response`` carrying the same status, headers and background task.
"""

from typing import Iterable

from starlette.responses import Response


async def read_body(response: Response) -> bytes:
    """Buffer a response body, consuming its iterator if it streams."""
    body = getattr(response, "body", None)
    if body is not None:
        return body

    chunks = []
    async for chunk in response.body_iterator:
        if isinstance(chunk, str):
            chunk = chunk.encode(getattr(response, "charset", "utf-8"))
        chunks.append(chunk)
    return b"".join(chunks)


def replace_body(
    response: Response, body: bytes, drop_headers: Iterable[str] = ()
) -> Response:
    """
    Build a plain response with a new body and otherwise identical metadata.

    ``Content-Length`` is always recomputed; names in ``drop_headers`` are
    removed as well.
    """
    dropped = {b"content-length"} | {name.lower().encode("latin-1") for name in drop_headers}

    rebuilt = Response(
        content=body,
        status_code=response.status_code,
        background=response.background,
    )
    rebuilt.raw_headers = [
        (name, value) for name, value in response.raw_headers if name not in dropped
    ]
    rebuilt.raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))
    return rebuilt


def is_json_response(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower() == "application/json"
