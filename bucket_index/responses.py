from __future__ import annotations

from typing import TYPE_CHECKING

from litestar.enums import MediaType
from litestar.response import Response, Stream

from .ranges import (
    MalformedRange,
    NotFound,
    NotModified,
    Ok,
    PartialContent,
    PreconditionFailed,
    RangeNotSatisfiable,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .ranges import Disposition
    from .storage import ObjectBody, ObjectMetadata

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def text(
    message: str, status_code: int, headers: Mapping[str, str] | None = None
) -> Response:
    return Response(
        content=message,
        status_code=status_code,
        headers=dict(headers or {}),
        media_type=MediaType.TEXT,
    )


def html(document: str) -> Response:
    return Response(content=document, status_code=200, media_type=MediaType.HTML)


def method_not_allowed() -> Response:
    return text("Method Not Allowed", 405, {"Allow": "GET"})


def object_headers(meta: ObjectMetadata) -> dict[str, str]:
    """Headers sent with every delivered object body."""
    headers = dict(meta.http_metadata)
    headers["ETag"] = meta.etag
    headers["Accept-Ranges"] = "bytes"
    return headers


def from_disposition(
    disposition: Disposition,
    meta: ObjectMetadata | None,
    body: ObjectBody | None = None,
) -> Response:
    """Build the HTTP response for a final disposition.

    ``body`` is required for ``Ok`` and ``PartialContent``; the chunks are
    streamed as the backend produces them.
    """
    if isinstance(disposition, (Ok, PartialContent)):
        if body is None:
            msg = f"{type(disposition).__name__} needs an object body"
            raise ValueError(msg)
        headers = object_headers(body.metadata)
        headers["Content-Length"] = str(body.content_length)
        if isinstance(disposition, PartialContent):
            headers["Content-Range"] = disposition.range.content_range(
                disposition.size
            )
        return Stream(
            content=body.chunks,
            status_code=disposition.status_code,
            headers=headers,
            media_type=body.metadata.content_type or DEFAULT_CONTENT_TYPE,
        )

    if isinstance(disposition, NotModified):
        return Response(
            content=b"",
            status_code=disposition.status_code,
            headers={"ETag": meta.etag} if meta is not None else {},
        )
    if isinstance(disposition, PreconditionFailed):
        return Response(content=b"", status_code=disposition.status_code)
    if isinstance(disposition, RangeNotSatisfiable):
        return text(
            "Range Not Satisfiable",
            disposition.status_code,
            {"Content-Range": f"bytes */{disposition.size}"},
        )
    if isinstance(disposition, MalformedRange):
        return text("Malformed Range Header", disposition.status_code)
    if isinstance(disposition, NotFound):
        return text("Object Not Found", disposition.status_code)

    msg = f"unknown disposition {disposition!r}"
    raise TypeError(msg)
