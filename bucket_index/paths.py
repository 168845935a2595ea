from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import unquote

from .errors import InvalidPath

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .listing import ListingResult
    from .storage import BucketRef


def decode_key(value: str) -> str:
    """Percent-decode a re-joined key path as UTF-8.

    Raises:
        InvalidPath: If the escapes do not form valid UTF-8.
    """
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as error:
        msg = f"percent-escapes in {value!r} are not valid UTF-8"
        raise InvalidPath(msg) from error


@dataclass(frozen=True)
class RootTarget:
    """The path names no bucket; list every configured bucket."""


@dataclass(frozen=True)
class BucketNotFound:
    name: str


@dataclass(frozen=True)
class RequestTarget:
    """A path inside a known bucket.

    ``segments`` are the raw, still-encoded path segments after the bucket
    name and ``key`` is their decoded join.
    """

    bucket: BucketRef
    segments: tuple[str, ...]
    key: str

    @property
    def prefix(self) -> str:
        """Listing prefix for this path; empty for the bucket root."""
        return f"{self.key}/" if self.segments else ""

    def is_object_candidate(self, listing: ListingResult) -> bool:
        return bool(self.segments) and listing.is_empty


def resolve_path(
    raw_path: str, buckets: Iterable[BucketRef]
) -> RootTarget | BucketNotFound | RequestTarget:
    """Classify a percent-encoded request path."""
    segments = [segment for segment in raw_path.split("/") if segment]
    if not segments:
        return RootTarget()

    name, rest = segments[0], tuple(segments[1:])
    bucket = next((ref for ref in buckets if ref.name == name), None)
    if bucket is None:
        return BucketNotFound(name)

    return RequestTarget(
        bucket=bucket,
        segments=rest,
        key=decode_key("/".join(rest)),
    )
