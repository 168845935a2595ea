"""Range and conditional request resolution.

Every outcome of serving an object is a disposition value. ``resolve``
evaluates the ``Range`` and ``If-None-Match`` headers against the object
metadata in a fixed order and returns exactly one disposition; the fetch
step may later downgrade a deliverable disposition to
``PreconditionFailed`` through ``apply_fetch_outcome``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .storage import ObjectMetadata

_RANGE_RE = re.compile(
    r"^\s*([A-Za-z]+)\s*=\s*([0-9]*)\s*-\s*([0-9]*)\s*$",
    re.ASCII,
)


def _clamped_int(digits: str, limit: int) -> int:
    """Convert an ASCII digit string, saturating at ``limit``."""
    significant = digits.lstrip("0")
    if len(significant) > len(str(limit)):
        return limit
    return min(int(significant or "0"), limit)


@dataclass(frozen=True)
class RangeSpec:
    """Inclusive byte window ``start..end`` inside an object."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


@dataclass(frozen=True)
class Ok:
    size: int
    status_code = 200


@dataclass(frozen=True)
class PartialContent:
    range: RangeSpec
    size: int
    status_code = 206


@dataclass(frozen=True)
class NotModified:
    status_code = 304


@dataclass(frozen=True)
class MalformedRange:
    status_code = 400


@dataclass(frozen=True)
class NotFound:
    status_code = 404


@dataclass(frozen=True)
class PreconditionFailed:
    status_code = 412


@dataclass(frozen=True)
class RangeNotSatisfiable:
    size: int
    status_code = 416


Disposition = (
    Ok
    | PartialContent
    | NotModified
    | MalformedRange
    | NotFound
    | PreconditionFailed
    | RangeNotSatisfiable
)
ParsedRange = RangeSpec | RangeNotSatisfiable | MalformedRange


def parse_range(header: str, size: int) -> ParsedRange:
    """Parse a single-range ``Range`` header against an object size.

    Accepts ``bytes=start-end``, ``bytes=start-`` and ``bytes=-suffix``.
    Other units, multiple ranges and anything that is not made of digits
    are malformed. Ranges that start past the end of the object, run
    backwards or select zero bytes are not satisfiable. An end past the
    object is clamped to the last byte.
    """
    match = _RANGE_RE.match(header)
    if match is None:
        return MalformedRange()
    unit, start_str, end_str = match.groups()
    if unit.lower() != "bytes":
        return MalformedRange()
    if not start_str and not end_str:
        return MalformedRange()

    if not start_str:
        suffix = _clamped_int(end_str, size)
        if suffix == 0 or size == 0:
            return RangeNotSatisfiable(size)
        return RangeSpec(start=max(size - suffix, 0), end=size - 1)

    start = _clamped_int(start_str, size)
    end = _clamped_int(end_str, size) if end_str else size - 1
    if start >= size or start > end:
        return RangeNotSatisfiable(size)
    return RangeSpec(start=start, end=min(end, size - 1))


def cap_range(window: RangeSpec, max_chunk_size: int) -> RangeSpec:
    """Shorten ``window`` so it spans at most ``max_chunk_size`` bytes."""
    if max_chunk_size <= 0:
        msg = f"max_chunk_size must be positive (got {max_chunk_size})"
        raise ValueError(msg)
    if window.length > max_chunk_size:
        return RangeSpec(start=window.start, end=window.start + max_chunk_size - 1)
    return window


def strip_etag(value: str) -> str:
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def etag_matches(header: str, etag: str) -> bool:
    """Return whether an entity-tag list header names ``etag``.

    ``*`` matches any entity tag. Weak markers and quotes are ignored on
    both sides, so ``W/"abc"``, ``"abc"`` and ``abc`` all name ``"abc"``.
    """
    if header.strip() == "*":
        return True
    wanted = strip_etag(etag)
    if not wanted:
        return False
    return any(strip_etag(candidate) == wanted for candidate in header.split(","))


def resolve(
    meta: ObjectMetadata,
    range_header: str | None,
    if_none_match: str | None,
    max_chunk_size: int,
) -> Disposition:
    """Compute the provisional disposition for an object request."""
    window: RangeSpec | None = None
    if range_header is not None:
        parsed = parse_range(range_header, meta.size)
        if not isinstance(parsed, RangeSpec):
            return parsed
        window = cap_range(parsed, max_chunk_size)

    # A matching validator wins over a satisfiable range.
    if if_none_match is not None and etag_matches(if_none_match, meta.etag):
        return NotModified()

    if window is not None:
        return PartialContent(range=window, size=meta.size)
    return Ok(size=meta.size)


def apply_fetch_outcome(
    disposition: Disposition, precondition_failed: bool
) -> Disposition:
    """Fold the backend fetch result into a provisional disposition."""
    if precondition_failed and isinstance(disposition, (Ok, PartialContent)):
        return PreconditionFailed()
    return disposition
