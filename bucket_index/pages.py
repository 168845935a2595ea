from __future__ import annotations

import json
from html import escape
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .listing import ListingResult
    from .settings import IndexSettings
    from .storage import BucketRef


def _href(*parts: str) -> str:
    return escape(quote("/" + "/".join(parts), safe="/"), quote=True)


def _format_size(size: int | None) -> str:
    if size is None:
        return ""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024 or unit == "TiB":
            return f"{size} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def document(body: str, title: str, settings: IndexSettings) -> str:
    icon = ""
    if settings.favicon:
        icon = f'<link rel="icon" href="{escape(settings.favicon, quote=True)}" />'
    return (
        "<!doctype html>"
        '<html lang="en-US">'
        "<head>"
        '<meta charset="utf-8" />'
        '<meta name="viewport" content="width=device-width" />'
        f"{icon}"
        f"<title>{escape(title)}</title>"
        "</head>"
        "<body>"
        f"{body}"
        "</body>"
        "</html>"
    )


def render_root(buckets: Iterable[BucketRef], settings: IndexSettings) -> str:
    """Render the list of configured buckets."""
    items = "".join(
        f'<li><a href="{_href(ref.name, "")}">{escape(ref.name)}</a></li>'
        for ref in buckets
    )
    return document(
        f"<h1>Buckets</h1><ul>{items}</ul>",
        f"{settings.owner}'s Bucket Index",
        settings,
    )


def render_directory(
    bucket: BucketRef,
    listing: ListingResult,
    settings: IndexSettings,
    debug: Mapping[str, Any] | None = None,
) -> str:
    """Render one level of a bucket as a list of links."""
    location = f"/{bucket.name}/{listing.prefix}"
    parent = listing.prefix.rstrip("/").rpartition("/")[0]
    parent_href = (
        _href(bucket.name, f"{parent}/" if parent else "")
        if listing.prefix
        else "/"
    )

    rows = [f'<li><a href="{parent_href}">Parent directory/</a></li>']
    for prefix in listing.prefixes:
        name = listing.display_name(prefix)
        if not name:
            continue
        rows.append(f'<li><a href="{_href(bucket.name, prefix)}">{escape(name)}</a></li>')
    for entry in listing.objects:
        name = listing.display_name(entry.key)
        if not name:
            continue
        size = _format_size(entry.size)
        rows.append(
            f'<li><a download href="{_href(bucket.name, entry.key)}">{escape(name)}</a>'
            + (f" <small>{escape(size)}</small>" if size else "")
            + "</li>"
        )

    details = ""
    if debug is not None:
        lines = "".join(
            f"<p>{escape(label)}: {escape(json.dumps(value, default=str))}</p>"
            for label, value in debug.items()
        )
        details = f"<details><summary>Debug</summary>{lines}</details>"

    return document(
        f"<h1>Index of {escape(location)}</h1>{details}<ul>{''.join(rows)}</ul>",
        f"Index of {location} | {settings.owner}'s Bucket Index",
        settings,
    )
