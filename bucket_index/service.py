from __future__ import annotations

import logging
from datetime import UTC
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from .errors import BackendUnavailable, InvalidPath, PreconditionError
from .listing import collation_key, list_directory
from .pages import render_directory, render_root
from .paths import BucketNotFound, RequestTarget, RootTarget, resolve_path
from .ranges import NotFound, Ok, PartialContent, apply_fetch_outcome, resolve
from .responses import from_disposition, html, method_not_allowed, text
from .settings import load_settings_from_env
from .storage import FetchConditions, S3Storage

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from litestar import Request
    from litestar.response import Response

    from .listing import ListingResult
    from .settings import IndexSettings
    from .storage import BucketRef, ObjectMetadata, StorageBackend

LOG = logging.getLogger("bucket_index.service")


def parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def fetch_conditions(
    headers: Mapping[str, str], meta: ObjectMetadata
) -> FetchConditions:
    """Preconditions for the object read.

    The client's ``If-Match`` is forwarded as-is; without one the read is
    pinned to the entity tag seen by the metadata lookup, so a concurrent
    overwrite fails the read instead of mixing two versions.
    """
    return FetchConditions(
        if_match=headers.get("if-match") or meta.etag or None,
        if_unmodified_since=parse_http_date(headers.get("if-unmodified-since")),
    )


class BucketIndex:
    def __init__(self, settings: IndexSettings, storage: StorageBackend | None = None):
        self._settings = settings
        self._buckets = settings.bucket_refs()
        self._storage = storage if storage is not None else S3Storage.from_settings(settings)

    @property
    def settings(self) -> IndexSettings:
        return self._settings

    @property
    def buckets(self) -> tuple[BucketRef, ...]:
        return self._buckets

    async def startup(self) -> None:
        LOG.info(
            "bucket index ready (buckets=%s, chunk_size=%d)",
            ", ".join(f"{ref.name}->{ref.handle}" for ref in self._buckets) or "none",
            self._settings.chunk_size,
        )

    async def shutdown(self) -> None:
        await self._storage.close()

    async def handle(self, request: Request, raw_path: str) -> Response:
        LOG.debug("handle method=%s path=%s", request.method, raw_path)
        if request.method != "GET":
            return method_not_allowed()
        try:
            return await self._handle_get(request, raw_path)
        except InvalidPath as error:
            LOG.debug("rejected path %s: %s", raw_path, error)
            return text("Malformed URL Path", 400)
        except BackendUnavailable:
            LOG.exception("storage backend failed for path=%s", raw_path)
            return text("Bad Gateway", 502)

    async def _handle_get(self, request: Request, raw_path: str) -> Response:
        target = resolve_path(raw_path, self._buckets)
        if isinstance(target, RootTarget):
            buckets = sorted(self._buckets, key=lambda ref: collation_key(ref.name))
            return html(render_root(buckets, self._settings))
        if isinstance(target, BucketNotFound):
            LOG.debug("unknown bucket %r", target.name)
            return text("Bucket Not Found", 404)

        listing = await list_directory(self._storage, target.bucket, target.prefix)
        debug = request.query_params.get("debug") == "1"
        if target.is_object_candidate(listing) and not debug:
            return await self._serve_object(request, target)

        return html(
            render_directory(
                target.bucket,
                listing,
                self._settings,
                debug=self._debug_details(request, target, listing) if debug else None,
            )
        )

    async def _serve_object(self, request: Request, target: RequestTarget) -> Response:
        bucket, key = target.bucket, target.key
        meta = await self._storage.head_object(bucket.handle, key)
        if meta is None:
            LOG.debug("object not found %s/%s", bucket.name, key)
            return from_disposition(NotFound(), None)

        disposition = resolve(
            meta,
            request.headers.get("range"),
            request.headers.get("if-none-match"),
            self._settings.chunk_size,
        )
        if not isinstance(disposition, (Ok, PartialContent)):
            LOG.debug(
                "resolved %s/%s to %s", bucket.name, key, type(disposition).__name__
            )
            return from_disposition(disposition, meta)

        byte_range = disposition.range if isinstance(disposition, PartialContent) else None
        precondition_failed = False
        body = None
        try:
            body = await self._storage.get_object(
                bucket.handle,
                key,
                byte_range=byte_range,
                conditions=fetch_conditions(request.headers, meta),
            )
        except PreconditionError:
            LOG.warning("precondition failed reading %s/%s", bucket.name, key)
            precondition_failed = True

        disposition = apply_fetch_outcome(disposition, precondition_failed)
        if body is None and not precondition_failed:
            LOG.debug("object vanished before read %s/%s", bucket.name, key)
            disposition = NotFound()
        LOG.debug(
            "GET %s/%s status=%s", bucket.name, key, disposition.status_code
        )
        return from_disposition(disposition, meta, body)

    @staticmethod
    def _debug_details(
        request: Request, target: RequestTarget, listing: ListingResult
    ) -> dict[str, Any]:
        return {
            "url": str(request.url),
            "segments": list(target.segments),
            "key": target.key,
            "prefix": listing.prefix,
            "dirs": list(listing.prefixes),
            "files": [entry.key for entry in listing.objects],
        }

    @classmethod
    def from_env(cls) -> BucketIndex:
        """Create a BucketIndex from environment variables.

        Returns:
            BucketIndex configured from environment variables.
        """
        return cls(settings=load_settings_from_env())
