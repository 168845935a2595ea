from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import format_datetime
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from anyio import to_thread
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BackendUnavailable, PreconditionError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

    from .ranges import RangeSpec
    from .settings import IndexSettings

LOG = logging.getLogger("bucket_index.storage")

READ_CHUNK_SIZE = 64 * 1024

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
PRECONDITION_CODES = frozenset({"412", "PreconditionFailed"})

# Response headers carried over from the backend, keyed by boto3 field name.
HTTP_METADATA_FIELDS = {
    "Cache-Control": "CacheControl",
    "Content-Disposition": "ContentDisposition",
    "Content-Encoding": "ContentEncoding",
    "Content-Language": "ContentLanguage",
    "Expires": "Expires",
    "Last-Modified": "LastModified",
}


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(partial(func, *args, **kwargs))


@dataclass(frozen=True)
class BucketRef:
    """A public bucket name bound to a backend bucket."""

    name: str
    handle: str


@dataclass(frozen=True)
class ObjectEntry:
    key: str
    size: int | None = None


@dataclass(frozen=True)
class Children:
    """Direct children of a prefix as reported by the backend."""

    prefixes: tuple[str, ...] = ()
    objects: tuple[ObjectEntry, ...] = ()


@dataclass(frozen=True)
class ObjectMetadata:
    size: int
    etag: str
    content_type: str | None = None
    http_metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.size < 0:
            msg = f"object size must not be negative (got {self.size})"
            raise ValueError(msg)


@dataclass(frozen=True)
class FetchConditions:
    """Preconditions the backend evaluates atomically with the read."""

    if_match: str | None = None
    if_unmodified_since: datetime | None = None


@dataclass
class ObjectBody:
    metadata: ObjectMetadata
    chunks: AsyncIterator[bytes]
    content_length: int


class StorageBackend(Protocol):
    async def list_children(
        self, bucket: str, prefix: str, delimiter: str = "/"
    ) -> Children: ...

    async def head_object(self, bucket: str, key: str) -> ObjectMetadata | None: ...

    async def get_object(
        self,
        bucket: str,
        key: str,
        byte_range: RangeSpec | None = None,
        conditions: FetchConditions | None = None,
    ) -> ObjectBody | None: ...

    async def close(self) -> None: ...


def format_header_value(value: Any) -> str:
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        aware = aware.astimezone(UTC)
        return format_datetime(aware, usegmt=True)
    return str(value)


def _strong_match(header: str, etag: str) -> bool:
    """If-Match comparison: exact tags only, weak tags never match."""
    if header.strip() == "*":
        return True
    return any(
        candidate.strip() == etag and not candidate.strip().startswith("W/")
        for candidate in header.split(",")
    )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Storage:
    """Storage backend for S3-compatible services, driven through boto3."""

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_settings(cls, settings: IndexSettings) -> S3Storage:
        session = Session(
            aws_access_key_id=settings.access_key,
            aws_secret_access_key=settings.secret_key,
            aws_session_token=settings.session_token,
            region_name=settings.region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3},
                s3={"addressing_style": settings.addressing_style},
            ),
        )
        return cls(client)

    async def close(self) -> None:
        await _run_sync(self._client.close)

    async def list_children(
        self, bucket: str, prefix: str, delimiter: str = "/"
    ) -> Children:
        def collect() -> Children:
            paginator = self._client.get_paginator("list_objects_v2")
            prefixes: list[str] = []
            objects: list[ObjectEntry] = []
            for page in paginator.paginate(
                Bucket=bucket, Prefix=prefix, Delimiter=delimiter
            ):
                prefixes.extend(
                    item["Prefix"] for item in page.get("CommonPrefixes") or []
                )
                objects.extend(
                    ObjectEntry(key=item["Key"], size=item.get("Size"))
                    for item in page.get("Contents") or []
                )
            return Children(prefixes=tuple(prefixes), objects=tuple(objects))

        try:
            children = await _run_sync(collect)
        except (ClientError, BotoCoreError) as error:
            raise BackendUnavailable("ListObjectsV2", bucket, error) from error
        LOG.debug(
            "listed s3://%s/%s (%d prefixes, %d objects)",
            bucket,
            prefix,
            len(children.prefixes),
            len(children.objects),
        )
        return children

    async def head_object(self, bucket: str, key: str) -> ObjectMetadata | None:
        try:
            result = await _run_sync(self._client.head_object, Bucket=bucket, Key=key)
        except ClientError as error:
            if _error_code(error) in NOT_FOUND_CODES:
                LOG.debug("HEAD miss for s3://%s/%s", bucket, key)
                return None
            raise BackendUnavailable("HeadObject", bucket, error) from error
        except BotoCoreError as error:
            raise BackendUnavailable("HeadObject", bucket, error) from error
        return self._metadata(result)

    async def get_object(
        self,
        bucket: str,
        key: str,
        byte_range: RangeSpec | None = None,
        conditions: FetchConditions | None = None,
    ) -> ObjectBody | None:
        get_kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if byte_range is not None:
            get_kwargs["Range"] = f"bytes={byte_range.start}-{byte_range.end}"
        if conditions is not None:
            if conditions.if_match is not None:
                get_kwargs["IfMatch"] = conditions.if_match
            if conditions.if_unmodified_since is not None:
                get_kwargs["IfUnmodifiedSince"] = conditions.if_unmodified_since

        try:
            result = await _run_sync(self._client.get_object, **get_kwargs)
        except ClientError as error:
            code = _error_code(error)
            if code in NOT_FOUND_CODES:
                LOG.debug("GET miss for s3://%s/%s", bucket, key)
                return None
            if code in PRECONDITION_CODES:
                raise PreconditionError(f"s3://{bucket}/{key}") from error
            raise BackendUnavailable("GetObject", bucket, error) from error
        except BotoCoreError as error:
            raise BackendUnavailable("GetObject", bucket, error) from error

        streaming_body = result["Body"]

        async def iterator() -> AsyncIterator[bytes]:
            try:
                while True:
                    chunk = await _run_sync(streaming_body.read, READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
            finally:
                await _run_sync(streaming_body.close)

        return ObjectBody(
            metadata=self._metadata(result),
            chunks=iterator(),
            content_length=int(result.get("ContentLength", 0)),
        )

    @staticmethod
    def _metadata(result: Mapping[str, Any]) -> ObjectMetadata:
        # ContentLength is the window length on ranged reads.
        size = int(result.get("ContentLength", 0))
        content_range = result.get("ContentRange")
        if content_range and "/" in content_range:
            total = content_range.rsplit("/", 1)[1]
            if total.isdigit():
                size = int(total)

        http_metadata: dict[str, str] = {}
        for header, name in HTTP_METADATA_FIELDS.items():
            value = result.get(name)
            if value is None:
                continue
            http_metadata[header] = format_header_value(value)

        return ObjectMetadata(
            size=size,
            etag=result.get("ETag", ""),
            content_type=result.get("ContentType"),
            http_metadata=http_metadata,
        )


@dataclass
class StoredObject:
    body: bytes
    content_type: str | None = None
    modified: datetime = field(default_factory=lambda: datetime.now(UTC))
    http_metadata: dict[str, str] = field(default_factory=dict)

    @property
    def etag(self) -> str:
        return f'"{hashlib.md5(self.body).hexdigest()}"'

    def metadata(self) -> ObjectMetadata:
        headers = {"Last-Modified": format_header_value(self.modified)}
        headers.update(self.http_metadata)
        return ObjectMetadata(
            size=len(self.body),
            etag=self.etag,
            content_type=self.content_type,
            http_metadata=headers,
        )


@dataclass
class MemoryStorage:
    """In-process backend for development and tests."""

    buckets: dict[str, dict[str, StoredObject]] = field(default_factory=dict)

    async def close(self) -> None:
        pass

    def create_bucket(self, bucket: str) -> None:
        self.buckets.setdefault(bucket, {})

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
        http_metadata: Mapping[str, str] | None = None,
    ) -> StoredObject:
        stored = StoredObject(
            body=body,
            content_type=content_type,
            http_metadata=dict(http_metadata or {}),
        )
        self.buckets.setdefault(bucket, {})[key] = stored
        return stored

    def _bucket(self, operation: str, bucket: str) -> dict[str, StoredObject]:
        try:
            return self.buckets[bucket]
        except KeyError:
            raise BackendUnavailable(operation, bucket, "NoSuchBucket") from None

    async def list_children(
        self, bucket: str, prefix: str, delimiter: str = "/"
    ) -> Children:
        objects = self._bucket("ListObjectsV2", bucket)
        prefixes: dict[str, None] = {}
        entries: list[ObjectEntry] = []
        for key in sorted(objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix) :]
            if delimiter and delimiter in rest:
                head = rest.split(delimiter, 1)[0]
                prefixes[f"{prefix}{head}{delimiter}"] = None
            else:
                entries.append(ObjectEntry(key=key, size=len(objects[key].body)))
        return Children(prefixes=tuple(prefixes), objects=tuple(entries))

    async def head_object(self, bucket: str, key: str) -> ObjectMetadata | None:
        stored = self._bucket("HeadObject", bucket).get(key)
        return stored.metadata() if stored is not None else None

    async def get_object(
        self,
        bucket: str,
        key: str,
        byte_range: RangeSpec | None = None,
        conditions: FetchConditions | None = None,
    ) -> ObjectBody | None:
        stored = self._bucket("GetObject", bucket).get(key)
        if stored is None:
            return None

        if conditions is not None:
            if conditions.if_match is not None and not _strong_match(
                conditions.if_match, stored.etag
            ):
                raise PreconditionError(f"memory://{bucket}/{key}")
            since = conditions.if_unmodified_since
            if since is not None and stored.modified.replace(microsecond=0) > since:
                raise PreconditionError(f"memory://{bucket}/{key}")

        data = stored.body
        if byte_range is not None:
            data = data[byte_range.start : byte_range.end + 1]

        async def iterator() -> AsyncIterator[bytes]:
            for offset in range(0, len(data), READ_CHUNK_SIZE):
                yield data[offset : offset + READ_CHUNK_SIZE]

        return ObjectBody(
            metadata=stored.metadata(),
            chunks=iterator(),
            content_length=len(data),
        )
