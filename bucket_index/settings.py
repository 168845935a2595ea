from __future__ import annotations

import re
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .storage import BucketRef

RESERVED_NAMES = frozenset({"health", "metrics", "robots.txt", ".well-known"})

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*$")


def normalize_bucket_name(name: str) -> str:
    """Turn a configured bucket name into its public, URL-safe form."""
    return name.strip().lower().replace("_", "-")


class IndexSettings(BaseSettings):
    """Configuration for the bucket index, read once at startup."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    endpoint: str | None = Field(
        default=None,
        validation_alias="BUCKET_INDEX_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BUCKET_INDEX_ACCESS_KEY_ID",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BUCKET_INDEX_SECRET_ACCESS_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BUCKET_INDEX_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices(
            "BUCKET_INDEX_REGION",
            "AWS_REGION",
        ),
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="path",
        validation_alias="BUCKET_INDEX_ADDRESSING_STYLE",
    )
    buckets: dict[str, str] | None = Field(
        default=None,
        validation_alias="BUCKET_INDEX_BUCKETS",
    )
    chunk_size: int = Field(
        default=16 * 1024 * 1024,
        gt=0,
        validation_alias="BUCKET_INDEX_CHUNK_SIZE",
    )
    owner: str = Field(
        default="Bucket",
        validation_alias="BUCKET_INDEX_OWNER",
    )
    favicon: str | None = Field(
        default=None,
        validation_alias="BUCKET_INDEX_FAVICON",
    )
    security_contact: str | None = Field(
        default=None,
        validation_alias="BUCKET_INDEX_SECURITY_CONTACT",
    )
    security_expires: str | None = Field(
        default=None,
        validation_alias="BUCKET_INDEX_SECURITY_EXPIRES",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="BUCKET_INDEX_LOG_LEVEL",
    )

    @field_validator("buckets", mode="before")
    @classmethod
    def _parse_buckets(cls, value: object) -> dict[str, str] | None:
        if value is None:
            return None
        if isinstance(value, dict):
            pairs = [(str(k), str(v)) for k, v in value.items()]
        elif isinstance(value, str):
            pairs = []
            for item in value.split(","):
                if not item.strip():
                    continue
                if ":" in item:
                    public, backend = item.split(":", 1)
                else:
                    public = backend = item
                pairs.append((public, backend))
        else:
            msg = "Invalid bucket list format"
            raise ValueError(msg)

        mapping: dict[str, str] = {}
        for public, backend in pairs:
            name = normalize_bucket_name(public)
            backend = backend.strip()
            if not _NAME_RE.match(name):
                msg = f"Bucket name {public!r} is not URL-safe"
                raise ValueError(msg)
            if name in RESERVED_NAMES:
                msg = f"Bucket name {name!r} is reserved"
                raise ValueError(msg)
            if name in mapping:
                msg = f"Bucket name {name!r} is configured more than once"
                raise ValueError(msg)
            if not backend:
                msg = f"Bucket {name!r} has no backend bucket"
                raise ValueError(msg)
            mapping[name] = backend
        return mapping

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper()

    def bucket_refs(self) -> tuple[BucketRef, ...]:
        """Return the configured buckets in declaration order."""
        return tuple(
            BucketRef(name=name, handle=handle)
            for name, handle in (self.buckets or {}).items()
        )


def load_settings_from_env() -> IndexSettings:
    """Load index settings from environment variables.

    Returns:
        IndexSettings instance populated from environment variables.
    """
    return IndexSettings()
