"""Browsable HTTP index over S3-compatible buckets."""

from .app import create_app
from .service import BucketIndex
from .settings import IndexSettings
from .storage import MemoryStorage, S3Storage

__all__ = ["BucketIndex", "IndexSettings", "MemoryStorage", "S3Storage", "create_app"]
