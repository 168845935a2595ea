from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from bucket_index import IndexSettings, MemoryStorage, create_app
from litestar.testing import AsyncTestClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator

    from litestar import Litestar


OBJECT_BODY = bytes(range(256)) * 4  # 1024 bytes


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def index_env_vars() -> Generator[dict[str, str]]:
    """Set up environment variables for the index settings."""
    env_vars = {
        "BUCKET_INDEX_ENDPOINT": "http://127.0.0.1:9000",
        "BUCKET_INDEX_ACCESS_KEY_ID": "minio",
        "BUCKET_INDEX_SECRET_ACCESS_KEY": "minio123",
        "BUCKET_INDEX_REGION": "eu-central-1",
        "BUCKET_INDEX_BUCKETS": "Public_Files:public-files-prod,media",
        "BUCKET_INDEX_CHUNK_SIZE": "4096",
        "BUCKET_INDEX_OWNER": "Ada",
    }

    # Set environment variables
    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    # Restore original values
    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture
def storage() -> MemoryStorage:
    """Memory backend with a small directory tree in two buckets."""
    storage = MemoryStorage()
    storage.put("docs-backend", "readme.txt", b"hello from the index\n", "text/plain")
    storage.put(
        "docs-backend",
        "dir/a.txt",
        b"a" * 10,
        "text/plain",
        http_metadata={"Cache-Control": "max-age=60"},
    )
    storage.put("docs-backend", "dir/sub/deep.bin", b"deep")
    storage.put("docs-backend", "data/blob.bin", OBJECT_BODY)
    storage.put("docs-backend", "data/empty.bin", b"")
    storage.put("docs-backend", "names/École.txt", b"e")
    storage.put("docs-backend", "names/b.txt", b"b")
    storage.put("docs-backend", "names/A.txt", b"a")
    storage.create_bucket("empty-backend")
    return storage


@pytest.fixture
def settings() -> IndexSettings:
    return IndexSettings(
        buckets={"docs": "docs-backend", "empty": "empty-backend", "gone": "missing"},
        chunk_size=512,
        owner="Ada",
        security_contact="mailto:security@example.org",
        security_expires="2030-01-01T00:00:00Z",
    )


@pytest.fixture
def app(settings: IndexSettings, storage: MemoryStorage) -> Litestar:
    return create_app(settings=settings, storage=storage)


@pytest.fixture
async def client(app: Litestar) -> AsyncGenerator[AsyncTestClient]:
    async with AsyncTestClient(app=app) as client:
        yield client
