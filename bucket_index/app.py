from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

from litestar import Litestar, Request, get
from litestar.config.cors import CORSConfig
from litestar.enums import MediaType
from litestar.exceptions import NotFoundException
from litestar.handlers import asgi
from litestar.logging.config import LoggingConfig
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController

from .service import BucketIndex
from .settings import load_settings_from_env

if TYPE_CHECKING:
    from litestar.types import Receive, Scope, Send

    from .settings import IndexSettings
    from .storage import StorageBackend


prometheus_config = PrometheusConfig(app_name="bucket_index", prefix="bucket_index")

ROBOTS_TXT = "User-agent: *\nDisallow: /\n"


def raw_request_path(scope: Scope) -> str:
    """Return the request path as sent by the client, still percent-encoded."""
    raw = scope.get("raw_path")
    if raw:
        return raw.split(b"?", 1)[0].decode("latin-1")
    return quote(scope.get("path", "/"))


def create_app(
    settings: IndexSettings | None = None,
    storage: StorageBackend | None = None,
) -> Litestar:
    """Create the bucket index ASGI application."""
    settings = settings if settings is not None else load_settings_from_env()
    index = BucketIndex(settings, storage)

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @get("/robots.txt", include_in_schema=False, media_type=MediaType.TEXT)
    async def robots() -> str:
        return ROBOTS_TXT

    @get("/.well-known/security.txt", include_in_schema=False, media_type=MediaType.TEXT)
    async def security() -> str:
        if not settings.security_contact:
            raise NotFoundException()
        lines = [f"Contact: {settings.security_contact}"]
        if settings.security_expires:
            lines.append(f"Expires: {settings.security_expires}")
        return "\n".join(lines) + "\n"

    @asgi(path="/", is_mount=True, copy_scope=True)
    async def index_handler(scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope=scope, receive=receive)
        response = await index.handle(request, raw_request_path(scope))
        asgi_response = response.to_asgi_response(None, request)
        await asgi_response(scope, receive, send)

    async def startup(app: Litestar) -> None:
        await index.startup()

    async def shutdown(app: Litestar) -> None:
        await index.shutdown()

    cors_config = CORSConfig(
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["Range", "If-None-Match", "If-Match", "If-Unmodified-Since"],
        expose_headers=["ETag", "Accept-Ranges", "Content-Range", "Content-Length"],
    )

    logging_config = LoggingConfig(
        loggers={
            "bucket_index": {"level": settings.log_level, "propagate": True},
        },
    )

    return Litestar(
        route_handlers=[health, robots, security, index_handler, PrometheusController],
        on_startup=[startup],
        on_shutdown=[shutdown],
        cors_config=cors_config,
        logging_config=logging_config,
        middleware=[prometheus_config.middleware],
    )


app = create_app()
