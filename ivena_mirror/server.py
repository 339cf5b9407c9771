"""FastAPI application serving the rewritten report page and its cached assets."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .assets import AssetCache, guess_media_type
from .browser import BrowserSession
from .config import NO_CACHE_HEADERS, TEST_ASSET_NAME, MirrorConfig
from .errors import MirrorError
from .pipeline import run_pipeline

logger = logging.getLogger("ivena_mirror.server")

NOT_FOUND_BODY = "Resource not found"


def _not_found(body: str = NOT_FOUND_BODY) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=404)


def _server_error(exc: Exception) -> PlainTextResponse:
    return PlainTextResponse(f"Internal Server Error: {exc}", status_code=500)


def public_file(public_dir: Path, relative: str) -> Optional[Path]:
    """File under ``public_dir`` for a request path, refusing anything outside it."""
    root = public_dir.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    if candidate.is_dir():
        candidate = candidate / "index.html"
    return candidate if candidate.is_file() else None


def create_app(
    config: MirrorConfig,
    session: Optional[BrowserSession] = None,
    cache: Optional[AssetCache] = None,
) -> FastAPI:
    """Build the application; the browser session is closed on shutdown."""
    session = session or BrowserSession(config)
    cache = cache or AssetCache(config.assets_dir, timeout=config.download_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        config.ensure_directories()
        logger.info("Public directory: %s", config.public_dir.resolve())
        logger.info("Assets directory: %s", config.assets_dir.resolve())
        logger.info("Profile directory: %s", config.profile_dir)
        try:
            yield
        finally:
            await session.close()

    app = FastAPI(title="IVENA mirror", lifespan=lifespan)
    app.state.config = config
    app.state.session = session
    app.state.cache = cache

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code in (404, 405):
            logger.info("404 - Resource not found: %s", request.url.path)
            return _not_found()
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("Incoming request: %s %s", request.method, request.url.path)
        return await call_next(request)

    @app.get("/")
    async def index() -> Response:
        try:
            result = await run_pipeline(session, config, cache)
        except MirrorError as exc:
            logger.error("Capture failed: %s", exc)
            return _server_error(exc)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error during capture")
            return _server_error(exc)
        return HTMLResponse(result.html, headers=NO_CACHE_HEADERS)

    @app.get("/assets/{name}")
    async def asset(name: str) -> Response:
        path = cache.lookup(name)
        if path is None:
            return _not_found()
        return FileResponse(
            path, media_type=guess_media_type(path), headers=NO_CACHE_HEADERS
        )

    @app.get("/debug_screenshot")
    async def debug_screenshot() -> Response:
        if not config.screenshot_path.is_file():
            return _not_found()
        return FileResponse(config.screenshot_path, media_type="image/png")

    @app.get("/test-asset")
    async def test_asset() -> Response:
        path = cache.lookup(TEST_ASSET_NAME)
        if path is None:
            return _not_found("Test asset not found")
        logger.info("Serving test asset: %s", path)
        return FileResponse(path, media_type="text/css")

    @app.get("/{relative:path}")
    async def static_file(relative: str) -> Response:
        path = public_file(config.public_dir, relative)
        if path is None:
            logger.info("404 - Resource not found: /%s", relative)
            return _not_found()
        return FileResponse(path, media_type=guess_media_type(path))

    return app
