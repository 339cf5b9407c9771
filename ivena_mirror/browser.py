"""Lazily launched, process-wide Chromium session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from playwright.async_api import BrowserContext, Error as PlaywrightError
from playwright.async_api import Playwright, async_playwright

from .config import MirrorConfig
from .errors import LaunchError

logger = logging.getLogger("ivena_mirror")


class BrowserSession:
    """Owns one persistent Chromium context for the lifetime of the server.

    The context is created on the first :meth:`acquire` call and handed out to
    every later caller unchanged. Callers open their own pages on it and must
    not close the context themselves; :meth:`close` is reserved for the process
    entry point.
    """

    def __init__(
        self,
        config: MirrorConfig,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.config = config
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._alive = False
        self._closed = False
        self._launches = 0
        self._lock = asyncio.Lock()

    @property
    def is_alive(self) -> bool:
        return self._context is not None and self._alive

    @property
    def launches(self) -> int:
        """Number of browser processes started by this session."""
        return self._launches

    def launch_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``launch_persistent_context``."""
        config = self.config
        width, height = config.viewport
        options: Dict[str, Any] = {
            "user_data_dir": str(config.profile_dir),
            "headless": config.headless,
            "args": list(config.launch_args),
            "ignore_https_errors": True,
            "viewport": {"width": width, "height": height},
        }
        if config.executable_path:
            options["executable_path"] = str(config.executable_path)
        return options

    async def acquire(self) -> BrowserContext:
        """Return the live browser context, launching it on first use."""
        if self._closed:
            raise LaunchError("Browser session has been shut down")
        if self.is_alive:
            logger.debug("Reusing existing browser instance")
            return self._context
        async with self._lock:
            if self._closed:
                raise LaunchError("Browser session has been shut down")
            if self.is_alive:
                return self._context
            self._context = await self._launch()
            return self._context

    async def _launch(self) -> BrowserContext:
        config = self.config
        if config.executable_path and not config.executable_path.exists():
            raise LaunchError(
                f"Chromium executable path not found: {config.executable_path}"
            )
        config.profile_dir.mkdir(parents=True, exist_ok=True)
        options = self.launch_options()
        logger.info(
            "Launching Chromium (headless=%s, profile=%s, executable=%s)",
            config.headless,
            config.profile_dir,
            options.get("executable_path", "bundled"),
        )
        try:
            if self._playwright is None:
                self._playwright = await self._playwright_factory().start()
            context = await self._playwright.chromium.launch_persistent_context(
                **options
            )
        except PlaywrightError as exc:
            logger.error("Error launching browser: %s", exc)
            raise LaunchError(f"Failed to launch browser: {exc}") from exc

        context.on("close", self._on_context_closed)
        self._alive = True
        self._launches += 1
        logger.info("Browser launched successfully")
        return context

    def _on_context_closed(self, *_: Any) -> None:
        if self._alive and not self._closed:
            logger.warning("Browser context closed unexpectedly; will relaunch")
        self._alive = False

    async def close(self) -> None:
        """Tear down the context and the Playwright driver exactly once."""
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            context, self._context = self._context, None
            playwright, self._playwright = self._playwright, None
            self._alive = False
            if context is not None:
                try:
                    await context.close()
                except PlaywrightError as exc:
                    logger.warning("Error closing browser context: %s", exc)
            if playwright is not None:
                await playwright.stop()
        logger.info("Browser closed on shutdown")
