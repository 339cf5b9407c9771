"""Walk the report menu with Playwright and produce the locally rewritten page."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .assets import AssetCache
from .browser import BrowserSession
from .config import MirrorConfig
from .errors import ElementNotFound, MirrorError, NavigationTimeout, TargetNotFound
from .models import CaptureResult, FollowLink, MenuLink, SelectOption
from .rewrite import build_alias_map, rewrite_html
from .utils import normalize_label

logger = logging.getLogger("ivena_mirror")

RESOURCE_SELECTOR = "link[href], script[src], img[src]"

_COLLECT_OPTIONS_JS = "opts => opts.map(o => ({value: o.value, text: o.text}))"
_COLLECT_LINKS_JS = (
    "links => links.map(a => ({text: (a.innerText || '').trim(), href: a.href}))"
)
_COLLECT_RESOURCES_JS = (
    "els => els.map(el => el.getAttribute('href') || el.getAttribute('src'))"
)
_SNIPPET_CHARS = 500
_IDLE_POLL_SECONDS = 0.05


def _ms(seconds: float) -> int:
    return int(seconds * 1000)


def find_menu_link(links: Sequence[MenuLink], label: str) -> Optional[MenuLink]:
    """First link whose normalized visible text equals ``label``."""
    wanted = normalize_label(label)
    for link in links:
        if normalize_label(link.text) == wanted:
            return link
    return None


async def goto(page: Page, url: str, config: MirrorConfig) -> None:
    """Navigate and wait until the network is idle."""
    logger.info("Navigating to: %s", url)
    try:
        await page.goto(
            url, wait_until="networkidle", timeout=_ms(config.navigation_timeout)
        )
    except PlaywrightTimeoutError as exc:
        raise NavigationTimeout(
            f"Network did not become idle within {config.navigation_timeout:.0f}s "
            f"while loading {url}"
        ) from exc


class NetworkTracker:
    """Counts a page's in-flight requests to detect quiet periods."""

    def __init__(self, page: Page) -> None:
        self._clock = asyncio.get_running_loop().time
        self.inflight: Set[Any] = set()
        self.last_activity = self._clock()
        page.on("request", self._started)
        page.on("requestfinished", self._finished)
        page.on("requestfailed", self._finished)

    def _started(self, request: Any) -> None:
        self.inflight.add(request)
        self.touch()

    def _finished(self, request: Any) -> None:
        self.inflight.discard(request)
        self.touch()

    def touch(self) -> None:
        self.last_activity = self._clock()

    def idle_for(self) -> Optional[float]:
        """Seconds since the last request activity, or None while requests are pending."""
        if self.inflight:
            return None
        return self._clock() - self.last_activity


async def wait_for_idle(tracker: NetworkTracker, config: MirrorConfig) -> None:
    """Wait until no request has been in flight for ``config.settle_delay`` seconds."""
    clock = asyncio.get_running_loop().time
    deadline = clock() + config.idle_timeout
    while True:
        idle = tracker.idle_for()
        if idle is not None and idle >= config.settle_delay:
            return
        if clock() >= deadline:
            raise NavigationTimeout(
                f"Network did not become idle within {config.idle_timeout:.0f}s "
                f"({len(tracker.inflight)} request(s) pending)"
            )
        await asyncio.sleep(_IDLE_POLL_SECONDS)


async def wait_for_element(page: Page, selector: str, config: MirrorConfig) -> None:
    try:
        await page.wait_for_selector(selector, timeout=_ms(config.element_timeout))
    except PlaywrightTimeoutError as exc:
        raise ElementNotFound(
            f"Element '{selector}' did not appear within {config.element_timeout:.0f}s"
        ) from exc


async def _select(page: Page, step: SelectOption, config: MirrorConfig) -> None:
    try:
        await page.select_option(
            step.selector, step.value, timeout=_ms(config.element_timeout)
        )
    except PlaywrightTimeoutError as exc:
        raise ElementNotFound(
            f"Could not select value {step.value} in {step.selector}"
        ) from exc


async def select_option(
    page: Page,
    step: SelectOption,
    config: MirrorConfig,
    tracker: NetworkTracker,
) -> None:
    """Choose ``step.value`` in the dropdown and let the page settle."""
    logger.info("Selecting '%s' in %s", step.label or step.value, step.selector)
    await wait_for_element(page, step.selector, config)
    options = await page.eval_on_selector_all(
        f"{step.selector} option", _COLLECT_OPTIONS_JS
    )
    logger.debug("%s options: %s", step.selector, options)
    if not any(option.get("value") == step.value for option in options):
        raise TargetNotFound(
            f"Option '{step.label or step.value}' (value {step.value}) "
            f"not found in {step.selector}!"
        )
    tracker.touch()
    if not step.navigates:
        await _select(page, step, config)
    else:
        try:
            async with page.expect_navigation(
                wait_until="networkidle", timeout=_ms(config.navigation_timeout)
            ):
                await _select(page, step, config)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(
                f"Selecting {step.value} in {step.selector} did not load a new page "
                f"within {config.navigation_timeout:.0f}s"
            ) from exc
    await wait_for_idle(tracker, config)


async def collect_menu_links(page: Page, step: FollowLink) -> List[MenuLink]:
    raw_links = await page.eval_on_selector_all(step.link_selector, _COLLECT_LINKS_JS)
    return [
        MenuLink(text=item.get("text") or "", href=item.get("href") or "")
        for item in raw_links
    ]


async def follow_link(page: Page, step: FollowLink, config: MirrorConfig) -> None:
    """Open the menu entry labelled ``step.label``."""
    logger.info("Navigating to '%s'...", step.label)
    await wait_for_element(page, step.container_selector, config)
    links = await collect_menu_links(page, step)
    logger.debug("Menu links: %s", [(link.text, link.href) for link in links])
    target = find_menu_link(links, step.label)
    if target is None or not target.href:
        raise TargetNotFound(f"Menu entry '{step.label}' not found!")
    await goto(page, target.href, config)


async def discover_resources(page: Page) -> List[str]:
    """Distinct stylesheet, script and image URLs in document order."""
    values = await page.eval_on_selector_all(RESOURCE_SELECTOR, _COLLECT_RESOURCES_JS)
    resources: List[str] = []
    seen = set()
    for value in values:
        if value and value not in seen:
            seen.add(value)
            resources.append(value)
    return resources


async def capture_debug_screenshot(page: Page, config: MirrorConfig) -> None:
    """Store a screenshot of the failing page for the debug route."""
    if not config.debug_screenshot:
        return
    try:
        config.public_dir.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(config.screenshot_path), full_page=True)
        logger.info("Saved debug screenshot to %s", config.screenshot_path)
    except (PlaywrightError, OSError) as exc:
        logger.warning("Could not save debug screenshot: %s", exc)


async def run_pipeline(
    session: BrowserSession,
    config: MirrorConfig,
    cache: AssetCache,
) -> CaptureResult:
    """Navigate to the report page and return it with asset URLs rewritten."""
    context = await session.acquire()
    page = await context.new_page()
    tracker = NetworkTracker(page)
    try:
        await goto(page, config.initial_url, config)
        for step in config.steps:
            if isinstance(step, SelectOption):
                await select_option(page, step, config, tracker)
            else:
                await follow_link(page, step, config)
        await wait_for_idle(tracker, config)
        resources = await discover_resources(page)
        html = await page.content()
        final_url = page.url
    except MirrorError as exc:
        logger.error("Error during scraping: %s", exc)
        await capture_debug_screenshot(page, config)
        raise
    except PlaywrightError as exc:
        logger.error("Browser error during scraping: %s", exc)
        await capture_debug_screenshot(page, config)
        raise MirrorError(f"Browser error: {exc}") from exc
    finally:
        try:
            await page.close()
        except PlaywrightError as exc:
            logger.warning("Error closing page: %s", exc)

    logger.info("External resources found: %d", len(resources))
    assets = []
    for resource_url in resources:
        assets.append(
            await cache.ensure_cached(
                resource_url, final_url, download=config.download_assets
            )
        )

    logger.debug("Raw HTML snippet (before replacement): %s", html[:_SNIPPET_CHARS])
    alias_map = build_alias_map(resources)
    rewritten, replacements = rewrite_html(html, alias_map)
    logger.info("Total replacements made: %d", replacements)
    logger.debug(
        "Updated HTML snippet (after replacement): %s", rewritten[:_SNIPPET_CHARS]
    )

    result = CaptureResult(
        final_url=final_url,
        html=rewritten,
        resources=[asset.resource for asset in assets],
        assets=assets,
        replacements=replacements,
    )
    if result.missing_assets:
        logger.warning(
            "%d of %d assets unavailable: %s",
            len(result.missing_assets),
            len(assets),
            ", ".join(asset.resource.original_url for asset in result.missing_assets),
        )
    return result
