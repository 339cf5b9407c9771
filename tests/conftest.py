"""Shared fakes standing in for Playwright pages, contexts and HTTP sessions."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import requests
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ivena_mirror.config import INITIAL_URL, MirrorConfig
from ivena_mirror.pipeline import RESOURCE_SELECTOR

HOST = "https://www.ivena-niedersachsen.de"
REGION_URL = f"{HOST}/leitstellenansicht.php?bereich_id=105001&oe=73201"
SUBJECT_URL = f"{HOST}/leitstellenansicht.php?bereich_id=105001&fb_id=fb00000000260_01"
DEPARTMENT_URL = f"{SUBJECT_URL}&abteilung=1"

REPORT_HTML = """<!DOCTYPE html>
<html><head>
<link rel="stylesheet" href="css/Leitstellenansicht4.3.0.css?v=2">
<script src="/js/app.js"></script>
</head><body>
<img src="https://www.ivena-niedersachsen.de/img/Logo.PNG" alt="IVENA">
<a href="leitstellenansicht.php?bereich_id=105001">Zur&uuml;ck</a>
<table class="kapazitaet"><tr><td>Allgemeine Innere Medizin</td></tr></table>
</body></html>
"""

REPORT_RESOURCES = [
    "css/Leitstellenansicht4.3.0.css?v=2",
    "/js/app.js",
    "https://www.ivena-niedersachsen.de/img/Logo.PNG",
]


def build_site() -> Dict[str, Dict[str, Any]]:
    return {
        INITIAL_URL: {
            "selectors": {"#anonymous_oe"},
            "options": [
                {"value": "", "text": "Bitte wählen"},
                {"value": "73201", "text": "Region Hannover"},
                {"value": "73202", "text": "Landkreis Hildesheim"},
            ],
            "on_select": REGION_URL,
        },
        REGION_URL: {
            "selectors": {".standardmenue"},
            "links": [
                {"text": "Chirurgie", "href": f"{HOST}/chirurgie"},
                {"text": "Innere\u00a0Medizin", "href": SUBJECT_URL},
            ],
        },
        SUBJECT_URL: {
            "selectors": {".standardmenue"},
            "links": [
                {"text": "Kardiologie", "href": f"{HOST}/kardiologie"},
                {"text": "ALLGEMEINE INNERE MEDIZIN ", "href": DEPARTMENT_URL},
            ],
        },
        DEPARTMENT_URL: {
            "html": REPORT_HTML,
            "resources": REPORT_RESOURCES + ["/js/app.js"],
        },
    }


class FakePage:
    """Scripted page following the menu structure of the report site."""

    def __init__(self, site: Dict[str, Dict[str, Any]], timeout_urls=()) -> None:
        self.site = site
        self.timeout_urls = set(timeout_urls)
        self.url = "about:blank"
        self.visited: List[str] = []
        self.selected: List[str] = []
        self.screenshots: List[str] = []
        self.handlers: Dict[str, List[Any]] = {}
        self.navigations_expected = 0
        self.closed = False

    @property
    def current(self) -> Dict[str, Any]:
        return self.site.get(self.url, {})

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 0) -> None:
        if url in self.timeout_urls:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.url = url
        self.visited.append(url)

    async def wait_for_selector(self, selector: str, timeout: int = 0) -> None:
        if selector not in self.current.get("selectors", set()):
            raise PlaywrightTimeoutError(f"waiting for locator('{selector}')")

    async def eval_on_selector_all(self, selector: str, expression: str) -> List[Any]:
        if selector.endswith(" option"):
            return list(self.current.get("options", []))
        if selector.endswith(" a"):
            return list(self.current.get("links", []))
        if selector == RESOURCE_SELECTOR:
            return list(self.current.get("resources", []))
        return []

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, request: Any) -> None:
        for handler in self.handlers.get(event, []):
            handler(request)

    @asynccontextmanager
    async def expect_navigation(self, wait_until: str = "load", timeout: int = 0):
        self.navigations_expected += 1
        before = len(self.visited)
        yield
        if len(self.visited) == before:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def select_option(self, selector: str, value: str, timeout: int = 0) -> None:
        self.selected.append(value)
        for request in self.current.get("select_requests", []):
            self.emit("request", request)
            if not self.current.get("hang_requests"):
                self.emit("requestfinished", request)
        target = self.current.get("on_select")
        if target:
            await self.goto(target)

    async def content(self) -> str:
        return self.current.get("html", "<html><body></body></html>")

    async def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> bytes:
        data = b"\x89PNG\r\n\x1a\n"
        if path:
            Path(path).write_bytes(data)
            self.screenshots.append(path)
        return data

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, pages: List[FakePage]) -> None:
        self._pages = list(pages)
        self.opened: List[FakePage] = []

    async def new_page(self) -> FakePage:
        page = self._pages.pop(0)
        self.opened.append(page)
        return page


class FakeSession:
    """Stand-in for BrowserSession handing out scripted pages."""

    def __init__(self, *pages: FakePage) -> None:
        self.context = FakeContext(list(pages))
        self.acquired = 0
        self.closed = False

    async def acquire(self) -> FakeContext:
        self.acquired += 1
        return self.context

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(self, body: bytes = b"", status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), 4):
            yield self.body[start : start + 4]


class FakeHttpSession:
    """Records GET requests and answers from a URL -> response table."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = responses or {}
        self.requested: List[str] = []

    def get(self, url: str, stream: bool = False, timeout: float = 0) -> FakeResponse:
        self.requested.append(url)
        response = self.responses.get(url)
        if response is None:
            raise requests.ConnectionError(f"Connection refused: {url}")
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def config(tmp_path: Path) -> MirrorConfig:
    return MirrorConfig(
        public_dir=tmp_path / "public",
        profile_dir=tmp_path / "profile",
        settle_delay=0,
    )


@pytest.fixture
def site() -> Dict[str, Dict[str, Any]]:
    return build_site()
