"""Configuration objects and constants for the mirror."""

from __future__ import annotations

import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .models import FollowLink, SelectOption

BASE_URL = "https://www.ivena-niedersachsen.de"
INITIAL_URL = (
    f"{BASE_URL}/leitstellenansicht.php"
    "?si=0f328b4c5bb6abcf174ed4d87737b02e_01&bereich_id=105001"
)

DEFAULT_PORT = 3000
DEFAULT_PUBLIC_DIR = Path("public")
PROFILE_DIR_NAME = "ivena_mirror_profile"
DEBUG_SCREENSHOT_NAME = "debug_screenshot.png"
TEST_ASSET_NAME = "leitstellenansicht4.3.0.css"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

REGION_HANNOVER = "73201"
MENU_SELECTOR = ".standardmenue"

NAVIGATION_STEPS: Tuple[Union[SelectOption, FollowLink], ...] = (
    SelectOption("#anonymous_oe", REGION_HANNOVER, "Region Hannover"),
    FollowLink(MENU_SELECTOR, "innere medizin"),
    FollowLink(MENU_SELECTOR, "allgemeine innere medizin"),
)


def default_profile_dir() -> Path:
    """Browser profile location inside the system temp directory."""
    return Path(tempfile.gettempdir()) / PROFILE_DIR_NAME


def default_launch_args(platform: Optional[str] = None) -> List[str]:
    """Chromium flags for the current platform."""
    platform = platform or sys.platform
    args = ["--no-sandbox", "--disable-setuid-sandbox"]
    if platform != "win32":
        args.extend(
            [
                "--disable-dev-shm-usage",
                "--disable-gpu",
                "--no-first-run",
                "--no-zygote",
            ]
        )
    return args


@dataclass
class MirrorConfig:
    """Top-level settings that control the browser, the pipeline and the server."""

    public_dir: Path = DEFAULT_PUBLIC_DIR
    assets_dir: Optional[Path] = None
    profile_dir: Path = field(default_factory=default_profile_dir)
    initial_url: str = INITIAL_URL
    steps: Tuple[Union[SelectOption, FollowLink], ...] = NAVIGATION_STEPS
    navigation_timeout: float = 30.0
    element_timeout: float = 10.0
    idle_timeout: float = 10.0
    # quiet period required before the network counts as idle
    settle_delay: float = 1.0
    download_timeout: float = 15.0
    download_assets: bool = True
    debug_screenshot: bool = True
    headless: bool = True
    executable_path: Optional[Path] = None
    launch_args: List[str] = field(default_factory=default_launch_args)
    viewport: Tuple[int, int] = (800, 600)

    def __post_init__(self) -> None:
        self.public_dir = Path(self.public_dir)
        if self.assets_dir is None:
            self.assets_dir = self.public_dir / "assets"
        self.assets_dir = Path(self.assets_dir)
        self.profile_dir = Path(self.profile_dir)

    @property
    def screenshot_path(self) -> Path:
        return self.public_dir / DEBUG_SCREENSHOT_NAME

    def ensure_directories(self) -> None:
        """Create the public, assets and profile directories if missing."""
        for directory in (self.public_dir, self.assets_dir, self.profile_dir):
            directory.mkdir(parents=True, exist_ok=True)
