"""Data models used throughout the mirror pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class SelectOption:
    """Pick an option of a dropdown by its value.

    ``navigates`` marks dropdowns whose change handler loads a new document.
    """

    selector: str
    value: str
    label: str = ""
    navigates: bool = False


@dataclass(frozen=True)
class FollowLink:
    """Follow the menu link whose normalized text equals ``label``."""

    container_selector: str
    label: str

    @property
    def link_selector(self) -> str:
        return f"{self.container_selector} a"


@dataclass
class MenuLink:
    """Visible text and resolved destination of a menu anchor."""

    text: str
    href: str


@dataclass
class ResourceReference:
    """Asset URL discovered in the rendered page."""

    original_url: str
    filename: str


class AssetStatus(str, Enum):
    CACHED = "cached"
    DOWNLOADED = "downloaded"
    FETCH_FAILED = "fetch_failed"
    WRITE_FAILED = "write_failed"
    MISSING = "missing"
    SKIPPED = "skipped"


@dataclass
class AssetResult:
    """Outcome of making one resource available in the asset cache."""

    resource: ResourceReference
    status: AssetStatus
    source_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.status in (AssetStatus.CACHED, AssetStatus.DOWNLOADED)


@dataclass
class CaptureResult:
    """Rewritten page produced by a full pipeline run."""

    final_url: str
    html: str
    resources: List[ResourceReference] = field(default_factory=list)
    assets: List[AssetResult] = field(default_factory=list)
    replacements: int = 0

    @property
    def missing_assets(self) -> List[AssetResult]:
        return [asset for asset in self.assets if not asset.available]
