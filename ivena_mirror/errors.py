"""Fatal pipeline errors. Best-effort asset failures are reported as AssetResult."""

from __future__ import annotations


class MirrorError(RuntimeError):
    """Base class for failures that abort a capture."""


class LaunchError(MirrorError):
    """The browser engine could not be located or started."""


class NavigationTimeout(MirrorError):
    """Network activity did not settle within the allotted time."""


class ElementNotFound(MirrorError):
    """An expected control or menu never appeared on the page."""


class TargetNotFound(MirrorError):
    """The expected dropdown value or menu label is absent."""
