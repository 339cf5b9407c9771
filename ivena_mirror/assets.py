"""Filename-keyed cache of the page's static assets."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import requests
from filetype import guess

from .models import AssetResult, AssetStatus, ResourceReference
from .utils import cache_filename

logger = logging.getLogger("ivena_mirror")

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
}
CHUNK_SIZE = 64 * 1024
SNIFF_BYTES = 262


def make_reference(url: str) -> ResourceReference:
    return ResourceReference(original_url=url, filename=cache_filename(url))


def resolve_resource_url(url: str, base_url: str) -> str:
    """Turn a page-relative resource reference into an absolute URL."""
    if url.startswith(("http://", "https://")):
        return url
    return urljoin(base_url, url)


def guess_media_type(path: Path) -> str:
    """Media type from the file extension, falling back to the file signature."""
    media_type, _ = mimetypes.guess_type(path.name)
    if media_type:
        return media_type
    with path.open("rb") as handle:
        kind = guess(handle.read(SNIFF_BYTES))
    if kind:
        return kind.mime
    return "application/octet-stream"


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.debug("Could not remove %s: %s", path, exc)


class AssetCache:
    """Asset directory where each file is looked up by its lower-cased basename.

    Entries are never refreshed: once a file exists it is served as is.
    """

    def __init__(
        self,
        directory: Path,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.directory = Path(directory)
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers.update(DEFAULT_HEADERS)
        self.session = session

    def path_for(self, name: str) -> Optional[Path]:
        """Cache path for ``name``, or None when it would leave the directory."""
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            return None
        return self.directory / name

    def lookup(self, name: str) -> Optional[Path]:
        """Existing cache file for ``name``."""
        path = self.path_for(name)
        if path is None or not path.is_file():
            return None
        return path

    def check(self, reference: ResourceReference) -> AssetResult:
        """Report whether a resource is already cached without touching the network."""
        if not reference.filename or reference.original_url.startswith("data:"):
            return AssetResult(reference, AssetStatus.SKIPPED)
        if self.lookup(reference.filename):
            logger.debug("File exists: %s", self.directory / reference.filename)
            return AssetResult(reference, AssetStatus.CACHED)
        logger.warning(
            "File not found: %s (using pre-downloaded assets)",
            self.directory / reference.filename,
        )
        return AssetResult(reference, AssetStatus.MISSING)

    def fetch(self, reference: ResourceReference, base_url: str) -> AssetResult:
        """Download a resource into the cache unless a file of that name exists."""
        if not reference.filename or reference.original_url.startswith("data:"):
            return AssetResult(reference, AssetStatus.SKIPPED)
        destination = self.directory / reference.filename
        if destination.is_file():
            logger.debug("File exists: %s", destination)
            return AssetResult(reference, AssetStatus.CACHED)

        absolute_url = resolve_resource_url(reference.original_url, base_url)
        logger.info("Downloading %s to %s", absolute_url, destination)
        partial: Optional[Path] = None
        try:
            with self.session.get(
                absolute_url, stream=True, timeout=self.timeout
            ) as resp:
                resp.raise_for_status()
                self.directory.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    dir=self.directory,
                    prefix=f".{reference.filename}.",
                    suffix=".part",
                    delete=False,
                ) as handle:
                    partial = Path(handle.name)
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
            if destination.is_file():
                # another capture finished the same file first
                _discard(partial)
                logger.debug("File appeared while downloading: %s", destination)
                return AssetResult(reference, AssetStatus.CACHED, absolute_url)
            os.replace(partial, destination)
        except requests.RequestException as exc:
            if partial is not None:
                _discard(partial)
            logger.warning("Failed to download %s: %s", absolute_url, exc)
            return AssetResult(
                reference, AssetStatus.FETCH_FAILED, absolute_url, str(exc)
            )
        except OSError as exc:
            if partial is not None:
                _discard(partial)
            logger.warning("Failed to save %s to %s: %s", absolute_url, destination, exc)
            return AssetResult(
                reference, AssetStatus.WRITE_FAILED, absolute_url, str(exc)
            )

        logger.info("Downloaded %s to %s", absolute_url, destination)
        return AssetResult(reference, AssetStatus.DOWNLOADED, absolute_url)

    async def ensure_cached(
        self, resource_url: str, base_url: str, download: bool = True
    ) -> AssetResult:
        """Make ``resource_url`` available locally; failures are returned, not raised."""
        reference = make_reference(resource_url)
        if not download:
            return self.check(reference)
        return await asyncio.to_thread(self.fetch, reference, base_url)
