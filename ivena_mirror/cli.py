"""Command-line entry point for the IVENA mirror."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import Iterable, Optional, Sequence

import uvicorn

from .assets import AssetCache
from .browser import BrowserSession
from .config import DEFAULT_PORT, DEFAULT_PUBLIC_DIR, MirrorConfig, default_profile_dir
from .errors import MirrorError
from .pipeline import run_pipeline
from .server import create_app

logger = logging.getLogger("ivena_mirror.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return ("serve",)
    first = argv[0]
    if first in commands or first in ("-h", "--help"):
        return argv
    return ("serve", *argv)


def _env_port() -> int:
    value = os.getenv("PORT")
    if not value:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring invalid PORT=%r; using %d", value, DEFAULT_PORT)
        return DEFAULT_PORT


def _add_browser_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--public-dir",
        default=DEFAULT_PUBLIC_DIR,
        type=Path,
        help="Directory holding static files and the debug screenshot",
    )
    parser.add_argument(
        "--assets-dir",
        default=None,
        type=Path,
        help="Asset cache directory (default: <public-dir>/assets)",
    )
    parser.add_argument(
        "--profile-dir",
        default=default_profile_dir(),
        type=Path,
        help="Chromium profile directory",
    )
    parser.add_argument(
        "--executable-path",
        default=os.getenv("CHROMIUM_PATH") or None,
        type=Path,
        help="Chromium executable to launch instead of the Playwright build",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds without network activity before the page counts as idle",
    )
    parser.add_argument(
        "--no-download",
        action="store_true",
        help="Only use assets already present in the cache",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Capture the IVENA hospital-capacity report via Playwright and serve it locally.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser(
        "serve", help="Serve the rewritten report page over HTTP"
    )
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to bind",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=_env_port(),
        help="Port to listen on (default: $PORT or 3000)",
    )
    _add_browser_arguments(serve_parser)

    capture_parser = subparsers.add_parser(
        "capture", help="Capture the report page once and write the HTML"
    )
    capture_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="File to write the rewritten HTML to (default: stdout)",
    )
    _add_browser_arguments(capture_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def build_config(args: argparse.Namespace) -> MirrorConfig:
    return MirrorConfig(
        public_dir=args.public_dir,
        assets_dir=args.assets_dir,
        profile_dir=args.profile_dir,
        navigation_timeout=args.timeout,
        settle_delay=args.wait,
        download_assets=not args.no_download,
        headless=not args.headed,
        executable_path=args.executable_path,
    )


def _run_serve(args: argparse.Namespace) -> None:
    config = build_config(args)
    app = create_app(config)
    logger.info("Server running at http://localhost:%d", args.port)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


async def _capture_once(config: MirrorConfig) -> str:
    session = BrowserSession(config)
    cache = AssetCache(config.assets_dir, timeout=config.download_timeout)
    try:
        result = await run_pipeline(session, config, cache)
    finally:
        await session.close()
    return result.html


def _run_capture(args: argparse.Namespace) -> int:
    config = build_config(args)
    config.ensure_directories()
    start = time.perf_counter()
    try:
        html = asyncio.run(_capture_once(config))
    except MirrorError as exc:
        logger.error("Capture failed: %s", exc)
        return 1
    elapsed = time.perf_counter() - start

    if args.output is None:
        sys.stdout.write(html if html.endswith("\n") else html + "\n")
        sys.stdout.flush()
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(html, encoding="utf-8")
        logger.info("Saved HTML to %s", args.output)
    logger.info("Finished in %.2fs", elapsed)
    return 0


def main(argv: Sequence[str] | None = None) -> Optional[int]:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "serve":
        _run_serve(args)
        return None
    return _run_capture(args)


if __name__ == "__main__":
    sys.exit(main())
