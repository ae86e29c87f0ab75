#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Chat Table Watch - Main Entry Point

This module serves as the main entry point for the application: one-off
scans of a saved page or a live URL, live watching of a page, or the API
server.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from config.settings import Settings, load_settings
from controller.batch import BatchGrouper
from controller.registry import DetectionRegistry, RegistryEvent
from extraction.dom import HostDocument
from extraction.models import BatchTableDetectionResult
from utils.errors import TableWatchError, error_to_user_message, log_exception
from utils.logging import setup_logging, setup_structured_logging

logger = logging.getLogger("chat_table_watch")


def scan_file(path: str, source_url: str, settings: Settings) -> BatchTableDetectionResult:
    """
    Detect the tables of a saved page.

    Args:
        path: HTML file
        source_url: Address the page was saved from, used to pick the platform
        settings: Application settings

    Returns:
        Batch view of the page
    """
    with open(path, "r", encoding="utf-8") as f:
        html = f.read()

    document = HostDocument(html, source_url)
    registry = DetectionRegistry(document, settings)
    registry.rescan("cli")
    return BatchGrouper(registry, settings).snapshot()


async def scan_url(url: str, settings: Settings) -> BatchTableDetectionResult:
    """
    Open a URL in a browser and detect its tables.

    Args:
        url: Page to open
        settings: Application settings

    Returns:
        Batch view of the page
    """
    from browser.manager import BrowserManager
    from browser.navigation import navigate_to, wait_for_content
    from browser.watcher import PageWatcher

    async with BrowserManager(settings) as manager:
        page = await manager.get_page()
        await navigate_to(page, url, settings)
        await wait_for_content(page, timeout=settings.action_timeout)

        watcher = PageWatcher(page, settings)
        await watcher.start()
        try:
            return watcher.batch()
        finally:
            await watcher.stop()


async def watch_url(url: str, settings: Settings, duration: Optional[float]) -> None:
    """
    Open a URL and print registry events as JSON lines until interrupted.

    Args:
        url: Page to watch
        settings: Application settings
        duration: Seconds to watch, forever when None
    """
    from browser.manager import BrowserManager
    from browser.navigation import navigate_to
    from browser.watcher import PageWatcher

    def print_events(events: List[RegistryEvent]) -> None:
        for event in events:
            print(json.dumps(event.to_dict(), ensure_ascii=False), flush=True)

    async with BrowserManager(settings) as manager:
        page = await manager.get_page()
        await navigate_to(page, url, settings)

        watcher = PageWatcher(page, settings)
        watcher.on_change(print_events)
        print_events(await watcher.start())
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            await watcher.stop()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Detect and extract tables from AI chat pages")
    parser.add_argument(
        "--mode",
        type=str,
        choices=["scan", "watch", "api"],
        default="scan",
        help="Scan once, watch a live page, or run the API server"
    )
    parser.add_argument("--file", type=str, help="Saved HTML page to scan")
    parser.add_argument("--url", type=str, help="Page to open in the browser")
    parser.add_argument(
        "--source-url",
        type=str,
        default="",
        help="Original address of a saved page, used to pick the platform"
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Seconds to watch before exiting (watch mode only)"
    )
    parser.add_argument("--config", type=str, help="JSON settings file")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind the API server to (API mode only)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind the API server to (API mode only)"
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Write logs as JSON lines"
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the application.

    Returns:
        Process exit code
    """
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except TableWatchError as e:
        print(error_to_user_message(e), file=sys.stderr)
        return 2

    if args.headless:
        settings.headless = True
    if args.debug:
        settings.log_level = "DEBUG"
    if args.json_logs:
        settings.json_logs = True

    if settings.json_logs:
        setup_structured_logging(log_level=settings.log_level, log_file=settings.log_file)
    else:
        setup_logging(log_level=settings.log_level, log_file=settings.log_file)

    try:
        if args.mode == "api":
            import uvicorn
            from api.server import create_app

            logger.info(f"Starting API server on {args.host}:{args.port}")
            uvicorn.run(create_app(settings), host=args.host, port=args.port)
            return 0

        if args.mode == "watch":
            if not args.url:
                print("--url is required in watch mode", file=sys.stderr)
                return 2
            asyncio.run(watch_url(args.url, settings, args.duration))
            return 0

        if args.file:
            batch = scan_file(args.file, args.source_url, settings)
        elif args.url:
            batch = asyncio.run(scan_url(args.url, settings))
        else:
            print("Either --file or --url is required in scan mode", file=sys.stderr)
            return 2

        print(json.dumps(batch.to_dict(), ensure_ascii=False, indent=2))
        return 0

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
        return 0
    except TableWatchError as e:
        log_exception(e, include_traceback=args.debug)
        print(error_to_user_message(e), file=sys.stderr)
        return 1
    except OSError as e:
        logger.error(f"Could not read input: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
