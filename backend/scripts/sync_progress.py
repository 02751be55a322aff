"""Resume the persisted session and run a catch-up XP sync against the feeds.

Useful after an outage of the progress service: the cached XP is raised to
whatever the completion feeds now report, and the result is printed as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

from progress_cache.config import get_settings
from progress_cache.controller import SessionController
from progress_cache.logging_config import configure_logging
from progress_cache.reconciliation import SyncResult

LOGGER = logging.getLogger("progress_cache.scripts.sync")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a catch-up XP sync for the persisted session.")
    parser.add_argument(
        "--feed",
        choices=("tasks", "modules", "all"),
        default="all",
        help="Which completion feed to reconcile against (default: all).",
    )
    return parser.parse_args(argv)


def _result_payload(result: SyncResult) -> dict:
    return asdict(result)


async def run(feed: str) -> int:
    controller = SessionController.create(get_settings())
    try:
        user = controller.session.load()
        if user is None:
            LOGGER.error("No persisted session found; sign in first.")
            return 1
        results = []
        if feed in ("tasks", "all"):
            results.append(await controller.sync_completed_tasks())
        if feed in ("modules", "all"):
            results.append(await controller.sync_completed_modules())
        print(json.dumps([_result_payload(result) for result in results], default=str))
        return 0 if all(result.status != "failed" for result in results) else 2
    finally:
        await controller.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    configure_logging()
    args = parse_args(argv)
    try:
        return asyncio.run(run(args.feed))
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("XP sync failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
