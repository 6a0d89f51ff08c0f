#!/usr/bin/env python3
"""
Example demonstrating programmatic preloading with priorities and dependencies.

Registers a small application asset set, subscribes to scheduler events and
waits for the completion report. Point BASE_URL at a server that serves the
assets, or leave it as is to watch retries and failures play out.
"""
import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from preloader import EventKind, PreloaderConfig, PriorityScheduler, ResourceDescriptor

BASE_URL = os.environ.get("PRELOAD_BASE_URL", "http://localhost:8000")


def build_resources():
    """Asset set: config and logo first, app bundle after config, then the rest."""
    resources = [
        ResourceDescriptor("config", "json", f"{BASE_URL}/assets/config.json",
                           priority="high", timeout=5.0, retries=2),
        ResourceDescriptor("logo", "image", f"{BASE_URL}/assets/logo.png", priority="high"),
        ResourceDescriptor("app-bundle", "script", f"{BASE_URL}/js/app.py",
                           priority="high", depends_on=["config"]),
        ResourceDescriptor("theme", "json", f"{BASE_URL}/assets/theme.json",
                           priority="medium", retries=1),
        ResourceDescriptor("terms", "text", f"{BASE_URL}/assets/terms.txt", priority="low"),
    ]
    for i in range(20):
        resources.append(
            ResourceDescriptor(f"img-{i}", "image", f"{BASE_URL}/assets/img-{i}.jpg",
                               priority="low")
        )
    return resources


async def preload_example():
    """Example of a full preload run with event subscriptions."""

    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    config = PreloaderConfig(concurrency={"high": 3, "medium": 2, "low": 1})

    async with PriorityScheduler(config) as scheduler:
        scheduler.on(EventKind.LOAD, lambda r: logger.info(f"Loaded: {r.id}"))
        scheduler.on(EventKind.ERROR, lambda r, err: logger.info(f"Failed: {r.id} ({err})"))
        scheduler.on(EventKind.RETRY, lambda r, n: logger.info(f"Retrying {r.id} (Attempt {n})"))
        scheduler.on(
            EventKind.PROGRESS,
            lambda s: logger.info(
                f"Progress: {s.percentage}% ({s.loaded}/{s.total}), eta {s.eta_ms:.0f}ms"
            ),
        )

        scheduler.register_many(build_resources())
        report = await scheduler.run()

    logger.info(f"Success: {report.success}")
    logger.info(f"Failed: {report.failed}")
    logger.info(f"Duration: {report.duration_ms:.0f}ms")


if __name__ == "__main__":
    asyncio.run(preload_example())
