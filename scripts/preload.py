#!/usr/bin/env python3
"""CLI to preload the resources declared in a manifest."""
import argparse
import asyncio
import json
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from preloader.config_manager import ConfigManager, PreloaderConfig
from preloader.errors import DependencyError, InvalidResourceError
from preloader.logging_config import setup_logging
from preloader.manifest import load_manifest
from preloader.progress import ConsoleReporter
from preloader.scheduler import PriorityScheduler


async def preload_async(args: argparse.Namespace) -> int:
    """Run one preload pass.

    Returns:
        Exit code (0 = all loaded, 1 = some failed, 2 = configuration error)
    """
    logger = logging.getLogger("preload")

    try:
        config = ConfigManager().load_config(args.config)
        manifest = load_manifest(
            args.manifest,
            default_timeout=config.default_timeout,
            default_retries=config.default_retries,
        )
        overrides = {}
        if manifest.concurrency:
            overrides["concurrency"] = manifest.concurrency
        if args.concurrency:
            overrides["concurrency"] = args.concurrency
        if args.validate_dependencies:
            overrides["validate_dependencies"] = True
        if overrides:
            config = PreloaderConfig.from_dict({**config.to_dict(), **overrides})
    except (ValueError, RuntimeError, OSError) as e:
        logger.error(f"Configuration error: {e}")
        return 2

    async with PriorityScheduler(config) as scheduler:
        reporter = ConsoleReporter(
            total=len(manifest.resources), show_bar=not args.no_progress
        ).attach(scheduler.hub)
        try:
            scheduler.register_many(manifest.resources)
            report = await scheduler.run()
        except (InvalidResourceError, DependencyError) as e:
            reporter.close()
            logger.error(f"Configuration error: {e}")
            return 2

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(f"Loaded ({len(report.success)}): {', '.join(report.success)}")
        print(f"Failed ({len(report.failed)}): {', '.join(report.failed)}")
        print(f"Duration: {report.duration_ms:.0f}ms")

    return 0 if report.ok else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Preload resources from a manifest")
    parser.add_argument("manifest", help="Path to YAML or JSON manifest")
    parser.add_argument("--config", help="Path to config JSON")
    parser.add_argument(
        "--concurrency", help="Per-class limits, e.g. 'high=3,medium=2,low=1'"
    )
    parser.add_argument(
        "--validate-dependencies",
        action="store_true",
        help="Fail before starting on unregistered prerequisites or cycles",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else None)
    sys.exit(asyncio.run(preload_async(args)))


if __name__ == "__main__":
    main()
