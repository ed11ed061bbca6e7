# main.py

"""Entry point for the storefront cache maintenance CLI."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import Settings
from src.models.cache_models import ResourceKind

logger = logging.getLogger("storefront.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    kinds = ", ".join(k.value for k in ResourceKind)

    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Headless WordPress / WooCommerce storefront cache tools.",
        epilog=f"Cache kinds: all, {kinds}",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    refresh = commands.add_parser("refresh", help="Recache from the origin.")
    refresh.add_argument("kind", nargs="?", default="all")

    commands.add_parser("stats", help="Show cached entries and metadata.")

    clear = commands.add_parser("clear", help="Delete cache files.")
    clear.add_argument("kind", nargs="?", default="all")

    images = commands.add_parser("images", help="Image cache maintenance.")
    image_commands = images.add_subparsers(dest="image_command", required=True)
    cleanup = image_commands.add_parser(
        "cleanup", help="Evict images not accessed recently."
    )
    cleanup.add_argument(
        "--max-age-days",
        type=int,
        default=Settings.IMAGE_MAX_AGE_DAYS,
        dest="max_age_days",
    )
    image_commands.add_parser("stats", help="Show image cache statistics.")

    commands.add_parser("health", help="Probe the origin APIs.")

    webhook = commands.add_parser("webhook", help="Webhook utilities.")
    webhook_commands = webhook.add_subparsers(
        dest="webhook_command", required=True
    )
    replay = webhook_commands.add_parser(
        "replay", help="Apply a saved webhook payload to the cache."
    )
    replay.add_argument("file")
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    from src.cli import runner

    if args.command == "refresh":
        return asyncio.run(runner.run_refresh(args.kind))
    if args.command == "stats":
        return runner.run_stats()
    if args.command == "clear":
        return runner.run_clear(args.kind)
    if args.command == "images":
        if args.image_command == "cleanup":
            return runner.run_images_cleanup(args.max_age_days)
        return runner.run_images_stats()
    if args.command == "health":
        return asyncio.run(runner.run_health_check())
    if args.command == "webhook":
        return asyncio.run(runner.run_webhook_replay(args.file))
    return 1


def main(argv: list[str] | None = None) -> None:
    log_file = setup_logging()
    logger.info("storefront starting, log file: %s", log_file)

    args = _build_parser().parse_args(argv)
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error running %s", args.command, exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
