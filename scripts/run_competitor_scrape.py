"""
Competitor sitemap and content tooling from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from app.scraping.errors import FetchError, NoSitesToUpdateError, UpdateAlreadyRunningError
from app.services.competitor_scraping_service import CompetitorScrapingService


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Competitor sitemap refresh and page parsing.")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level.")
    commands = parser.add_subparsers(dest="command", required=True)

    update = commands.add_parser(
        "update",
        help="Refresh every tracked sitemap now. Flags apply to this run only.",
    )
    update.add_argument("--max-concurrent", type=int, default=None)
    update.add_argument("--max-retries", type=int, default=None)
    update.add_argument(
        "--all-sites",
        action="store_true",
        help="Include disabled websites.",
    )

    commands.add_parser("status", help="Show scheduler config and last update time.")

    history = commands.add_parser("history", help="Show recent update runs.")
    history.add_argument("--limit", type=int, default=10)

    commands.add_parser("websites", help="List tracked competitor websites.")

    sitemap = commands.add_parser("sitemap", help="Fetch one website's sitemap.")
    sitemap.add_argument("website_id")
    sitemap.add_argument("--show-urls", action="store_true")

    parse = commands.add_parser("parse", help="Fetch and parse one game page.")
    parse.add_argument("url")
    parse.add_argument("--links", action="store_true", help="Include page links.")
    parse.add_argument("--images", action="store_true", help="Include page images.")

    check = commands.add_parser("check", help="Check whether a URL is reachable.")
    check.add_argument("url")
    return parser


def _run(service: CompetitorScrapingService, args: argparse.Namespace) -> tuple[int, Any]:
    if args.command == "update":
        try:
            result = service.scheduler.trigger_manual_update(
                force=True,
                max_concurrent=args.max_concurrent,
                max_retries=args.max_retries,
                only_enabled_sites=False if args.all_sites else None,
            )
        except (NoSitesToUpdateError, UpdateAlreadyRunningError, ValueError) as exc:
            return 1, {"error": str(exc)}
        return (0 if result.failed_sites == 0 else 1), result.to_dict()

    if args.command == "status":
        last_update = service.scheduler.get_last_update_time()
        return 0, {
            "config": service.scheduler.get_config().to_dict(),
            "last_update": last_update.isoformat() if last_update else None,
            "should_update": service.scheduler.should_update(),
            "is_running": service.scheduler.is_running,
        }

    if args.command == "history":
        return 0, [item.to_dict() for item in service.scheduler.get_task_history(args.limit)]

    if args.command == "websites":
        return 0, [website.to_dict() for website in service.get_websites()]

    if args.command == "sitemap":
        try:
            snapshot = service.refresh_site(args.website_id)
        except ValueError as exc:
            return 1, {"error": str(exc)}
        payload = snapshot.to_dict()
        if not args.show_urls:
            payload.pop("urls", None)
        return (0 if snapshot.succeeded else 1), payload

    if args.command == "parse":
        config = {"extract_links": args.links, "extract_images": args.images}
        try:
            result = service.fetch_and_parse(args.url, config)
        except FetchError as exc:
            return 1, {"error": str(exc), "code": exc.code, "retry_count": exc.retry_count}
        return (0 if result.success else 1), result.model_dump(mode="json")

    if args.command == "check":
        accessible = service.fetcher.is_accessible(args.url)
        return (0 if accessible else 1), {"url": args.url, "accessible": accessible}

    return 2, {"error": f"Unknown command '{args.command}'."}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())

    service = CompetitorScrapingService()
    try:
        exit_code, payload = _run(service, args)
    finally:
        service.close()

    print(json.dumps(payload, indent=2, default=str))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
