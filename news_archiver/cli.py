from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path

from .core.config import load_config
from .core.jobs import ARTICLE_JOB, SITE_JOB, JobStore
from .core.log import get_logger
from .core.pipeline import ArchivePipeline
from .core.storage.store import ArchiveStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Archive news articles into a date-partitioned folder tree."
    )
    parser.add_argument(
        "--params",
        type=Path,
        help="Optional path to params.yaml override.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    site = sub.add_parser("site", help="Discover and archive articles from a listing page")
    site.add_argument("url", help="Listing or home page URL")
    site.add_argument(
        "--max-articles",
        type=int,
        help="Archive at most this many discovered articles (overrides params).",
    )
    site.add_argument(
        "--backend",
        choices=["selenium", "http"],
        help="Page fetcher to use (overrides params).",
    )
    site.add_argument(
        "--no-media", action="store_true", help="Do not download images or videos"
    )

    article = sub.add_parser("article", help="Archive a single article URL")
    article.add_argument("url", help="Article URL")
    article.add_argument(
        "--backend",
        choices=["selenium", "http"],
        help="Page fetcher to use (overrides params).",
    )
    article.add_argument(
        "--no-media", action="store_true", help="Do not download images or videos"
    )

    export = sub.add_parser("export", help="Rebuild the aggregate files of a domain archive")
    export.add_argument("domain", help="Domain folder name under the archive root")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    get_logger(level=getattr(logging, args.log_level.upper()))

    config = load_config(params_path=args.params) if args.params else load_config()

    if args.command == "export":
        store = ArchiveStore(config.output.root, args.domain, options=config.archive)
        if not store.domain_dir.is_dir():
            logger.error("No archive found at %s", store.domain_dir)
            return 1
        store.initialize()
        summary = store.export_all()
        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return 0

    if getattr(args, "max_articles", None) is not None:
        config.limits.max_articles = args.max_articles if args.max_articles > 0 else None
    if args.backend:
        config.fetch.backend = args.backend
    if args.no_media:
        config.media.download_media = False

    jobs = JobStore()
    kind = SITE_JOB if args.command == "site" else ARTICLE_JOB
    job = jobs.create(kind, args.url)
    pipeline = ArchivePipeline(config)
    pipeline.bus.subscribe(jobs.tracker(job.id))
    if kind == SITE_JOB:
        stats = pipeline.run(args.url)
    else:
        stats = pipeline.archive_article(args.url)

    payload = {"stats": asdict(stats), "job": jobs.snapshot(job.id)}
    payload["job"].pop("logs", None)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if stats.status == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
