from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests
from dotenv import load_dotenv
from tqdm import tqdm

from . import events
from .config import ArchiverConfig, load_config
from .discovery.links import LinkDiscoverer
from .errors import ArchiverError, ExtractionTooShort, FetchError, InvalidArticleError
from .events import EventBus
from .extract.dom import parse_html
from .extract.extractor import Extractor
from .fetch.fetcher import PageFetcher, build_fetcher, build_session
from .media.acquirer import MediaAcquirer
from .models import ArchiveEntry, Article, MediaManifest, RenderedPage
from .storage.store import ArchiveStore
from .utils import archive_domain, staging_key_for

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineStats:
    start_url: str
    domain: str
    discovered: int = 0
    processed: int = 0
    archived: int = 0
    duplicates: int = 0
    failed: int = 0
    retries: int = 0
    status: str = "completed"
    error: Optional[str] = None
    archive_dir: str = ""
    timings_sec: Dict[str, float] = field(default_factory=dict)


class ArchivePipeline:
    """Discover, extract, deduplicate, acquire media and commit, one page at a time.

    A failing candidate is recorded and the batch moves on. Only a fetcher
    that cannot start, or a listing page that keeps failing after the retry
    budget, fails the run. Whatever was committed is exported either way.
    """

    def __init__(
        self,
        config: ArchiverConfig,
        fetcher: PageFetcher | None = None,
        extractor: Extractor | None = None,
        session: requests.Session | None = None,
        bus: EventBus | None = None,
        discoverer: LinkDiscoverer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.fetcher = fetcher or build_fetcher(config.fetch)
        self.extractor = extractor or Extractor(
            config.extract, save_html=config.archive.save_html
        )
        self.discoverer = discoverer or LinkDiscoverer()
        self.session = session or build_session(config.fetch.user_agent)
        self.bus = bus or EventBus()
        self._sleep = sleep
        self._stop = threading.Event()
        self.store: Optional[ArchiveStore] = None
        self.acquirer: Optional[MediaAcquirer] = None
        self.entries: List[ArchiveEntry] = []

    def stop(self) -> None:
        """Stop before the next candidate. The current one runs to completion."""
        self._stop.set()

    # -- helpers ------------------------------------------------------------

    def _phase(self, phase: str, message: str) -> None:
        logger.info("%s: %s", phase, message)
        self.bus.emit(events.PhaseChanged(phase=phase, message=message))

    def _open_store(self, url: str) -> ArchiveStore:
        domain = archive_domain(url)
        if self.store is None or self.store.domain != domain:
            self.store = ArchiveStore(
                self.config.output.root,
                domain,
                source_url=url,
                options=self.config.archive,
            )
            self.acquirer = MediaAcquirer.for_archive(
                self.store.domain_dir, self.session, self.config.media
            )
        self.store.initialize()
        return self.store

    def _retry_wait(self, url: str, attempt: int, exc: Exception, stats: PipelineStats) -> None:
        stats.retries += 1
        logger.warning(
            "Attempt %d/%d failed for %s: %s",
            attempt,
            self.config.limits.retry_attempts,
            url,
            exc,
        )
        self.bus.emit(events.CandidateRetry(url=url, attempt=attempt, error=str(exc)))
        self._sleep(self.config.limits.retry_delay_sec)

    def _render_listing(self, url: str, stats: PipelineStats) -> RenderedPage:
        attempt = 1
        while True:
            try:
                return self.fetcher.render(url)
            except FetchError as exc:
                if attempt >= self.config.limits.retry_attempts:
                    raise
                self._retry_wait(url, attempt, exc, stats)
                attempt += 1

    def _fetch_article(self, url: str, stats: PipelineStats) -> Article:
        capture = self.config.archive.take_screenshots
        attempt = 1
        while True:
            try:
                page = self.fetcher.render(url, capture=capture)
                article = self.extractor.extract_html(page.html, url)
            except (FetchError, ExtractionTooShort) as exc:
                if attempt >= self.config.limits.retry_attempts:
                    raise
                self._retry_wait(url, attempt, exc, stats)
                attempt += 1
                continue
            article.screenshot = page.screenshot
            return article

    def _stage_media(self, article: Article) -> MediaManifest:
        assert self.acquirer is not None
        key = staging_key_for(article.url)
        if self.config.media.download_media:
            return self.acquirer.acquire(article, key)
        manifest = MediaManifest(staging_dir=self.acquirer.staging_root / key)
        if article.screenshot:
            manifest.screenshot = self.acquirer.stage_screenshot(
                article.screenshot, manifest.staging_dir
            )
        return manifest

    def _finish(
        self,
        stats: PipelineStats,
        url: str,
        outcome: str,
        title: Optional[str] = None,
        error: Optional[str] = None,
        entry: Optional[ArchiveEntry] = None,
    ) -> events.CandidateFinished:
        stats.processed += 1
        if outcome == events.ARCHIVED:
            stats.archived += 1
        elif outcome == events.DUPLICATE:
            stats.duplicates += 1
        else:
            stats.failed += 1
        finished = events.CandidateFinished(
            url=url,
            outcome=outcome,
            title=title,
            error=error,
            entry=entry,
            counts={
                "processed": stats.processed,
                "archived": stats.archived,
                "duplicates": stats.duplicates,
                "failed": stats.failed,
            },
        )
        self.bus.emit(finished)
        return finished

    # -- per candidate ------------------------------------------------------

    def _process_candidate(
        self, url: str, position: int, total: int, stats: PipelineStats
    ) -> events.CandidateFinished:
        assert self.store is not None
        self.bus.emit(events.CandidateStarted(url=url, position=position, total=total))
        if self.store.is_duplicate_url(url):
            logger.info("Already archived, skipping %s", url)
            return self._finish(stats, url, events.DUPLICATE)
        try:
            article = self._fetch_article(url, stats)
        except (FetchError, InvalidArticleError) as exc:
            logger.warning("Giving up on %s: %s", url, exc)
            return self._finish(stats, url, events.FAILED, error=str(exc))
        if self.store.is_duplicate(article):
            logger.info("Duplicate article %r, skipping %s", article.title, url)
            return self._finish(stats, url, events.DUPLICATE, title=article.title)
        try:
            manifest = self._stage_media(article)
            entry = self.store.commit(article, manifest)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to archive %s", url)
            return self._finish(
                stats, url, events.FAILED, title=article.title, error=str(exc)
            )
        self.entries.append(entry)
        return self._finish(
            stats, url, events.ARCHIVED, title=article.title, entry=entry
        )

    def _process_guarded(
        self, url: str, position: int, total: int, stats: PipelineStats
    ) -> events.CandidateFinished:
        try:
            return self._process_candidate(url, position, total, stats)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while processing %s", url)
            return self._finish(stats, url, events.FAILED, error=str(exc))

    # -- runs ---------------------------------------------------------------

    def _crawl_site(self, start_url: str, stats: PipelineStats) -> None:
        t0 = time.monotonic()
        self._phase(events.DISCOVERING, f"Finding articles on {start_url}")
        listing = self._render_listing(start_url, stats)
        candidates = self.discoverer.discover_candidates(
            parse_html(listing.html), listing.final_url or start_url
        )
        cap = self.config.limits.max_articles
        if cap is not None and len(candidates) > cap:
            logger.info("Capping %d candidates to %d", len(candidates), cap)
            candidates = candidates[:cap]
        stats.discovered = len(candidates)
        stats.timings_sec["discovery"] = round(time.monotonic() - t0, 3)
        self.bus.emit(events.CandidatesDiscovered(count=len(candidates)))

        t1 = time.monotonic()
        self._phase(events.SCRAPING, f"Scraping {len(candidates)} article(s)")
        total = len(candidates)
        for position, candidate in enumerate(
            tqdm(candidates, desc="Archive", unit="article"), start=1
        ):
            if self._stop.is_set():
                logger.info("Stop requested; %d candidate(s) left", total - position + 1)
                break
            self._process_guarded(candidate.url, position, total, stats)
        stats.timings_sec["scrape"] = round(time.monotonic() - t1, 3)

    def _crawl_article(self, url: str, stats: PipelineStats) -> None:
        stats.discovered = 1
        self.bus.emit(events.CandidatesDiscovered(count=1))
        self._phase(events.SCRAPING, f"Scraping {url}")
        finished = self._process_guarded(url, 1, 1, stats)
        if finished.outcome == events.FAILED:
            raise ArchiverError(finished.error or f"Could not archive {url}")

    def _execute(
        self, url: str, body: Callable[[str, PipelineStats], None]
    ) -> PipelineStats:
        self._stop.clear()
        t_start = time.monotonic()
        stats = PipelineStats(start_url=url, domain=archive_domain(url))
        self._phase(events.INITIALIZING, f"Starting archive of {url}")
        error: Optional[Exception] = None
        store: Optional[ArchiveStore] = None
        try:
            self.fetcher.start()
            store = self._open_store(url)
            stats.archive_dir = str(store.domain_dir)
            body(url, stats)
        except ArchiverError as exc:
            error = exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Run aborted for %s", url)
            error = exc
        finally:
            try:
                self.fetcher.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not close fetcher: %s", exc)

        if store is not None and store.initialized:
            t_save = time.monotonic()
            self._phase(events.SAVING, f"Writing archive exports to {store.domain_dir}")
            try:
                store.export_all()
            except OSError as exc:
                logger.error("Export failed for %s: %s", store.domain_dir, exc)
                error = error or exc
            stats.timings_sec["export"] = round(time.monotonic() - t_save, 3)
        stats.timings_sec["total"] = round(time.monotonic() - t_start, 3)

        if error is not None:
            stats.status = "failed"
            stats.error = str(error)
            logger.error("Run failed for %s: %s", url, error)
            self.bus.emit(events.RunFailed(error=str(error), processed=stats.processed))
        else:
            logger.info("Run completed stats=%s", stats)
            self.bus.emit(events.RunCompleted(stats=stats))
        return stats

    def run(self, start_url: str) -> PipelineStats:
        return self._execute(start_url, self._crawl_site)

    def archive_article(self, url: str) -> PipelineStats:
        return self._execute(url, self._crawl_article)


def run_pipeline(start_url: str, params_path: Path | None = None) -> PipelineStats:
    config = load_config(params_path=params_path)
    pipeline = ArchivePipeline(config)
    return pipeline.run(start_url)
