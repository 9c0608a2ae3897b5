from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from . import events
from .utils import utc_now_iso

COMPLETED = "completed"
FAILED = "failed"

SITE_JOB = "site"
ARTICLE_JOB = "article"

# Progress floor per phase; scraping interpolates up to the saving floor.
_PHASE_PROGRESS = {
    events.INITIALIZING: 0,
    events.DISCOVERING: 10,
    events.SCRAPING: 20,
    events.SAVING: 90,
}


@dataclass(slots=True)
class JobRecord:
    id: str
    kind: str
    url: str
    status: str = events.INITIALIZING
    progress: int = 0
    logs: List[Dict[str, str]] = field(default_factory=list)
    counts: Dict[str, int] = field(
        default_factory=lambda: {
            "total": 0,
            "processed": 0,
            "archived": 0,
            "duplicates": 0,
            "failed": 0,
        }
    )
    error: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def log(self, message: str) -> None:
        now = utc_now_iso()
        self.logs.append({"timestamp": now, "message": message})
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class JobStore:
    """In-memory job registry keyed by job id."""

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def create(self, kind: str, url: str) -> JobRecord:
        record = JobRecord(id=uuid.uuid4().hex, kind=kind, url=url)
        record.log(f"Job created for {url}")
        with self._lock:
            self._jobs[record.id] = record
        return record

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def snapshot(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.to_dict() if record is not None else None

    def list(self) -> List[JobRecord]:
        with self._lock:
            return list(self._jobs.values())

    def tracker(self, job_id: str) -> "JobTracker":
        record = self.get(job_id)
        if record is None:
            raise KeyError(job_id)
        return JobTracker(record, self._lock)


class JobTracker:
    """Observer that folds pipeline events into a :class:`JobRecord`."""

    def __init__(self, record: JobRecord, lock: threading.Lock | None = None) -> None:
        self.record = record
        self._lock = lock or threading.Lock()

    def __call__(self, event: Any) -> None:
        with self._lock:
            self._apply(event)

    def _scraping_progress(self) -> int:
        counts = self.record.counts
        floor = _PHASE_PROGRESS[events.SCRAPING]
        span = _PHASE_PROGRESS[events.SAVING] - floor
        if not counts["total"]:
            return floor
        return floor + int(span * counts["processed"] / counts["total"])

    def _apply(self, event: Any) -> None:
        record = self.record
        if isinstance(event, events.PhaseChanged):
            record.status = event.phase
            record.progress = max(record.progress, _PHASE_PROGRESS.get(event.phase, 0))
            record.log(event.message or f"Phase: {event.phase}")
        elif isinstance(event, events.CandidatesDiscovered):
            record.counts["total"] = event.count
            record.log(f"Found {event.count} article(s)")
        elif isinstance(event, events.CandidateStarted):
            record.counts["total"] = max(record.counts["total"], event.total)
            record.log(f"[{event.position}/{event.total}] Scraping {event.url}")
        elif isinstance(event, events.CandidateRetry):
            record.log(f"Retry {event.attempt} for {event.url}: {event.error}")
        elif isinstance(event, events.CandidateFinished):
            self._apply_finished(event)
        elif isinstance(event, events.RunCompleted):
            stats = event.stats
            record.status = COMPLETED
            record.progress = 100
            record.counts.update(
                archived=stats.archived,
                duplicates=stats.duplicates,
                failed=stats.failed,
                processed=stats.processed,
            )
            if record.kind == SITE_JOB or record.summary is None:
                record.summary = {
                    "discovered": stats.discovered,
                    "archived": stats.archived,
                    "duplicates": stats.duplicates,
                    "failed": stats.failed,
                }
            record.log(
                f"Completed: {stats.archived} archived, {stats.duplicates} "
                f"duplicate(s), {stats.failed} failed"
            )
        elif isinstance(event, events.RunFailed):
            record.status = FAILED
            record.error = event.error
            record.log(f"Failed: {event.error}")

    def _apply_finished(self, event: events.CandidateFinished) -> None:
        record = self.record
        counts = record.counts
        counts["processed"] += 1
        if event.outcome == events.ARCHIVED:
            counts["archived"] += 1
            record.log(f"Archived: {event.title}")
        elif event.outcome == events.DUPLICATE:
            counts["duplicates"] += 1
            record.log(f"Skipped duplicate: {event.title or event.url}")
        else:
            counts["failed"] += 1
            record.log(f"Failed {event.url}: {event.error}")
        if record.status == events.SCRAPING:
            record.progress = max(record.progress, self._scraping_progress())
        if record.kind == ARTICLE_JOB and event.entry is not None:
            meta = event.entry.metadata
            record.summary = {
                "title": meta["title"],
                "author": meta["author"],
                "publishDate": meta["publishDate"],
                "wordCount": meta["wordCount"],
                "imageCount": event.entry.image_count,
                "videoCount": event.entry.video_count,
            }
