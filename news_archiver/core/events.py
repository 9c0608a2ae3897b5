from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from .models import ArchiveEntry

if TYPE_CHECKING:
    from .pipeline import PipelineStats

logger = logging.getLogger(__name__)

# Phase tokens, shared with the job status contract.
INITIALIZING = "initializing"
DISCOVERING = "discovering"
SCRAPING = "scraping"
SAVING = "saving"

# Candidate outcomes.
ARCHIVED = "archived"
DUPLICATE = "duplicate"
FAILED = "failed"


@dataclass(slots=True)
class PhaseChanged:
    phase: str
    message: str = ""


@dataclass(slots=True)
class CandidatesDiscovered:
    count: int


@dataclass(slots=True)
class CandidateStarted:
    url: str
    position: int
    total: int


@dataclass(slots=True)
class CandidateRetry:
    url: str
    attempt: int
    error: str


@dataclass(slots=True)
class CandidateFinished:
    url: str
    outcome: str
    title: Optional[str] = None
    error: Optional[str] = None
    entry: Optional[ArchiveEntry] = None
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class RunCompleted:
    stats: "PipelineStats"


@dataclass(slots=True)
class RunFailed:
    error: str
    processed: int = 0


Event = Union[
    PhaseChanged,
    CandidatesDiscovered,
    CandidateStarted,
    CandidateRetry,
    CandidateFinished,
    RunCompleted,
    RunFailed,
]

Observer = Callable[[Any], None]


class EventBus:
    """Fan progress events out to observers.

    An observer that raises is logged and skipped; it never affects the run.
    """

    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def emit(self, event: Event) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Observer %r failed on %s", observer, type(event).__name__
                )
