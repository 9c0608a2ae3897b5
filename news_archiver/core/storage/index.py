from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Set

from ..utils import normalize_title, utc_now_iso

logger = logging.getLogger(__name__)


class DedupIndex:
    """Known article URLs and normalized titles for one domain archive.

    Changes stay in memory until :meth:`flush`, which the store only calls
    while exporting.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.urls: Set[str] = set()
        self.titles: Set[str] = set()

    def load(self) -> None:
        self.urls = set()
        self.titles = set()
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            # Corrupt or unreadable index; start fresh
            logger.warning("Ignoring unreadable dedup index %s: %s", self.path, exc)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed dedup index %s", self.path)
            return
        self.urls.update(str(u) for u in data.get("urls", []) if u)
        self.titles.update(normalize_title(str(t)) for t in data.get("titles", []) if t)

    def contains_url(self, url: str) -> bool:
        return url in self.urls

    def contains_title(self, title: str) -> bool:
        return normalize_title(title) in self.titles

    def add(self, url: str, title: str) -> None:
        self.urls.add(url)
        norm = normalize_title(title)
        if norm:
            self.titles.add(norm)

    def flush(self, total_articles: int) -> None:
        payload = {
            "urls": sorted(self.urls),
            "titles": sorted(self.titles),
            "lastUpdated": utc_now_iso(),
            "totalArticles": total_articles,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
        )
