from __future__ import annotations

import csv
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..utils import parse_datetime_loose, utc_now_iso
from .render import archive_readme, chronology_markdown

CSV_COLUMNS = [
    "id",
    "publishDate",
    "title",
    "author",
    "url",
    "wordCount",
    "tags",
    "imageCount",
    "videoCount",
    "folderPath",
    "scrapedAt",
]


def _media_count(record: Mapping[str, Any], kind: str) -> int:
    media = record.get("mediaFiles") or {}
    return len(media.get(kind) or [])


def csv_row(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": record.get("id", ""),
        "publishDate": record.get("publishDate", ""),
        "title": record.get("title", ""),
        "author": record.get("author", ""),
        "url": record.get("url", ""),
        "wordCount": record.get("wordCount", 0),
        "tags": "; ".join(record.get("tags") or []),
        "imageCount": _media_count(record, "images"),
        "videoCount": _media_count(record, "videos"),
        "folderPath": record.get("folderPath", ""),
        "scrapedAt": record.get("scrapedAt", ""),
    }


def build_summary(
    domain: str, records: List[Mapping[str, Any]], source_url: Optional[str] = None
) -> Dict[str, Any]:
    """Aggregate counts for the domain archive.

    Authors are sorted by name; tags are ordered by frequency, then name, so
    repeated exports of the same records produce the same document apart from
    ``generatedAt``.
    """
    tag_counts: Counter[str] = Counter()
    authors = set()
    dates = []
    for record in records:
        tag_counts.update(record.get("tags") or [])
        author = record.get("author")
        if author and author != "Unknown":
            authors.add(author)
        parsed = parse_datetime_loose(record.get("publishDate"))
        if parsed is not None:
            dates.append((parsed.replace(tzinfo=None), record.get("publishDate")))
    dates.sort()
    ordered_tags = sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return {
        "domain": domain,
        "sourceUrl": source_url,
        "generatedAt": utc_now_iso(),
        "totalArticles": len(records),
        "totalWords": sum(int(r.get("wordCount") or 0) for r in records),
        "totalImages": sum(_media_count(r, "images") for r in records),
        "totalVideos": sum(_media_count(r, "videos") for r in records),
        "authors": sorted(authors),
        "tags": dict(ordered_tags),
        "dateRange": {
            "earliest": dates[0][1] if dates else None,
            "latest": dates[-1][1] if dates else None,
        },
    }


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def write_master_list(domain_dir: Path, records: List[Mapping[str, Any]]) -> Path:
    path = domain_dir / "articles.json"
    _write_json(path, list(records))
    return path


def write_spreadsheet(domain_dir: Path, records: List[Mapping[str, Any]]) -> Path:
    path = domain_dir / "articles.csv"
    with path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for record in records:
            writer.writerow(csv_row(record))
    return path


def write_summary(domain_dir: Path, summary: Mapping[str, Any]) -> Path:
    path = domain_dir / "summary.json"
    _write_json(path, dict(summary))
    return path


def write_chronology(
    domain_dir: Path, domain: str, records: List[Mapping[str, Any]]
) -> Path:
    path = domain_dir / "CHRONOLOGY.md"
    path.write_text(chronology_markdown(domain, list(records)), encoding="utf-8")
    return path


def write_readme(domain_dir: Path, summary: Mapping[str, Any]) -> Path:
    path = domain_dir / "README.md"
    path.write_text(archive_readme(summary), encoding="utf-8")
    return path


def load_master_list(domain_dir: Path) -> List[Dict[str, Any]]:
    path = domain_dir / "articles.json"
    if not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} does not hold a list of records")
    return [r for r in data if isinstance(r, dict) and r.get("url")]
