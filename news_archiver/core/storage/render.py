from __future__ import annotations

import posixpath
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping

from ..utils import parse_datetime_loose


def _relative_to_entry(local_path: str, folder_path: str) -> str:
    return posixpath.relpath(local_path, folder_path)


def article_markdown(record: Mapping[str, Any]) -> str:
    lines = [f"# {record['title']}", ""]
    lines.append(f"**Author:** {record['author']}  ")
    lines.append(f"**Published:** {record['publishDate']}  ")
    lines.append(f"**URL:** {record['url']}  ")
    lines.append(f"**Scraped:** {record['scrapedAt']}  ")
    lines.append("")
    if record.get("tags"):
        lines.append(f"**Tags:** {', '.join(record['tags'])}  ")
        lines.append("")
    lines.append("---")
    lines.append("")
    lines.append(record["content"])

    media = record.get("mediaFiles") or {}
    folder = record.get("folderPath", "")
    images = media.get("images") or []
    if images:
        lines += ["", "## Images", ""]
        for i, img in enumerate(images, start=1):
            target = _relative_to_entry(img["localPath"], folder)
            lines.append(f"{i}. ![{img.get('alt', '')}]({target})")
            if img.get("alt"):
                lines.append(f"   *{img['alt']}*")
    videos = media.get("videos") or []
    if videos:
        lines += ["", "## Videos", ""]
        for i, video in enumerate(videos, start=1):
            if video.get("kind") == "embed":
                lines.append(f"{i}. [Embedded player]({video['originalUrl']})")
            else:
                target = _relative_to_entry(video["localPath"], folder)
                lines.append(f"{i}. [{posixpath.basename(target)}]({target})")
    return "\n".join(lines) + "\n"


def entry_manifest(record: Mapping[str, Any], files: Iterable[str]) -> str:
    media = record.get("mediaFiles") or {}
    lines = [
        record["title"],
        "=" * min(len(record["title"]), 80),
        "",
        f"ID:         {record['id']}",
        f"URL:        {record['url']}",
        f"Author:     {record['author']}",
        f"Published:  {record['publishDate']}",
        f"Scraped:    {record['scrapedAt']}",
        f"Words:      {record['wordCount']}",
        f"Images:     {len(media.get('images') or [])}",
        f"Videos:     {len(media.get('videos') or [])}",
        "",
        "Files:",
    ]
    lines += [f"  - {name}" for name in files]
    return "\n".join(lines) + "\n"


def chronology_markdown(domain: str, records: List[Mapping[str, Any]]) -> str:
    dated: List[tuple[datetime, Mapping[str, Any]]] = []
    undated: List[Mapping[str, Any]] = []
    for record in records:
        parsed = parse_datetime_loose(record.get("publishDate", ""))
        if parsed is None:
            undated.append(record)
        else:
            dated.append((parsed.replace(tzinfo=None), record))
    dated.sort(key=lambda pair: (pair[0], pair[1].get("id", "")), reverse=True)

    grouped: "OrderedDict[int, OrderedDict[str, List[tuple[datetime, Mapping[str, Any]]]]]" = OrderedDict()
    for when, record in dated:
        months = grouped.setdefault(when.year, OrderedDict())
        months.setdefault(when.strftime("%B"), []).append((when, record))

    lines = [f"# {domain}: articles by date", ""]
    for year, months in grouped.items():
        lines += [f"## {year}", ""]
        for month, items in months.items():
            lines += [f"### {month}", ""]
            for when, record in items:
                link = posixpath.join(record.get("folderPath", ""), "article.md")
                lines.append(
                    f"- {when:%Y-%m-%d} · [{record['title']}]({link}) · {record['author']}"
                )
            lines.append("")
    if undated:
        lines += ["## Undated", ""]
        for record in undated:
            link = posixpath.join(record.get("folderPath", ""), "article.md")
            lines.append(f"- [{record['title']}]({link}) · {record['author']}")
        lines.append("")
    return "\n".join(lines)


def archive_readme(summary: Mapping[str, Any]) -> str:
    authors: List[str] = list(summary.get("authors") or [])
    tags: Dict[str, int] = dict(summary.get("tags") or {})
    date_range = summary.get("dateRange") or {}
    lines = [
        "# Archive Summary",
        "",
        f"**Domain:** {summary.get('domain', '')}  ",
        f"**Source:** {summary.get('sourceUrl') or '-'}  ",
        f"**Updated:** {summary.get('generatedAt', '')}  ",
        f"**Total Articles:** {summary.get('totalArticles', 0)}",
        "",
        "## Statistics",
        "",
        f"- **Total Words:** {summary.get('totalWords', 0):,}",
        f"- **Total Images:** {summary.get('totalImages', 0)}",
        f"- **Total Videos:** {summary.get('totalVideos', 0)}",
        f"- **Authors:** {len(authors)}",
        f"- **Tags:** {len(tags)}",
        "",
        "## Date Range",
        "",
        f"- **Earliest Article:** {date_range.get('earliest') or '-'}",
        f"- **Latest Article:** {date_range.get('latest') or '-'}",
        "",
        "## Files",
        "",
        "- `articles.json` - Complete archive in JSON format",
        "- `articles.csv` - Spreadsheet-friendly format",
        "- `CHRONOLOGY.md` - Articles grouped by year and month",
        "- `articles/` - One folder per article (JSON, HTML, Markdown, media)",
        "- `index.json` - Dedup index of known URLs and titles",
        "- `summary.json` - Counts, authors, tags and date range",
        "",
        "## Authors",
        "",
    ]
    lines += [f"- {a}" for a in authors[:20]]
    if len(authors) > 20:
        lines += ["", f"... and {len(authors) - 20} more"]
    lines += ["", "## Popular Tags", ""]
    top = list(tags.items())
    lines += [f"- {tag} ({count})" for tag, count in top[:30]]
    if len(top) > 30:
        lines += ["", f"... and {len(top) - 30} more"]
    return "\n".join(lines) + "\n"
