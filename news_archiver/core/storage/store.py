from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import ArchiveOptions
from ..errors import FilesystemMoveError
from ..media.acquirer import STAGING_DIRNAME
from ..models import ArchiveEntry, Article, MediaAsset, MediaManifest
from ..utils import article_id_for, md5_hex, parse_datetime_loose, slugify, utc_now_iso
from . import exports
from .index import DedupIndex
from .render import article_markdown, entry_manifest

logger = logging.getLogger(__name__)


class ArchiveStore:
    """Date-partitioned archive for a single domain.

    Layout under ``{archive_root}/{domain}``::

        articles/{YYYY}/{MM-Monthname}/{DD}/{slug}-{disambiguator}/
            article.json  article.html  article.md  README.txt  media/
        articles.json  articles.csv  index.json  summary.json
        CHRONOLOGY.md  README.md

    One writer per domain directory is assumed and not enforced.
    """

    def __init__(
        self,
        archive_root: Path,
        domain: str,
        source_url: Optional[str] = None,
        options: ArchiveOptions | None = None,
    ) -> None:
        self.archive_root = Path(archive_root)
        self.domain = domain
        self.source_url = source_url
        self.options = options or ArchiveOptions()
        self.domain_dir = self.archive_root / domain
        self.staging_root = self.domain_dir / STAGING_DIRNAME
        self.index = DedupIndex(self.domain_dir / "index.json")
        self.records: List[Dict[str, Any]] = []
        self.initialized = False

    def initialize(self) -> None:
        self.domain_dir.mkdir(parents=True, exist_ok=True)
        self.index.load()
        try:
            self.records = exports.load_master_list(self.domain_dir)
        except (ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable master list in %s: %s", self.domain_dir, exc)
            self.records = []
        for record in self.records:
            self.index.add(record["url"], record.get("title", ""))
        self.initialized = True
        logger.info(
            "Archive %s ready: %d article(s), %d known URL(s)",
            self.domain_dir,
            len(self.records),
            len(self.index.urls),
        )

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError("ArchiveStore.initialize() must be called first")

    def is_duplicate_url(self, url: str) -> bool:
        return self.index.contains_url(url)

    def is_duplicate(self, article: Article) -> bool:
        return self.index.contains_url(article.url) or self.index.contains_title(
            article.title
        )

    def entry_folder(self, article: Article) -> str:
        """Folder for the article relative to the domain dir, in POSIX form."""
        when = parse_datetime_loose(article.publish_date)
        if when is None:
            when = datetime.now(timezone.utc)
        if (when.hour, when.minute, when.second) != (0, 0, 0):
            disambiguator = when.strftime("%Y%m%d-%H%M%S")
        else:
            disambiguator = md5_hex(article.url)[:8]
        return "/".join(
            [
                "articles",
                f"{when:%Y}",
                f"{when:%m}-{when:%B}",
                f"{when:%d}",
                f"{slugify(article.title)}-{disambiguator}",
            ]
        )

    def _move_asset(self, asset: MediaAsset, entry_dir: Path, folder_path: str) -> None:
        if not asset.local_path.startswith(f"{STAGING_DIRNAME}/"):
            # Published by an earlier entry in this run; shared, not moved.
            return
        source = self.domain_dir / asset.local_path
        target = entry_dir / "media" / source.name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as exc:
            raise FilesystemMoveError(f"Could not move {source} to {target}: {exc}") from exc
        asset.local_path = f"{folder_path}/media/{source.name}"

    def _record(
        self, article: Article, folder_path: str, manifest: MediaManifest
    ) -> Dict[str, Any]:
        return {
            "id": article_id_for(article.url),
            "url": article.url,
            "title": article.title,
            "author": article.author,
            "publishDate": article.publish_date,
            "content": article.body_text,
            "tags": list(article.tags),
            "images": [
                {"url": img.url, "alt": img.alt, "title": img.title}
                for img in article.images
            ],
            "videos": [{"url": v.url, "kind": v.kind} for v in article.videos],
            "mediaFiles": manifest.to_dict(),
            "wordCount": article.word_count,
            "scrapedAt": article.extracted_at or utc_now_iso(),
            "folderPath": folder_path,
        }

    def _write_entry_files(
        self, entry_dir: Path, article: Article, record: Dict[str, Any]
    ) -> List[str]:
        written = ["article.json"]
        (entry_dir / "article.json").write_text(
            json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        if self.options.save_html and article.raw_markup:
            (entry_dir / "article.html").write_text(article.raw_markup, encoding="utf-8")
            written.append("article.html")
        if self.options.save_markdown:
            (entry_dir / "article.md").write_text(article_markdown(record), encoding="utf-8")
            written.append("article.md")
        media_dir = entry_dir / "media"
        media_files = (
            sorted(f"media/{p.name}" for p in media_dir.iterdir())
            if media_dir.is_dir()
            else []
        )
        written.append("README.txt")
        (entry_dir / "README.txt").write_text(
            entry_manifest(record, written + media_files), encoding="utf-8"
        )
        return written

    def _cleanup_staging(self, staging_dir: Path) -> None:
        if not staging_dir.exists():
            return
        for root, dirs, files in os.walk(staging_dir, topdown=False):
            if files or any((Path(root) / d).exists() for d in dirs):
                logger.debug("Leaving non-empty staging dir %s", root)
                continue
            os.rmdir(root)
        if self.staging_root.is_dir() and not any(self.staging_root.iterdir()):
            self.staging_root.rmdir()

    def commit(
        self, article: Article, manifest: MediaManifest | None = None
    ) -> ArchiveEntry:
        self._require_initialized()
        manifest = manifest or MediaManifest()
        folder_path = self.entry_folder(article)
        entry_dir = self.domain_dir / folder_path
        if (entry_dir / "article.json").exists():
            # Same slug and disambiguator as an earlier entry; it gets overwritten.
            logger.warning("Entry folder %s already exists for %s", folder_path, article.url)
        entry_dir.mkdir(parents=True, exist_ok=True)

        for asset in manifest.assets():
            try:
                self._move_asset(asset, entry_dir, folder_path)
            except FilesystemMoveError as exc:
                logger.warning("%s; keeping staged copy", exc)

        record = self._record(article, folder_path, manifest)
        self._write_entry_files(entry_dir, article, record)
        if manifest.staging_dir is not None:
            self._cleanup_staging(manifest.staging_dir)

        self.records.append(record)
        self.index.add(article.url, article.title)
        logger.info("Archived %s -> %s", article.url, folder_path)
        return ArchiveEntry(
            id=record["id"],
            folder_path=folder_path,
            metadata=record,
            media_manifest=manifest,
        )

    def export_all(self) -> Dict[str, Any]:
        """Rebuild every aggregate file from the in-memory records.

        This is also the only place the dedup index reaches disk.
        """
        self._require_initialized()
        exports.write_master_list(self.domain_dir, self.records)
        exports.write_spreadsheet(self.domain_dir, self.records)
        self.index.flush(total_articles=len(self.records))
        summary = exports.build_summary(self.domain, self.records, self.source_url)
        exports.write_summary(self.domain_dir, summary)
        exports.write_chronology(self.domain_dir, self.domain, self.records)
        exports.write_readme(self.domain_dir, summary)
        logger.info(
            "Exported %d article(s) for %s to %s",
            len(self.records),
            self.domain,
            self.domain_dir,
        )
        return summary
