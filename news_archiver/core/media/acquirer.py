from __future__ import annotations

import logging
import mimetypes
import re
from pathlib import Path, PurePosixPath
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from ..config import MediaConfig
from ..errors import AssetDownloadError
from ..models import Article, MediaAsset, MediaManifest
from ..utils import md5_hex

logger = logging.getLogger(__name__)

STAGING_DIRNAME = ".staging"
GENERIC_CONTENT_TYPES = {"application/octet-stream", "binary/octet-stream", ""}
CHUNK_SIZE = 64 * 1024


def extension_for(url: str, content_type: Optional[str]) -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime not in GENERIC_CONTENT_TYPES:
        guessed = mimetypes.guess_extension(mime)
        if guessed:
            return guessed
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    if re.fullmatch(r"\.[a-z0-9]{1,5}", suffix):
        return suffix
    return ".bin"


class MediaAcquirer:
    """Download an article's media into a per-article staging directory.

    Repeated source URLs are downloaded once per process. Later references
    reuse the first asset, so every manifest lists it; the map is keyed by the
    URL hash and is never persisted.
    """

    def __init__(
        self,
        staging_root: Path,
        archive_dir: Path,
        session: requests.Session,
        config: MediaConfig | None = None,
    ) -> None:
        self.staging_root = staging_root
        self.archive_dir = archive_dir
        self.session = session
        self.config = config or MediaConfig()
        self._seen: Dict[str, MediaAsset] = {}

    @classmethod
    def for_archive(
        cls,
        archive_dir: Path,
        session: requests.Session,
        config: MediaConfig | None = None,
    ) -> "MediaAcquirer":
        return cls(archive_dir / STAGING_DIRNAME, archive_dir, session, config)

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.archive_dir).as_posix()

    def _download(self, url: str, target_stem: Path) -> tuple[Path, Optional[str], int]:
        limit = self.config.max_media_bytes
        try:
            response = self.session.get(
                url, timeout=self.config.request_timeout_sec, stream=True
            )
        except requests.RequestException as exc:
            raise AssetDownloadError(f"Download failed: {exc}") from exc
        try:
            if response.status_code >= 400:
                raise AssetDownloadError(f"HTTP {response.status_code} for {url}")
            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise AssetDownloadError(f"{url} exceeds {limit} bytes ({declared})")
            content_type = response.headers.get("Content-Type")
            target = target_stem.with_suffix(extension_for(url, content_type))
            target.parent.mkdir(parents=True, exist_ok=True)
            size = 0
            try:
                with target.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        size += len(chunk)
                        if size > limit:
                            raise AssetDownloadError(f"{url} exceeds {limit} bytes")
                        fh.write(chunk)
            except AssetDownloadError:
                target.unlink(missing_ok=True)
                raise
            except (requests.RequestException, OSError) as exc:
                target.unlink(missing_ok=True)
                raise AssetDownloadError(f"Download failed: {exc}") from exc
            return target, content_type, size
        finally:
            response.close()

    def _fetch_asset(
        self, url: str, kind: str, staging_dir: Path, alt: str = "", title: str = ""
    ) -> MediaAsset:
        url_hash = md5_hex(url)
        subdir = "images" if kind == "image" else "videos"
        path, content_type, size = self._download(url, staging_dir / subdir / url_hash[:16])
        return MediaAsset(
            source_url=url,
            local_path=self._relative(path),
            kind=kind,
            alt=alt,
            title=title,
            content_type=content_type,
            size_bytes=size,
        )

    def acquire(self, article: Article, staging_key: str) -> MediaManifest:
        staging_dir = self.staging_root / staging_key
        manifest = MediaManifest(staging_dir=staging_dir)
        in_article: Dict[str, MediaAsset] = {}

        refs = [(img.url, "image", img.alt, img.title) for img in article.images]
        for video in article.videos:
            if video.kind == "embed":
                if video.url not in manifest.embeds:
                    manifest.embeds.append(video.url)
                continue
            refs.append((video.url, "video", "", ""))

        for url, kind, alt, title in refs:
            url_hash = md5_hex(url)
            if url_hash in in_article:
                continue
            known = self._seen.get(url_hash)
            if known is not None:
                logger.debug("Already downloaded in this run, reusing %s", known.local_path)
                in_article[url_hash] = known
                (manifest.images if kind == "image" else manifest.videos).append(known)
                continue
            try:
                asset = self._fetch_asset(url, kind, staging_dir, alt=alt, title=title)
            except AssetDownloadError as exc:
                logger.warning("Skipping %s %s: %s", kind, url, exc)
                continue
            self._seen[url_hash] = asset
            in_article[url_hash] = asset
            (manifest.images if kind == "image" else manifest.videos).append(asset)

        if article.screenshot:
            manifest.screenshot = self.stage_screenshot(article.screenshot, staging_dir)

        logger.info(
            "Staged %d image(s), %d video(s), %d embed(s) for %s",
            len(manifest.images),
            len(manifest.videos),
            len(manifest.embeds),
            article.url,
        )
        return manifest

    def stage_screenshot(self, data: bytes, staging_dir: Path) -> Optional[MediaAsset]:
        target = staging_dir / "screenshot.png"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.warning("Could not stage screenshot: %s", exc)
            return None
        return MediaAsset(
            source_url="",
            local_path=self._relative(target),
            kind="screenshot",
            content_type="image/png",
            size_bytes=len(data),
        )
