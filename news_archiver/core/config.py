from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/128.0.0.0 Safari/537.36"
)


@dataclass(slots=True)
class OutputConfig:
    root: Path


@dataclass(slots=True)
class FetchConfig:
    backend: str = "selenium"
    browser: str = "chrome"
    headless: bool = True
    page_timeout_sec: float = 60.0
    wait_for_content_sec: float = 2.0
    content_wait_sec: float = 10.0
    scroll: bool = True
    scroll_pause_sec: float = 1.0
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "NEWS_ARCHIVER_USER_AGENT", DEFAULT_USER_AGENT
        )
    )


@dataclass(slots=True)
class CrawlLimits:
    retry_attempts: int = 3
    retry_delay_sec: float = 2.0
    max_articles: Optional[int] = None
    # Carried for callers; candidates are still processed one at a time.
    max_concurrent_pages: int = 1


@dataclass(slots=True)
class ExtractConfig:
    min_content_length: int = 100
    min_paragraph_chars: int = 30
    permissive_titles: bool = False


@dataclass(slots=True)
class MediaConfig:
    download_media: bool = True
    max_media_bytes: int = 100 * 1024 * 1024
    request_timeout_sec: float = 30.0


@dataclass(slots=True)
class ArchiveOptions:
    save_html: bool = True
    save_markdown: bool = True
    take_screenshots: bool = False


@dataclass(slots=True)
class ArchiverConfig:
    output: OutputConfig
    fetch: FetchConfig = field(default_factory=FetchConfig)
    limits: CrawlLimits = field(default_factory=CrawlLimits)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    archive: ArchiveOptions = field(default_factory=ArchiveOptions)


def _section(params: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = params.get(key) or {}
    return value if isinstance(value, dict) else {}


def _optional_positive_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def config_from_params(params: Mapping[str, Any]) -> ArchiverConfig:
    output_cfg = _section(params, "output")
    output_root = Path(
        os.environ.get("NEWS_ARCHIVER_ROOT") or output_cfg.get("root", "archives")
    )

    fetch_cfg = _section(params, "fetch")
    backend = str(fetch_cfg.get("backend", "selenium")).lower()
    if backend not in {"selenium", "http"}:
        raise ValueError(f"fetch.backend must be 'selenium' or 'http', got {backend!r}")
    fetch = FetchConfig(
        backend=backend,
        browser=str(fetch_cfg.get("browser", "chrome")).lower(),
        headless=bool(fetch_cfg.get("headless", True)),
        page_timeout_sec=float(fetch_cfg.get("page_timeout_sec", 60)),
        wait_for_content_sec=float(fetch_cfg.get("wait_for_content_sec", 2.0)),
        content_wait_sec=float(fetch_cfg.get("content_wait_sec", 10)),
        scroll=bool(fetch_cfg.get("scroll", True)),
        scroll_pause_sec=float(fetch_cfg.get("scroll_pause_sec", 1.0)),
    )
    if fetch_cfg.get("user_agent"):
        fetch.user_agent = str(fetch_cfg["user_agent"])

    limits_cfg = _section(params, "limits")
    limits = CrawlLimits(
        retry_attempts=max(1, int(limits_cfg.get("retry_attempts", 3))),
        retry_delay_sec=float(limits_cfg.get("retry_delay_sec", 2.0)),
        max_articles=_optional_positive_int(limits_cfg.get("max_articles")),
        max_concurrent_pages=max(1, int(limits_cfg.get("max_concurrent_pages", 1))),
    )

    extract_cfg = _section(params, "extract")
    extract = ExtractConfig(
        min_content_length=int(extract_cfg.get("min_content_length", 100)),
        min_paragraph_chars=int(extract_cfg.get("min_paragraph_chars", 30)),
        permissive_titles=bool(extract_cfg.get("permissive_titles", False)),
    )

    media_cfg = _section(params, "media")
    media = MediaConfig(
        download_media=bool(media_cfg.get("download_media", True)),
        max_media_bytes=int(media_cfg.get("max_media_bytes", 100 * 1024 * 1024)),
        request_timeout_sec=float(media_cfg.get("request_timeout_sec", 30)),
    )

    archive_cfg = _section(params, "archive")
    archive = ArchiveOptions(
        save_html=bool(archive_cfg.get("save_html", True)),
        save_markdown=bool(archive_cfg.get("save_markdown", True)),
        take_screenshots=bool(archive_cfg.get("take_screenshots", False)),
    )

    return ArchiverConfig(
        output=OutputConfig(root=output_root),
        fetch=fetch,
        limits=limits,
        extract=extract,
        media=media,
        archive=archive,
    )


def load_config(
    base_dir: Path | None = None,
    params_path: Path | None = None,
) -> ArchiverConfig:
    base_dir = base_dir or Path(__file__).resolve().parents[1]
    params_path = params_path or base_dir / "config" / "params.yaml"

    with params_path.open("r", encoding="utf-8") as fh:
        params = yaml.safe_load(fh) or {}
    if not isinstance(params, dict):
        raise ValueError(f"{params_path} must contain a mapping at the top level")
    return config_from_params(params)
