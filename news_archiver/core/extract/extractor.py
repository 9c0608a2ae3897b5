from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from ..config import ExtractConfig
from ..errors import ExtractionTooShort, InvalidURLError
from ..models import Article, ImageRef, VideoRef
from ..utils import is_http_url, make_absolute_url, parse_datetime_loose, utc_now_iso
from . import rules
from .dom import Element, parse_html

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Article"
DEFAULT_AUTHOR = "Unknown"


def _first_valid(
    page: Element,
    field_rules: Sequence[rules.TextRule],
    accept: Callable[[str], Optional[str]],
) -> Optional[str]:
    for rule in field_rules:
        try:
            value = rule(page)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Rule %s failed: %s", getattr(rule, "__name__", rule), exc)
            continue
        if value is None:
            continue
        accepted = accept(value)
        if accepted:
            return accepted
    return None


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _dimension(value: Optional[str]) -> int:
    if not value:
        return 0
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match else 0


class Extractor:
    """Build an :class:`Article` from a rendered page.

    Every field runs its ordered rule list from :mod:`.rules`; body text goes
    through four tiers (best container, paragraph scan, page text dump,
    sentinel). ``extract`` raises :class:`ExtractionTooShort` when the body
    is under ``min_content_length`` so callers can retry.
    """

    def __init__(
        self,
        config: ExtractConfig | None = None,
        save_html: bool = False,
    ) -> None:
        self.config = config or ExtractConfig()
        self.save_html = save_html

    # -- fields -------------------------------------------------------------

    def _accept_title(self, value: str) -> Optional[str]:
        text = _collapse(value)
        lower = 0 if self.config.permissive_titles else 10
        if lower < len(text) <= 300:
            return text
        return None

    @staticmethod
    def _accept_author(value: str) -> Optional[str]:
        text = re.sub(r"^by\s+", "", _collapse(value), flags=re.IGNORECASE).strip()
        if 2 < len(text) <= 100:
            return text
        return None

    @staticmethod
    def _accept_date(value: str) -> Optional[str]:
        parsed = parse_datetime_loose(value)
        return parsed.isoformat() if parsed else None

    def extract_title(self, page: Element) -> str:
        return _first_valid(page, rules.TITLE_RULES, self._accept_title) or DEFAULT_TITLE

    def extract_author(self, page: Element) -> str:
        return _first_valid(page, rules.AUTHOR_RULES, self._accept_author) or DEFAULT_AUTHOR

    def extract_publish_date(self, page: Element) -> str:
        found = _first_valid(page, rules.PUBLISH_DATE_RULES, self._accept_date)
        if found:
            return found
        return datetime.now(timezone.utc).isoformat()

    def extract_tags(self, page: Element) -> List[str]:
        tags: dict[str, None] = {}
        for rule in rules.TAG_RULES:
            for raw in rule(page):
                for part in raw.split(","):
                    tag = _collapse(part)
                    if 0 < len(tag) < 50:
                        tags.setdefault(tag, None)
        return list(tags)

    # -- body ---------------------------------------------------------------

    def _paragraphs(self, container: Element) -> List[str]:
        minimum = self.config.min_paragraph_chars
        result: List[str] = []
        for p in container.query_all("p"):
            text = p.text()
            if len(text) > minimum:
                result.append(text)
        return result

    def _best_container_text(self, page: Element) -> Optional[str]:
        best: Tuple[int, List[str]] = (0, [])
        scored: set[int] = set()
        for selector in rules.ARTICLE_CONTAINERS:
            for container in page.query_all(selector):
                # a node matched by several selectors is scored once
                if container.node_id() in scored:
                    continue
                scored.add(container.node_id())
                paragraphs = self._paragraphs(container.without(rules.NOISE_SELECTOR))
                if len(paragraphs) > best[0]:
                    best = (len(paragraphs), paragraphs)
        if best[0] >= 3:
            return "\n\n".join(best[1])
        return None

    def _paragraph_scan_text(self, page: Element) -> Optional[str]:
        seen: set[str] = set()
        kept: List[str] = []
        for p in page.without(rules.CHROME_SELECTOR).query_all("p"):
            text = p.text()
            if len(text) <= self.config.min_paragraph_chars or text in seen:
                continue
            if any(pattern.search(text) for pattern in rules.BOILERPLATE_PATTERNS):
                continue
            seen.add(text)
            kept.append(text)
        if len(kept) >= 5:
            return "\n\n".join(kept)
        return None

    def _page_dump_text(self, page: Element) -> Optional[str]:
        best = ""
        for selector in rules.FALLBACK_CONTAINERS:
            element = page.query_first(selector)
            if element is None:
                continue
            text = _collapse(element.without(rules.CHROME_SELECTOR).text())
            if len(text) > len(best):
                best = text
        return best if len(best) > 200 else None

    def extract_body(self, page: Element) -> str:
        for tier in (
            self._best_container_text,
            self._paragraph_scan_text,
            self._page_dump_text,
        ):
            text = tier(page)
            if text:
                return text
        return rules.NO_CONTENT_SENTINEL

    # -- media --------------------------------------------------------------

    def _image_refs(self, elements: Iterable[Element], base_url: str) -> List[ImageRef]:
        images: List[ImageRef] = []
        seen: set[str] = set()
        for el in elements:
            src = el.attr("src") or el.attr("data-src") or el.attr("data-lazy-src")
            if not src or src.startswith("data:"):
                continue
            width = _dimension(el.attr("width"))
            height = _dimension(el.attr("height"))
            if width > 0 and height > 0 and (
                width < rules.ICON_MAX_PX or height < rules.ICON_MAX_PX
            ):
                continue
            try:
                absolute = make_absolute_url(src, base_url)
            except InvalidURLError:
                continue
            if absolute in seen or not is_http_url(absolute):
                continue
            seen.add(absolute)
            images.append(
                ImageRef(
                    url=absolute, alt=el.attr("alt") or "", title=el.attr("title") or ""
                )
            )
        return images

    def extract_images(self, page: Element, base_url: str) -> List[ImageRef]:
        images = self._image_refs(page.query_all(rules.CONTENT_IMAGE_SELECTOR), base_url)
        if not images:
            images = self._image_refs(page.query_all("img"), base_url)
        return images

    @staticmethod
    def _is_embed_host(url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in rules.EMBED_HOSTS)

    def _video_refs(
        self, videos: Iterable[Element], iframes: Iterable[Element], base_url: str
    ) -> List[VideoRef]:
        refs: List[VideoRef] = []
        seen: set[str] = set()
        for el in videos:
            src = el.attr("src")
            if not src:
                continue
            try:
                absolute = make_absolute_url(src, base_url)
            except InvalidURLError:
                continue
            if absolute not in seen:
                seen.add(absolute)
                refs.append(VideoRef(url=absolute, kind="file"))
        for el in iframes:
            src = el.attr("src")
            if not src:
                continue
            try:
                absolute = make_absolute_url(src, base_url)
            except InvalidURLError:
                continue
            if self._is_embed_host(absolute) and absolute not in seen:
                seen.add(absolute)
                refs.append(VideoRef(url=absolute, kind="embed"))
        return refs

    def extract_videos(self, page: Element, base_url: str) -> List[VideoRef]:
        videos = self._video_refs(
            page.query_all(rules.CONTENT_VIDEO_SELECTOR),
            page.query_all(rules.CONTENT_IFRAME_SELECTOR),
            base_url,
        )
        if not videos:
            videos = self._video_refs(
                page.query_all("video, video source"), page.query_all("iframe"), base_url
            )
        return videos

    # -- article ------------------------------------------------------------

    def build_article(self, page: Element, url: str) -> Article:
        return Article(
            url=url,
            title=self.extract_title(page),
            author=self.extract_author(page),
            publish_date=self.extract_publish_date(page),
            body_text=self.extract_body(page),
            tags=self.extract_tags(page),
            images=self.extract_images(page, url),
            videos=self.extract_videos(page, url),
            raw_markup=page.html() if self.save_html else None,
            extracted_at=utc_now_iso(),
        )

    def validate(self, article: Article) -> Article:
        length = len(article.body_text)
        if length < self.config.min_content_length:
            raise ExtractionTooShort(article.url, length, self.config.min_content_length)
        return article

    def extract(self, page: Element, url: str) -> Article:
        return self.validate(self.build_article(page, url))

    def extract_html(self, html: str, url: str) -> Article:
        return self.extract(parse_html(html), url)
