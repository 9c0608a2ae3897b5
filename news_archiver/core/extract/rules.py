"""Ordered extraction rules.

Each field has a tuple of pure functions over :class:`Element`; the extractor
takes the first value that passes the field's validation.
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple

from .dom import Element

TextRule = Callable[[Element], Optional[str]]
ListRule = Callable[[Element], List[str]]


def text_of(selector: str) -> TextRule:
    def rule(page: Element) -> Optional[str]:
        element = page.query_first(selector)
        return element.text() if element is not None else None

    rule.__name__ = f"text_of({selector})"
    return rule


def attr_of(selector: str, *attrs: str) -> TextRule:
    def rule(page: Element) -> Optional[str]:
        element = page.query_first(selector)
        if element is None:
            return None
        for name in attrs:
            value = element.attr(name)
            if value:
                return value
        return None

    rule.__name__ = f"attr_of({selector})"
    return rule


def machine_or_text(selector: str) -> TextRule:
    """Prefer ``datetime``/``content`` attributes over visible text."""

    def rule(page: Element) -> Optional[str]:
        element = page.query_first(selector)
        if element is None:
            return None
        return element.attr("datetime") or element.attr("content") or element.text()

    rule.__name__ = f"machine_or_text({selector})"
    return rule


def all_texts(selector: str) -> ListRule:
    def rule(page: Element) -> List[str]:
        return [el.text() for el in page.query_all(selector)]

    rule.__name__ = f"all_texts({selector})"
    return rule


def all_contents(selector: str) -> ListRule:
    def rule(page: Element) -> List[str]:
        return [el.attr("content") or "" for el in page.query_all(selector)]

    rule.__name__ = f"all_contents({selector})"
    return rule


TITLE_RULES: Tuple[TextRule, ...] = (
    text_of("h1"),
    text_of('h1[class*="title"]'),
    text_of('h1[class*="headline"]'),
    text_of("article h1"),
    text_of(".article-title"),
    text_of(".post-title"),
    text_of(".entry-title"),
    text_of('[itemprop="headline"]'),
    attr_of('meta[property="og:title"]', "content"),
    attr_of('meta[name="twitter:title"]', "content"),
    text_of("title"),
)

AUTHOR_RULES: Tuple[TextRule, ...] = (
    text_of('[rel="author"]'),
    text_of(".author"),
    text_of(".byline"),
    text_of(".author-name"),
    text_of('[class*="author"]'),
    text_of('[itemprop="author"] [itemprop="name"]'),
    text_of('[itemprop="author"]'),
    attr_of('meta[name="author"]', "content"),
    attr_of('meta[property="article:author"]', "content"),
)

PUBLISH_DATE_RULES: Tuple[TextRule, ...] = (
    attr_of("time[datetime]", "datetime"),
    machine_or_text('[itemprop="datePublished"]'),
    attr_of('meta[property="article:published_time"]', "content"),
    attr_of('meta[name="publish_date"]', "content"),
    attr_of('meta[name="pubdate"]', "content"),
    attr_of('meta[name="date"]', "content"),
    machine_or_text(".publish-date"),
    machine_or_text(".published"),
    machine_or_text("time"),
    machine_or_text(".date"),
    machine_or_text('[class*="date"]'),
)

TAG_RULES: Tuple[ListRule, ...] = (
    all_texts('a[rel="tag"]'),
    all_texts(".tag"),
    all_texts(".tags a"),
    all_texts('[class*="tag"] a'),
    all_texts('[class*="category"] a'),
    all_contents('meta[property="article:tag"]'),
    all_contents('meta[name="keywords"]'),
    all_contents('meta[name="news_keywords"]'),
)

ARTICLE_CONTAINERS: Tuple[str, ...] = (
    "article",
    '[role="article"]',
    ".article-content",
    ".article-body",
    ".story-body",
    ".post-content",
    ".entry-content",
    '[class*="article"][class*="content"]',
    '[class*="article"][class*="body"]',
    '[class*="post-content"]',
    '[class*="story"][class*="body"]',
    '[itemprop="articleBody"]',
    "main article",
    "main",
)

NOISE_SELECTOR = ", ".join(
    (
        "script",
        "style",
        "noscript",
        "nav",
        "header",
        "footer",
        "aside",
        "form",
        "iframe",
        ".ad",
        ".ads",
        ".advertisement",
        '[class^="ad-"]',
        '[id^="ad-"]',
        ".social-share",
        ".share",
        ".related-articles",
        ".related",
        ".comments",
        "#comments",
        '[class*="promo"]',
        '[class*="widget"]',
        '[class*="newsletter"]',
    )
)

CHROME_SELECTOR = "script, style, noscript, nav, header, footer, aside"

FALLBACK_CONTAINERS: Tuple[str, ...] = ("main", "body", "#content", ".content")

BOILERPLATE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"^(share|tweet|comment|subscribe|follow us)", re.IGNORECASE),
    re.compile(r"^(read more|continue reading|click here)", re.IGNORECASE),
    re.compile(r"^(advertisement|sponsored)", re.IGNORECASE),
    re.compile(r"^[\d\s]+$"),
    re.compile(r"^[^\w]+$"),
)

NO_CONTENT_SENTINEL = (
    "No content extracted - website may require login or has unusual structure"
)

CONTENT_IMAGE_SELECTOR = 'article img, .article img, [class*="article"] img, main img'
CONTENT_VIDEO_SELECTOR = (
    "article video, article video source, main video, main video source"
)
CONTENT_IFRAME_SELECTOR = "article iframe, main iframe"

EMBED_HOSTS: Tuple[str, ...] = (
    "youtube.com",
    "youtube-nocookie.com",
    "youtu.be",
    "vimeo.com",
    "dailymotion.com",
    "dai.ly",
)

ICON_MAX_PX = 100
