from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

from ..errors import InvalidURLError
from ..extract.dom import Element
from ..models import Candidate
from ..utils import make_absolute_url, registrable_domain

logger = logging.getLogger(__name__)

PRIMARY_SELECTORS: Tuple[str, ...] = (
    "article a[href]",
    ".article a[href]",
    'a[href*="/article/"]',
    'a[href*="/news/"]',
    'a[href*="/story/"]',
    'a[href*="/post/"]',
    '[class*="article"] a[href]',
    '[class*="post"] a[href]',
    "h2 a[href]",
    "h3 a[href]",
    "h4 a[href]",
)

SECONDARY_SELECTORS: Tuple[str, ...] = ("a[href]",)

# Matched against the URL path.
ARTICLE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"/article/"),
    re.compile(r"/news/"),
    re.compile(r"/story/"),
    re.compile(r"/post/"),
    re.compile(r"/blog/"),
    re.compile(r"/press/"),
    re.compile(r"/\d{4}/\d{2}/\d{2}/"),
    re.compile(r"/\d{4}/"),
    re.compile(r"[-_/]\d{5,}(?:\.html?)?/?$"),
)

# Matched against the whole URL.
EXCLUDE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"/(tag|tags|category|categories|author|authors|page|archive)(/|$)", re.IGNORECASE),
    re.compile(r"/(search|login|signin|sign-in|logout|register|signup|subscribe|account)(/|\?|$)", re.IGNORECASE),
    re.compile(r"/(feed|rss)(/|$)", re.IGNORECASE),
    re.compile(r"/wp-", re.IGNORECASE),
    re.compile(r"\?p=", re.IGNORECASE),
    re.compile(
        r"\.(jpe?g|png|gif|webp|svg|ico|bmp|pdf|xml|json|css|js|rss|atom|zip|gz"
        r"|mp3|mp4|m4a|mov|avi|webm|docx?|xlsx?|pptx?)(\?.*)?$",
        re.IGNORECASE,
    ),
)


def _path_and_query(url: str) -> str:
    after_scheme = url.split("://", 1)[-1]
    slash = after_scheme.find("/")
    return after_scheme[slash:] if slash >= 0 else "/"


def looks_like_article(url: str) -> bool:
    path = _path_and_query(url).split("?", 1)[0]
    included = any(pattern.search(path) for pattern in ARTICLE_PATTERNS)
    excluded = any(pattern.search(url) for pattern in EXCLUDE_PATTERNS)
    return included and not excluded


class LinkDiscoverer:
    """Collect same-site, article-shaped links from a listing page."""

    def __init__(
        self,
        primary_selectors: Tuple[str, ...] = PRIMARY_SELECTORS,
        secondary_selectors: Tuple[str, ...] = SECONDARY_SELECTORS,
    ) -> None:
        self.primary_selectors = primary_selectors
        self.secondary_selectors = secondary_selectors

    def _collect(
        self, page: Element, base_url: str, domain: str, selectors: Tuple[str, ...]
    ) -> Dict[str, Candidate]:
        found: Dict[str, Candidate] = {}
        for selector in selectors:
            for anchor in page.query_all(selector):
                href = anchor.attr("href")
                if not href:
                    continue
                try:
                    absolute = make_absolute_url(href, base_url)
                except InvalidURLError:
                    continue
                if absolute in found:
                    continue
                if registrable_domain(absolute) != domain:
                    continue
                if not looks_like_article(absolute):
                    continue
                found[absolute] = Candidate(
                    url=absolute, domain=domain, discovered_via=selector
                )
        return found

    def discover_candidates(self, page: Element, base_url: str) -> List[Candidate]:
        domain = registrable_domain(base_url)
        found = self._collect(page, base_url, domain, self.primary_selectors)
        if not found:
            logger.info("No candidates from primary selectors; trying broader pass")
            found = self._collect(page, base_url, domain, self.secondary_selectors)
        logger.info("Discovered %d candidate article(s) on %s", len(found), base_url)
        return list(found.values())

    def discover(self, page: Element, base_url: str) -> List[str]:
        return [c.url for c in self.discover_candidates(page, base_url)]
