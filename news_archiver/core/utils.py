from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

import tldextract

from .errors import InvalidURLError

# Offline extractor: bundled public suffix snapshot, no network lookups.
_TLD_EXTRACT = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


def sha1_hex(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def article_id_for(url: str) -> str:
    return f"article_{md5_hex(url)[:12]}"


def staging_key_for(url: str) -> str:
    return sha1_hex(url)[:12]


def normalize_title(title: str) -> str:
    return (title or "").strip().lower()


def slugify(text: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    slug = slug[:max_length].rstrip("-")
    return slug or "untitled"


def registrable_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    parts = _TLD_EXTRACT(host)
    return ".".join(p for p in (parts.domain, parts.suffix) if p) or host


def archive_domain(url: str) -> str:
    """Folder name for a site's archive: the hostname without a www. prefix."""
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return re.sub(r"[^a-z0-9.\-]+", "_", host) or "unknown"


def make_absolute_url(href: str, base_url: str) -> str:
    href = (href or "").strip()
    if not href:
        raise InvalidURLError("empty href")
    if href.startswith("//"):
        href = "https:" + href
    try:
        absolute = urljoin(base_url, href)
    except ValueError as exc:
        raise InvalidURLError(f"cannot resolve {href!r}: {exc}") from exc
    absolute, _fragment = urldefrag(absolute)
    parsed = urlparse(absolute)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise InvalidURLError(f"not an http(s) URL: {href!r}")
    return absolute


def is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_datetime_loose(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    cleaned = re.sub(r"\([^)]*\)", " ", s)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    iso_try = cleaned.replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(iso_try)
    except ValueError:
        pass
    patterns = [
        (
            r"(?P<y4>\d{4})[./-](?P<m>\d{1,2})[./-](?P<d>\d{1,2})"
            r"(?:[ T]+(?P<h>\d{1,2}):(?P<min>\d{2})(?::(?P<s>\d{2}))?)?"
        ),
        (
            r"(?P<y4t>\d{4})(?P<mt>\d{2})(?P<dt>\d{2})T(?P<ht>\d{2})(?P<mint>\d{2})(?P<st>\d{2})Z?"
        ),
        # "January 15, 2024 3:04 PM", "Jan 15 2024"
        (
            r"(?P<mon>[A-Za-z]{3,9})\.? (?P<d>\d{1,2})(?:st|nd|rd|th)?,? (?P<y4>\d{4})"
            r"(?:,? (?:at )?(?P<h>\d{1,2}):(?P<min>\d{2})(?::(?P<s>\d{2}))? ?(?P<ampm>[AaPp]\.?[Mm]\.?)?)?"
        ),
        # "15 January 2024"
        (
            r"(?P<d>\d{1,2}) (?P<mon>[A-Za-z]{3,9})\.? (?P<y4>\d{4})"
            r"(?:,? (?P<h>\d{1,2}):(?P<min>\d{2})(?::(?P<s>\d{2}))?)?"
        ),
    ]
    for pattern in patterns:
        match = re.search(pattern, cleaned)
        if not match:
            continue
        groups = match.groupdict()
        y_str = groups.get("y4") or groups.get("y4t")
        if not y_str:
            continue
        try:
            year = int(y_str)
            if groups.get("mon"):
                month = _MONTHS.get(groups["mon"][:3].lower(), 0)
            else:
                month = int(groups.get("m") or groups.get("mt") or 0)
            day = int(groups.get("d") or groups.get("dt") or 0)
            hour = int(groups.get("h") or groups.get("ht") or 0)
            minute = int(groups.get("min") or groups.get("mint") or 0)
            second = int(groups.get("s") or groups.get("st") or 0)
            ampm = (groups.get("ampm") or "").replace(".", "").lower()
            if ampm == "pm" and hour < 12:
                hour += 12
            elif ampm == "am" and hour == 12:
                hour = 0
            return datetime(year, month, day, hour, minute, second)
        except ValueError:
            continue
    return None
