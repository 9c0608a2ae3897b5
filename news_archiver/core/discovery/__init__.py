from __future__ import annotations

from .links import LinkDiscoverer, looks_like_article

__all__ = [
    "LinkDiscoverer",
    "looks_like_article",
]
