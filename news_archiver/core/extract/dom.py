"""Query capability over parsed HTML.

Extraction and discovery rules only see the :class:`Element` protocol, so the
HTML library behind it is chosen in one place (:func:`parse_html`).
"""

from __future__ import annotations

import copy
from typing import List, Optional, Protocol

from bs4 import BeautifulSoup
from bs4.element import Tag


class Element(Protocol):
    @property
    def name(self) -> str: ...

    def query_first(self, selector: str) -> Optional["Element"]: ...

    def query_all(self, selector: str) -> List["Element"]: ...

    def text(self) -> str: ...

    def attr(self, name: str) -> Optional[str]: ...

    def without(self, selector: str) -> "Element": ...

    def html(self) -> str: ...

    def node_id(self) -> int: ...


class SoupElement:
    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    @property
    def name(self) -> str:
        return self._tag.name or ""

    def query_first(self, selector: str) -> Optional["SoupElement"]:
        found = self._tag.select_one(selector)
        return SoupElement(found) if found is not None else None

    def query_all(self, selector: str) -> List["SoupElement"]:
        return [SoupElement(tag) for tag in self._tag.select(selector)]

    def text(self) -> str:
        return self._tag.get_text(" ", strip=True)

    def attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return None
        # bs4 returns multi-valued attributes (class, rel) as lists
        if isinstance(value, (list, tuple)):
            value = " ".join(str(v) for v in value)
        value = str(value).strip()
        return value or None

    def without(self, selector: str) -> "SoupElement":
        clone = copy.copy(self._tag)
        for tag in clone.select(selector):
            tag.decompose()
        return SoupElement(clone)

    def html(self) -> str:
        return str(self._tag)

    def node_id(self) -> int:
        """Same value for every wrapper of the same parsed node."""
        return id(self._tag)


def parse_html(html: str) -> SoupElement:
    return SoupElement(BeautifulSoup(html or "", "html.parser"))
