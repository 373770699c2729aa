from __future__ import annotations

import warnings
from typing import Iterator, Protocol, Union

from bs4 import (  # type: ignore
    BeautifulSoup,
    FeatureNotFound,
    NavigableString,
    Tag,
    XMLParsedAsHTMLWarning,
)
from bs4.element import Comment  # type: ignore


class HTMLElement(Protocol):
    """Minimal element view the source adapters work against."""

    @property
    def name(self) -> str: ...

    def text(self) -> str: ...

    def attr(self, name: str) -> str | None: ...

    def children(self) -> Iterator[Union[str, "HTMLElement"]]: ...

    def select_one(self, rule: str) -> "HTMLElement | None": ...

    def select(self, rule: str) -> list["HTMLElement"]: ...


class ParsedHTML(Protocol):
    def select_one(self, rule: str) -> HTMLElement | None: ...

    def select(self, rule: str) -> list[HTMLElement]: ...

    def meta(self, key: str) -> str | None: ...


class SoupElement:
    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    @property
    def name(self) -> str:
        return (self._tag.name or "").lower()

    def text(self) -> str:
        return self._tag.get_text()

    def attr(self, name: str) -> str | None:
        value = self._tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def children(self) -> Iterator[Union[str, "SoupElement"]]:
        for child in self._tag.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                yield str(child)
            elif isinstance(child, Tag):
                yield SoupElement(child)

    def select_one(self, rule: str) -> "SoupElement | None":
        found = self._tag.select_one(rule)
        return SoupElement(found) if found is not None else None

    def select(self, rule: str) -> list["SoupElement"]:
        return [SoupElement(tag) for tag in self._tag.select(rule)]

    def __repr__(self) -> str:
        return f"SoupElement(<{self.name}>)"


class SoupDocument:
    """ParsedHTML backed by BeautifulSoup CSS selectors."""

    __slots__ = ("_soup",)

    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup

    def select_one(self, rule: str) -> SoupElement | None:
        found = self._soup.select_one(rule)
        return SoupElement(found) if found is not None else None

    def select(self, rule: str) -> list[SoupElement]:
        return [SoupElement(tag) for tag in self._soup.select(rule)]

    def meta(self, key: str) -> str | None:
        """
        Return the content of the first <meta> whose property or name is *key*.
        """
        for attr_name in ("property", "name", "itemprop"):
            tag = self._soup.find("meta", attrs={attr_name: key})
            if isinstance(tag, Tag):
                content = tag.get("content")
                if isinstance(content, str) and content.strip():
                    return content.strip()
        return None


def parse_html(markup: str | bytes) -> SoupDocument:
    for parser in ("lxml", "html.parser"):
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
                return SoupDocument(BeautifulSoup(markup, parser))
        except FeatureNotFound:
            continue
    return SoupDocument(BeautifulSoup(markup, "html.parser"))


__all__ = ["HTMLElement", "ParsedHTML", "SoupElement", "SoupDocument", "parse_html"]
