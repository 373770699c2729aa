from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable
from urllib.parse import urljoin, urlparse

from .dates import MAINICHI_DATE_RE, NHK_DATE_RE, normalize_date, to_iso8601
from .errors import UnsupportedSourceError
from .furigana import nodes_from_element, split_inline_furigana
from .html import HTMLElement, ParsedHTML
from .nodes import ContentNode, Paragraph, ParsedArticle, SourceId, TextNode

logger = logging.getLogger(__name__)

_SITE_SUFFIX_RE = re.compile(r"\s*[|｜]\s*[^|｜]*$")
_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_INLINE_WS_RE = re.compile(r"[ \t\r\f\v]+")
_TITLE_COLON = "："


def strip_site_suffix(title: str) -> str:
    """Drop a trailing ``" | site-name"`` from an OpenGraph title."""
    stripped = _SITE_SUFFIX_RE.sub("", title).strip()
    return stripped or title.strip()


class SourceAdapter:
    """
    Converts one publisher's article page into a :class:`ParsedArticle`.

    Subclasses fill in the selectors; the fallback chains live here so every
    source degrades the same way when its markup changes.
    """

    source: SourceId
    hosts: tuple[str, ...] = ()
    origin: str = ""
    title_selectors: tuple[str, ...] = ()
    date_selectors: tuple[str, ...] = ()
    date_meta_keys: tuple[str, ...] = ()
    date_pattern: re.Pattern[str] | None = None
    main_image_selectors: tuple[str, ...] = ()
    figure_selectors: tuple[str, ...] = ()
    body_selectors: tuple[str, ...] = ()
    paragraph_rule: str = "p"
    inline_furigana: bool = False

    def parse(self, document: ParsedHTML) -> ParsedArticle:
        title = self.extract_title(document)
        return ParsedArticle(
            title=tuple(title),
            labels=tuple(self.extract_labels(document, title)),
            content=tuple(self.extract_body(document)),
            published_date=to_iso8601(self.extract_date(document)),
            images=tuple(self.extract_images(document)),
            source=self.source,
            description=document.meta("og:description") or document.meta("description"),
        )

    # -- title -----------------------------------------------------------

    def title_nodes(self, element: HTMLElement) -> list[ContentNode]:
        if self.inline_furigana and element.select_one("ruby") is None:
            return split_inline_furigana(_normalize_inline(element.text()))
        return nodes_from_element(element, inline=self.inline_furigana)

    def extract_title(self, document: ParsedHTML) -> list[ContentNode]:
        for selector in self.title_selectors:
            element = document.select_one(selector)
            if element is None:
                continue
            nodes = self.title_nodes(element)
            if nodes:
                return nodes
        og_title = document.meta("og:title")
        if og_title:
            return self.text_to_nodes(strip_site_suffix(og_title))
        return []

    def text_to_nodes(self, text: str) -> list[ContentNode]:
        cleaned = _normalize_inline(text)
        if not cleaned:
            return []
        if self.inline_furigana:
            return split_inline_furigana(cleaned)
        return [TextNode(cleaned)]

    def extract_labels(self, document: ParsedHTML, title: list[ContentNode]) -> list[str]:
        return []

    # -- date ------------------------------------------------------------

    def raw_date(self, document: ParsedHTML) -> str | None:
        for key in self.date_meta_keys:
            value = document.meta(key)
            if value:
                return value
        for selector in self.date_selectors:
            element = document.select_one(selector)
            if element is None:
                continue
            value = element.attr("datetime") or element.text().strip()
            if value:
                return value
        return None

    def extract_date(self, document: ParsedHTML) -> datetime | None:
        return normalize_date(self.raw_date(document), self.date_pattern)

    # -- images ----------------------------------------------------------

    def resolve_url(self, src: str) -> str:
        if src.startswith("//"):
            return f"https:{src}"
        return urljoin(self.origin + "/", src)

    def _first_image(self, document: ParsedHTML, selectors: Iterable[str]) -> str | None:
        for selector in selectors:
            container = document.select_one(selector)
            if container is None:
                continue
            image = container if container.name == "img" else container.select_one("img")
            if image is None:
                continue
            src = image.attr("src") or image.attr("data-src")
            if src and src.strip():
                return self.resolve_url(src.strip())
        return None

    def extract_images(self, document: ParsedHTML) -> list[str]:
        og_image = document.meta("og:image")
        if og_image:
            return [self.resolve_url(og_image)]
        for selectors in (self.main_image_selectors, self.figure_selectors):
            found = self._first_image(document, selectors)
            if found:
                return [found]
        return []

    # -- body ------------------------------------------------------------

    def body_container(self, document: ParsedHTML) -> HTMLElement | None:
        for selector in self.body_selectors:
            element = document.select_one(selector)
            if element is not None:
                return element
        return None

    def paragraph_nodes(self, element: HTMLElement) -> list[ContentNode]:
        return self.title_nodes(element)

    def _structured_paragraphs(self, container: HTMLElement) -> list[Paragraph]:
        paragraphs: list[Paragraph] = []
        for element in container.select(self.paragraph_rule):
            nodes = self.paragraph_nodes(element)
            if nodes:
                paragraphs.append(Paragraph(tuple(nodes)))
        return paragraphs

    def _split_paragraphs(self, container: HTMLElement) -> list[Paragraph]:
        paragraphs: list[Paragraph] = []
        for chunk in _BLANK_LINE_RE.split(container.text()):
            cleaned = _normalize_inline(chunk)
            if not cleaned:
                continue
            nodes = split_inline_furigana(cleaned)
            if nodes:
                paragraphs.append(Paragraph(tuple(nodes)))
        return paragraphs

    def extract_body(self, document: ParsedHTML) -> list[Paragraph]:
        container = self.body_container(document)
        if container is not None:
            paragraphs = self._structured_paragraphs(container)
            if paragraphs:
                return paragraphs
            logger.debug("%s: body has no paragraphs, splitting raw text", self.source.value)
            paragraphs = self._split_paragraphs(container)
            if paragraphs:
                return paragraphs
        description = document.meta("og:description") or document.meta("description")
        if description:
            logger.debug("%s: falling back to meta description", self.source.value)
            nodes = self.text_to_nodes(description)
            if nodes:
                return [Paragraph(tuple(nodes))]
        return []


class NHKEasyAdapter(SourceAdapter):
    source = SourceId.NHK
    hosts = ("www3.nhk.or.jp", "www.nhk.or.jp", "news.web.nhk")
    origin = "https://www3.nhk.or.jp"
    title_selectors = (".article-title", "h1.article-main__title")
    date_selectors = ("#js-article-date", ".article-main__date", "p.article-date")
    date_meta_keys = ()
    date_pattern = NHK_DATE_RE
    main_image_selectors = (".article-main__img", ".article-main__image")
    figure_selectors = ("#js-article-figure", "figure")
    body_selectors = ("#js-article-body", ".article-main__body", ".article-body")


def parse_title_labels(title: str) -> tuple[str, list[str]]:
    """
    Split ``prefix：category title`` (or ``prefix：title``) into the bare
    title and its labels.
    """
    labels: list[str] = []
    if _TITLE_COLON not in title:
        return title.strip(), labels
    prefix, _, rest = title.partition(_TITLE_COLON)
    prefix = prefix.strip()
    rest = rest.strip()
    if prefix:
        labels.append(prefix)
    parts = rest.split(maxsplit=1)
    if len(parts) > 1:
        labels.append(parts[0])
        return parts[1].strip(), labels
    return rest, labels


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


class MainichiMaishoAdapter(SourceAdapter):
    source = SourceId.MAINICHI
    hosts = ("mainichi.jp",)
    origin = "https://mainichi.jp"
    title_selectors = ("h1.title-page", "h1.articledetail-title", "article h1")
    date_selectors = ("time.articledetail-date", ".articletag-date", "time")
    date_meta_keys = ("firstcreate", "article:published_time")
    date_pattern = MAINICHI_DATE_RE
    main_image_selectors = (".articledetail-image", ".articledetail-photo")
    figure_selectors = ("figure",)
    body_selectors = ("#articledetail-body", ".articledetail-body", ".main-text")
    category_selectors = (".articletag-category", ".articlelist-shoulder")
    inline_furigana = True

    def _title_string(self, document: ParsedHTML) -> str | None:
        for selector in self.title_selectors:
            element = document.select_one(selector)
            if element is not None:
                text = _normalize_inline(element.text())
                if text:
                    return text
        og_title = document.meta("og:title")
        if og_title:
            return strip_site_suffix(og_title)
        return None

    def extract_title(self, document: ParsedHTML) -> list[ContentNode]:
        raw = self._title_string(document)
        if not raw:
            return []
        title, _ = parse_title_labels(raw)
        return split_inline_furigana(title)

    def extract_labels(self, document: ParsedHTML, title: list[ContentNode]) -> list[str]:
        candidates: list[str] = []
        raw = self._title_string(document)
        if raw:
            _, labels = parse_title_labels(raw)
            candidates.extend(labels)
        category = document.meta("category") or document.meta("article:section")
        if category:
            candidates.append(category)
        else:
            for selector in self.category_selectors:
                element = document.select_one(selector)
                if element is not None and element.text().strip():
                    candidates.append(element.text())
                    break
        return _dedupe(candidates)


def _normalize_inline(text: str) -> str:
    lines = [_INLINE_WS_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "".join(line for line in lines if line)


class AdapterRegistry:
    """
    Maps article hosts to adapters.

    Hosts match exactly. Anything else is parsed by ``default`` (the first
    registered adapter) unless the registry is strict, in which case an
    :class:`UnsupportedSourceError` is raised instead.
    """

    def __init__(self, adapters: Iterable[SourceAdapter], *, strict: bool = False) -> None:
        self._adapters = list(adapters)
        if not self._adapters:
            raise ValueError("AdapterRegistry needs at least one adapter.")
        self._by_host: dict[str, SourceAdapter] = {}
        for adapter in self._adapters:
            for host in adapter.hosts:
                self._by_host[host.lower()] = adapter
        self.strict = strict

    @property
    def default(self) -> SourceAdapter:
        return self._adapters[0]

    @property
    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters)

    def lookup(self, host: str) -> SourceAdapter | None:
        return self._by_host.get(host.lower())

    def select(self, url: str) -> SourceAdapter:
        host = (urlparse(url).hostname or "").lower()
        adapter = self.lookup(host)
        if adapter is not None:
            return adapter
        if self.strict:
            raise UnsupportedSourceError(f"No adapter registered for host: {host or url}")
        logger.warning(
            "No adapter for host %r; parsing with default %s adapter",
            host,
            self.default.source.value,
        )
        return self.default


def default_registry(*, strict: bool = False) -> AdapterRegistry:
    return AdapterRegistry([NHKEasyAdapter(), MainichiMaishoAdapter()], strict=strict)


__all__ = [
    "SourceAdapter",
    "NHKEasyAdapter",
    "MainichiMaishoAdapter",
    "AdapterRegistry",
    "default_registry",
    "parse_title_labels",
    "strip_site_suffix",
]
