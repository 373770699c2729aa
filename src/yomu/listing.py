from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

import requests

from .adapters import parse_title_labels
from .config import ReaderConfig
from .dates import MAINICHI_DATE_RE, normalize_date, to_iso8601
from .errors import NewsListQueryError, NewsListUnavailableError
from .nodes import SourceId

logger = logging.getLogger(__name__)

NHK_LIST_PATH = "/sources/www3.nhk.or.jp/news/easy/news-list.json"
MAINICHI_LIST_PATH = "/sources/mainichi.jp/maisho/news-list.json"
NHK_EASY_ROOT = "https://www3.nhk.or.jp/news/easy"

DEFAULT_LIMIT = 12
MAX_LIMIT = 50

_LEADING_INT_RE = re.compile(r"^\s*([-+]?\d+)")


@dataclass(slots=True)
class NewsListItem:
    source: SourceId
    id: str
    title: str
    date: datetime | None
    url: str
    image: str | None = None
    preview: str | None = None
    category: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "source": self.source.value,
            "id": self.id,
            "title": self.title,
            "date": to_iso8601(self.date),
            "url": self.url,
            "image": self.image,
            "preview": self.preview,
            "category": self.category,
        }


def _list_date(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    return normalize_date(value, MAINICHI_DATE_RE)


def parse_nhk_list(data: Any) -> list[NewsListItem]:
    """
    NHK publishes ``[{"YYYY-MM-DD": [article, ...], ...}]``; only the first
    mapping is read.
    """
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        logger.error("Invalid NHK news list structure")
        return []
    items: list[NewsListItem] = []
    for day, articles in data[0].items():
        if not isinstance(articles, list):
            logger.warning("Invalid NHK article list for %s", day)
            continue
        for article in articles:
            if not isinstance(article, dict):
                continue
            news_id = article.get("news_id")
            title = article.get("title")
            if not news_id or not title:
                logger.warning("Skipping NHK list entry without id or title")
                continue
            image_uri = article.get("news_easy_image_uri")
            items.append(
                NewsListItem(
                    source=SourceId.NHK,
                    id=f"nhk_{news_id}",
                    title=str(title),
                    date=_list_date(article.get("news_prearranged_time")),
                    url=f"{NHK_EASY_ROOT}/{news_id}/{news_id}.html",
                    image=f"{NHK_EASY_ROOT}/{news_id}/{image_uri}" if image_uri else None,
                )
            )
    return items


def parse_mainichi_list(data: Any) -> list[NewsListItem]:
    if not isinstance(data, list):
        logger.error("Invalid Mainichi news list structure")
        return []
    items: list[NewsListItem] = []
    for article in data:
        if not isinstance(article, dict):
            continue
        news_id = article.get("news_id")
        raw_title = article.get("title")
        if not news_id or not raw_title:
            logger.warning("Skipping Mainichi list entry without id or title")
            continue
        title, labels = parse_title_labels(str(raw_title))
        category = article.get("category") or (labels[1] if len(labels) > 1 else None)
        items.append(
            NewsListItem(
                source=SourceId.MAINICHI,
                id=f"mainichi_{news_id}",
                title=title,
                date=_list_date(article.get("news_prearranged_time")),
                url=str(article.get("news_web_url") or ""),
                image=article.get("news_web_image_uri") or None,
                preview=article.get("preview") or None,
                category=category,
            )
        )
    return items


def sort_newest_first(items: Iterable[NewsListItem]) -> list[NewsListItem]:
    """Newest first; entries without a usable date go last in their original order."""
    dated: list[NewsListItem] = []
    undated: list[NewsListItem] = []
    for item in items:
        (dated if item.date is not None else undated).append(item)
    dated.sort(key=lambda item: item.date, reverse=True)  # type: ignore[arg-type,return-value]
    return dated + undated


def lenient_int(value: object, default: int) -> int:
    """Leading-integer parse of a query value; anything else (or 0) means *default*."""
    if value is None:
        return default
    if isinstance(value, int):
        return value or default
    match = _LEADING_INT_RE.match(str(value))
    if match is None:
        return default
    return int(match.group(1)) or default


def clamp_limit(value: object) -> int:
    return min(max(lenient_int(value, DEFAULT_LIMIT), 1), MAX_LIMIT)


def clamp_offset(value: object) -> int:
    return max(lenient_int(value, 0), 0)


_PARSERS: dict[SourceId, tuple[str, Callable[[Any], list[NewsListItem]]]] = {
    SourceId.NHK: (NHK_LIST_PATH, parse_nhk_list),
    SourceId.MAINICHI: (MAINICHI_LIST_PATH, parse_mainichi_list),
}


class NewsListService:
    """
    Merges the per-source ``news-list.json`` feeds under *base_url* into one
    paginated, newest-first list.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        config: ReaderConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or ReaderConfig()
        self.base_url = base_url.rstrip("/") if base_url else None
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Accept": "application/json",
            }
        )

    def fetch_source(self, source: SourceId) -> list[NewsListItem]:
        """One source's entries; any failure is logged and yields an empty list."""
        if self.base_url is None:
            return []
        path, parse = _PARSERS[source]
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.get(url, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            logger.warning("Failed to fetch %s news list: %s", source.value, exc)
            return []
        if resp.status_code != 200:
            logger.warning(
                "%s news list request failed with status %s", source.value, resp.status_code
            )
            return []
        try:
            data = resp.json()
        except ValueError as exc:
            logger.warning("%s news list is not valid JSON: %s", source.value, exc)
            return []
        return parse(data)

    def page(
        self,
        *,
        limit: object = None,
        offset: object = None,
        source: str | None = None,
    ) -> dict[str, object]:
        limit_value = clamp_limit(limit)
        offset_value = clamp_offset(offset)
        wanted: SourceId | None = None
        if source:
            try:
                wanted = SourceId(source.strip().lower())
            except ValueError:
                raise NewsListQueryError("Invalid source parameter") from None

        nhk = self.fetch_source(SourceId.NHK)
        mainichi = self.fetch_source(SourceId.MAINICHI)
        if not nhk and not mainichi:
            raise NewsListUnavailableError("No news data available")

        merged = sort_newest_first(nhk + mainichi)
        if wanted is not None:
            merged = [item for item in merged if item.source is wanted]
        total = len(merged)
        if offset_value >= total:
            raise NewsListQueryError("Offset out of range")

        window = merged[offset_value : offset_value + limit_value]
        logger.info(
            "News list: total=%d returned=%d offset=%d limit=%d source=%s nhk=%d mainichi=%d",
            total,
            len(window),
            offset_value,
            limit_value,
            wanted.value if wanted else "all",
            len(nhk),
            len(mainichi),
        )
        return {
            "success": True,
            "newsList": [item.to_payload() for item in window],
            "hasMore": offset_value + limit_value < total,
            "total": total,
            "sources": {"nhk": len(nhk), "mainichi": len(mainichi)},
            "pagination": {
                "offset": offset_value,
                "limit": limit_value,
                "currentPage": offset_value // limit_value + 1,
                "totalPages": math.ceil(total / limit_value),
            },
        }

    def close(self) -> None:
        self._session.close()


__all__ = [
    "NewsListItem",
    "NewsListService",
    "parse_nhk_list",
    "parse_mainichi_list",
    "sort_newest_first",
    "clamp_limit",
    "clamp_offset",
    "lenient_int",
]
