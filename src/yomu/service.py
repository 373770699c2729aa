from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urlparse

import requests

from .adapters import AdapterRegistry, default_registry
from .config import ReaderConfig
from .dates import to_iso8601
from .errors import ArticleFetchError
from .html import parse_html
from .nodes import (
    ParsedArticle,
    nodes_from_payload,
    nodes_to_payload,
    paragraphs_from_payload,
    paragraphs_to_payload,
)
from .store import ArticleStore, MemoryArticleStore, StoredArticle

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleService:
    """
    Serves articles from the store while fresh and re-parses them otherwise.
    """

    def __init__(
        self,
        store: ArticleStore | None = None,
        registry: AdapterRegistry | None = None,
        *,
        config: ReaderConfig | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or ReaderConfig()
        self.store = store if store is not None else MemoryArticleStore()
        self.registry = registry or default_registry(strict=self.config.strict_sources)
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
            }
        )
        self._clock = clock

    @property
    def max_age(self) -> timedelta:
        return timedelta(hours=self.config.freshness_hours)

    def fetch_html(self, url: str) -> str:
        try:
            resp = self._session.get(url, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            raise ArticleFetchError(url, f"Failed to fetch article at {url}: {exc}") from exc
        if resp.status_code != 200:
            raise ArticleFetchError(
                url,
                f"Article request failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
            resp.encoding = resp.apparent_encoding or "utf-8"
        return resp.text

    def parse_document(self, url: str, html: str) -> ParsedArticle:
        adapter = self.registry.select(url)
        return adapter.parse(parse_html(html))

    def get_article(self, url: str) -> dict[str, object]:
        now = self._clock()
        stored = self.store.get(url)
        if stored is not None and stored.is_fresh(now, self.max_age):
            logger.debug("Serving stored article %s", url)
            return self._response(stored)

        logger.info("Fetching article %s", url)
        article = self.parse_document(url, self.fetch_html(url))
        record = StoredArticle(
            url=url,
            title=json.dumps(nodes_to_payload(article.title), ensure_ascii=False),
            content=json.dumps(paragraphs_to_payload(article.content), ensure_ascii=False),
            labels=list(article.labels),
            published_date=article.published_date,
            images=list(article.images),
            source_domain=urlparse(url).hostname,
            fetch_count=(stored.fetch_count if stored is not None else 0) + 1,
            last_fetched_at=to_iso8601(now),
        )
        return self._response(self.store.upsert(record))

    def load_article(self, url: str) -> ParsedArticle:
        """Return the article as a model, going through the store like get_article."""
        payload = self.get_article(url)
        adapter = self.registry.select(url)
        return ParsedArticle(
            title=nodes_from_payload(payload["title"]),
            labels=tuple(payload["labels"]),  # type: ignore[arg-type]
            content=paragraphs_from_payload(payload["content"]),
            published_date=payload["published_date"],  # type: ignore[arg-type]
            images=tuple(payload["images"]),  # type: ignore[arg-type]
            source=adapter.source,
        )

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _response(record: StoredArticle) -> dict[str, object]:
        return {
            "title": nodes_to_payload(nodes_from_payload(record.title_payload())),
            "labels": list(record.labels),
            "content": paragraphs_to_payload(paragraphs_from_payload(record.content_payload())),
            "published_date": record.published_date,
            "images": list(record.images),
            "source_domain": record.source_domain,
            "fetch_count": record.fetch_count,
            "last_fetched_at": record.last_fetched_at,
        }


__all__ = ["ArticleService"]
