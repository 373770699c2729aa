from __future__ import annotations

import hashlib
import json
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from .dates import parse_iso8601
from .errors import StoreError


@dataclass
class StoredArticle:
    """
    One persisted article. ``title`` and ``content`` hold serialized JSON.
    """

    url: str
    title: str
    content: str
    labels: list[str] = field(default_factory=list)
    published_date: str | None = None
    images: list[str] = field(default_factory=list)
    source_domain: str | None = None
    fetch_count: int = 0
    last_fetched_at: str | None = None

    def is_fresh(self, now: datetime, max_age: timedelta) -> bool:
        fetched = parse_iso8601(self.last_fetched_at)
        if fetched is None:
            return False
        return now - fetched <= max_age

    def title_payload(self) -> list:
        return _loads_list(self.title)

    def content_payload(self) -> list:
        return _loads_list(self.content)

    @classmethod
    def from_payload(cls, payload: object) -> "StoredArticle | None":
        if not isinstance(payload, dict):
            return None
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            return None
        fetch_count = payload.get("fetch_count")
        return cls(
            url=url,
            title=_as_json_string(payload.get("title")),
            content=_as_json_string(payload.get("content")),
            labels=[str(v) for v in payload.get("labels") or [] if v],
            published_date=payload.get("published_date") or None,
            images=[str(v) for v in payload.get("images") or [] if v],
            source_domain=payload.get("source_domain") or None,
            fetch_count=fetch_count if isinstance(fetch_count, int) else 0,
            last_fetched_at=payload.get("last_fetched_at") or None,
        )


def _as_json_string(value: object) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "[]"
    return json.dumps(value, ensure_ascii=False)


def _loads_list(raw: str) -> list:
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return []
    return value if isinstance(value, list) else []


class ArticleStore(Protocol):
    def get(self, url: str) -> StoredArticle | None: ...

    def upsert(self, record: StoredArticle) -> StoredArticle: ...


class MemoryArticleStore:
    def __init__(self) -> None:
        self._records: dict[str, StoredArticle] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> StoredArticle | None:
        with self._lock:
            return self._records.get(url)

    def upsert(self, record: StoredArticle) -> StoredArticle:
        with self._lock:
            self._records[record.url] = record
        return record


class JsonArticleStore:
    """Keeps one JSON document per article URL under *root*."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self._lock = threading.Lock()

    def _path_for(self, url: str) -> Path:
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
        return self.root / f"{digest}.json"

    def get(self, url: str) -> StoredArticle | None:
        path = self._path_for(url)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Failed to read stored article {path}: {exc}") from exc
        record = StoredArticle.from_payload(raw)
        if record is None or record.url != url:
            return None
        return record

    def upsert(self, record: StoredArticle) -> StoredArticle:
        path = self._path_for(record.url)
        payload = json.dumps(asdict(record), ensure_ascii=False, indent=2)
        with self._lock:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                tmp_path = path.with_suffix(".json.tmp")
                tmp_path.write_text(payload, encoding="utf-8")
                tmp_path.replace(path)
            except OSError as exc:
                raise StoreError(f"Failed to write stored article {path}: {exc}") from exc
        return record


__all__ = ["StoredArticle", "ArticleStore", "MemoryArticleStore", "JsonArticleStore"]
