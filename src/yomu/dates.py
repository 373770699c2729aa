from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from dateutil import parser as dateparser

logger = logging.getLogger(__name__)

JST = ZoneInfo("Asia/Tokyo")

# 2024年12月18日 11時45分 (no seconds)
NHK_DATE_RE = re.compile(
    r"(?P<year>\d{4})年\s*(?P<month>\d{1,2})月\s*(?P<day>\d{1,2})日"
    r"[^\d]*?(?P<hour>\d{1,2})時\s*(?P<minute>\d{1,2})分"
)
# 2024-12-18 11:45:00
MAINICHI_DATE_RE = re.compile(
    r"(?P<year>\d{4})[-/](?P<month>\d{1,2})[-/](?P<day>\d{1,2})"
    r"[ T](?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})"
)


def _from_match(match: re.Match[str]) -> datetime | None:
    fields = match.groupdict()
    try:
        local = datetime(
            int(fields["year"]),
            int(fields["month"]),
            int(fields["day"]),
            int(fields["hour"]),
            int(fields["minute"]),
            int(fields.get("second") or 0),
            tzinfo=JST,
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


def _generic_parse(text: str) -> datetime | None:
    try:
        parsed = dateparser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=JST)
    return parsed.astimezone(timezone.utc)


def normalize_date(text: str | None, pattern: re.Pattern[str] | None = None) -> datetime | None:
    """
    Parse a source date string as Japan Standard Time and return it in UTC.

    *pattern* carries the source's exact field order; when it does not match
    the string goes through generic parsing. Unparseable input yields ``None``.
    """
    if not text:
        return None
    cleaned = text.strip()
    if not cleaned:
        return None
    if pattern is not None:
        match = pattern.search(cleaned)
        if match is not None:
            result = _from_match(match)
            if result is not None:
                return result
    result = _generic_parse(cleaned)
    if result is None:
        logger.debug("Unparseable date string: %r", cleaned)
    return result


def to_iso8601(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso8601(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_time(value: datetime, now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    seconds = int((current - value).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days >= 7:
        return f"{days // 7}週間前"
    if days > 0:
        return f"{days}日{hours % 24}時間前"
    if hours > 0:
        return f"{hours}時間{minutes % 60}分前"
    if minutes > 0:
        return f"{minutes}分前"
    if seconds > 0:
        return "1分前"
    return "たった今"


def format_japanese_date(value: str | None, now: datetime | None = None) -> str:
    """
    Render an ISO timestamp as ``2024年12月18日 11時45分（3時間5分前）`` in JST.
    """
    parsed = parse_iso8601(value)
    if parsed is None:
        return value or ""
    local = parsed.astimezone(JST)
    stamp = f"{local.year}年{local.month}月{local.day}日 {local.hour:02d}時{local.minute:02d}分"
    relative = format_relative_time(parsed, now)
    return f"{stamp}（{relative}）"


__all__ = [
    "JST",
    "NHK_DATE_RE",
    "MAINICHI_DATE_RE",
    "normalize_date",
    "to_iso8601",
    "parse_iso8601",
    "format_relative_time",
    "format_japanese_date",
]
