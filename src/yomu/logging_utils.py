from __future__ import annotations

import logging
from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_handler: logging.Handler | None = None


def _decode_path(value: str) -> str:
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except Exception:
        return value


class Utf8AccessFormatter(UvicornAccessFormatter):
    """Uvicorn access log formatter that prints decoded UTF-8 paths.

    Article URLs arrive percent-encoded in ``/fetch-news?source=...`` and
    Japanese TTS text in ``/tts?text=...``.
    """

    def formatMessage(self, record):  # type: ignore[override]
        try:
            client_addr, method, full_path, http_version, status_code = record.args
        except Exception:
            return super().formatMessage(record)
        decoded_path = _decode_path(full_path) if isinstance(full_path, str) else full_path
        new_record = copy(record)
        new_record.args = (client_addr, method, decoded_path, http_version, status_code)
        return super().formatMessage(new_record)


def build_uvicorn_log_config() -> dict[str, Any]:
    """Return a uvicorn logging config that uses Utf8AccessFormatter and
    routes the ``yomu`` loggers through uvicorn's default handler."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "yomu.logging_utils.Utf8AccessFormatter"
    loggers = config.setdefault("loggers", {})
    loggers["yomu"] = {"handlers": ["default"], "level": "INFO", "propagate": False}
    return config


def set_debug_logging(enabled: bool) -> None:
    """Send every ``yomu`` log record to stderr while *enabled*."""
    global _handler
    logger = logging.getLogger("yomu")
    if not enabled:
        if _handler is not None:
            logger.removeHandler(_handler)
            _handler = None
        logger.setLevel(logging.NOTSET)
        return
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(_handler)
    logger.setLevel(logging.DEBUG)


__all__ = ["Utf8AccessFormatter", "build_uvicorn_log_config", "set_debug_logging"]
