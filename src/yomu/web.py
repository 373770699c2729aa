from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, Response

from .config import ReaderConfig
from .errors import (
    ArticleFetchError,
    NewsListError,
    StoreError,
    UnsupportedSourceError,
    VoiceVoxError,
    VoiceVoxUnavailableError,
)
from .listing import NewsListService
from .service import ArticleService
from .store import JsonArticleStore, MemoryArticleStore
from .tts import VoiceVoxClient, fetch_voices, synthesize

logger = logging.getLogger(__name__)


def _error_response(error: str, details: str | None = None, status_code: int = 500) -> JSONResponse:
    payload: dict[str, str] = {"error": error}
    if details:
        payload["details"] = details
    return JSONResponse(payload, status_code=status_code)


def _list_error(error: str, details: str | None = None, status_code: int = 500) -> JSONResponse:
    payload: dict[str, object] = {"success": False, "error": error}
    if details:
        payload["details"] = details
    return JSONResponse(payload, status_code=status_code)


def create_app(
    config: ReaderConfig,
    *,
    service: ArticleService | None = None,
    client: VoiceVoxClient | None = None,
    news_list: NewsListService | None = None,
) -> FastAPI:
    if service is None:
        store = (
            JsonArticleStore(config.store_dir)
            if config.store_dir is not None
            else MemoryArticleStore()
        )
        service = ArticleService(store, config=config)
    if client is None:
        client = VoiceVoxClient(config.engine_url, timeout=config.engine_timeout)
    if news_list is None:
        news_list = NewsListService(config.list_base_url, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            service.close()
            client.close()
            news_list.close()

    app = FastAPI(title="yomu", lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.voicevox = client
    app.state.news_list = news_list
    voicevox_lock = threading.Lock()

    @app.get("/fetch-news")
    def fetch_news(source: str | None = Query(None)) -> JSONResponse:
        if not source or not source.strip():
            return _error_response("source parameter is required", status_code=400)
        url = source.strip()
        try:
            article = service.get_article(url)
        except UnsupportedSourceError as exc:
            return _error_response("Unsupported news source", str(exc))
        except ArticleFetchError as exc:
            logger.warning("Article fetch failed for %s: %s", url, exc)
            return _error_response("Failed to fetch news content", str(exc))
        except StoreError as exc:
            logger.error("Article store failure for %s: %s", url, exc)
            return _error_response("Failed to fetch news content", str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while fetching %s", url)
            return _error_response("Failed to fetch news content", str(exc))
        return JSONResponse(article)

    @app.get("/fetch-news-list")
    def fetch_news_list(
        limit: str | None = Query(None),
        offset: str | None = Query(None),
        source: str | None = Query(None),
    ) -> JSONResponse:
        try:
            payload = news_list.page(limit=limit, offset=offset, source=source)
        except NewsListError as exc:
            return _list_error(str(exc), status_code=exc.status_code)
        except Exception as exc:
            logger.exception("Unexpected error while building the news list")
            return _list_error("Failed to fetch news list", str(exc))
        return JSONResponse(payload)

    @app.get("/tts")
    def tts(
        text: str | None = Query(None),
        voice: int | None = Query(None),
        speed: float | None = Query(None),
    ) -> Response:
        if not text or not text.strip():
            return _error_response("Text is required", status_code=400)
        speaker = voice if voice is not None else config.speaker
        try:
            with voicevox_lock:
                audio = synthesize(
                    client,
                    text,
                    speaker,
                    speed if speed is not None else config.speed,
                    max_chunk_chars=config.max_chunk_chars,
                )
        except (VoiceVoxUnavailableError, VoiceVoxError) as exc:
            logger.warning("Speech synthesis failed: %s", exc)
            return _error_response("Failed to generate speech", str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during speech synthesis")
            return _error_response("Failed to generate speech", str(exc))
        return Response(
            content=audio,
            media_type="audio/wav",
            headers={"Content-Length": str(len(audio))},
        )

    @app.get("/tts/voices")
    def tts_voices() -> JSONResponse:
        try:
            voices = fetch_voices(client)
        except (VoiceVoxUnavailableError, VoiceVoxError) as exc:
            return _error_response("Failed to fetch voices", str(exc))
        return JSONResponse(
            {"voices": voices},
            headers={"Cache-Control": "public, max-age=3600"},
        )

    return app


__all__ = ["create_app"]
