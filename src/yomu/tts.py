from __future__ import annotations

import asyncio
import io
import json
import logging
import threading
import time
import wave
from typing import Callable, Iterable
from urllib.parse import urlparse

import requests

from .config import DEFAULT_ENGINE_URL, MAX_SPEED, MIN_SPEED
from .errors import VoiceVoxError, VoiceVoxUnavailableError

logger = logging.getLogger(__name__)

_SENTENCE_BREAKS = ("\n", "。", "！", "？", "!", "?", "…")
_CLAUSE_BREAKS = ("、", "，", ",", "；", ";", "：", "・")


def normalize_engine_url(base_url: str) -> str:
    trimmed = base_url.strip()
    if not trimmed:
        raise ValueError("VoiceVox base URL cannot be empty.")
    if "://" not in trimmed:
        trimmed = f"http://{trimmed}"
    parsed = urlparse(trimmed)
    if not parsed.hostname:
        raise ValueError(f"Invalid VoiceVox base URL: {base_url}")
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported VoiceVox URL scheme: {parsed.scheme}")
    if parsed.port is None:
        parsed = parsed._replace(netloc=f"{parsed.hostname}:50021")
    return parsed.geturl().rstrip("/")


def clamp_speed(speed: float | None, low: float = MIN_SPEED, high: float = MAX_SPEED) -> float:
    if speed is None:
        return 1.0
    try:
        value = float(speed)
    except (TypeError, ValueError):
        return 1.0
    if value != value:  # NaN
        return 1.0
    return max(low, min(high, value))


class VoiceVoxClient:
    """
    Thin wrapper around the VoiceVox HTTP API.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_ENGINE_URL,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = normalize_engine_url(base_url)
        self.timeout = timeout
        self._session = requests.Session()

    def build_audio_query(self, text: str, speaker: int) -> dict:
        try:
            query_resp = self._session.post(
                f"{self.base_url}/audio_query",
                params={"text": text, "speaker": speaker},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise VoiceVoxUnavailableError(
                f"Failed to contact VoiceVox engine at {self.base_url}"
            ) from exc

        if query_resp.status_code != 200:
            raise VoiceVoxError(
                f"/audio_query failed with status {query_resp.status_code}: {query_resp.text}"
            )
        try:
            payload = query_resp.json()
        except json.JSONDecodeError as exc:
            raise VoiceVoxError("VoiceVox returned invalid JSON for /audio_query") from exc
        if not isinstance(payload, dict):
            raise VoiceVoxError("VoiceVox returned a non-object /audio_query payload")
        return payload

    def synthesize_from_query(self, query_payload: dict, speaker: int) -> bytes:
        try:
            synth_resp = self._session.post(
                f"{self.base_url}/synthesis",
                params={"speaker": speaker},
                json=query_payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise VoiceVoxUnavailableError(
                f"Failed to contact VoiceVox engine during synthesis at {self.base_url}"
            ) from exc

        if synth_resp.status_code != 200:
            raise VoiceVoxError(
                f"/synthesis failed with status {synth_resp.status_code}: {synth_resp.text}"
            )
        return synth_resp.content

    def synthesize_wav(self, text: str, speaker: int, *, speed: float | None = None) -> bytes:
        """
        Generate WAV audio bytes for the provided text via VoiceVox.
        """
        query_payload = self.build_audio_query(text, speaker)
        if speed is not None:
            query_payload["speedScale"] = float(speed)
        return self.synthesize_from_query(query_payload, speaker)

    def list_speakers(self) -> list[dict]:
        try:
            resp = self._session.get(f"{self.base_url}/speakers", timeout=self.timeout)
        except requests.RequestException as exc:
            raise VoiceVoxUnavailableError(
                f"Failed to list speakers at {self.base_url}"
            ) from exc
        if resp.status_code != 200:
            raise VoiceVoxError(f"/speakers failed with status {resp.status_code}: {resp.text}")
        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise VoiceVoxError("VoiceVox returned invalid JSON for /speakers") from exc
        if not isinstance(payload, list):
            raise VoiceVoxError("VoiceVox returned a non-list /speakers payload")
        return payload

    def close(self) -> None:
        self._session.close()


def _preferred_cut_index(text: str, limit: int) -> int:
    def _best_index(separators: tuple[str, ...]) -> int | None:
        best: int | None = None
        for sep in separators:
            idx = text.rfind(sep, 0, limit)
            if idx > 0:
                end = idx + len(sep)
                if best is None or end > best:
                    best = end
        return best

    for candidates in (_SENTENCE_BREAKS, _CLAUSE_BREAKS):
        match = _best_index(candidates)
        if match is not None:
            return match
    return max(1, limit)


def split_for_synthesis(text: str, limit: int = 500) -> list[str]:
    """
    Cut long input into engine-sized chunks, preferring sentence then clause
    breaks.
    """
    remaining = text.strip()
    if not remaining:
        return []
    chunks: list[str] = []
    while len(remaining) > limit:
        cut = _preferred_cut_index(remaining, limit)
        head = remaining[:cut].strip()
        if head:
            chunks.append(head)
        remaining = remaining[cut:].strip()
    if remaining:
        chunks.append(remaining)
    return chunks


def merge_wavs(payloads: Iterable[bytes]) -> bytes:
    """Concatenate WAV payloads that share one format into a single WAV."""
    chunks = list(payloads)
    if not chunks:
        raise ValueError("No WAV payloads to merge.")
    if len(chunks) == 1:
        return chunks[0]
    output = io.BytesIO()
    params = None
    with wave.open(output, "wb") as writer:
        for data in chunks:
            try:
                with wave.open(io.BytesIO(data), "rb") as reader:
                    current = reader.getparams()
                    frames = reader.readframes(reader.getnframes())
            except (wave.Error, EOFError) as exc:
                raise VoiceVoxError(f"VoiceVox returned invalid WAV data: {exc}") from exc
            if params is None:
                params = current
                writer.setnchannels(current.nchannels)
                writer.setsampwidth(current.sampwidth)
                writer.setframerate(current.framerate)
            elif (current.nchannels, current.sampwidth, current.framerate) != (
                params.nchannels,
                params.sampwidth,
                params.framerate,
            ):
                raise VoiceVoxError("VoiceVox returned WAV chunks with mismatched formats")
            writer.writeframes(frames)
    return output.getvalue()


def synthesize(
    client: VoiceVoxClient,
    text: str,
    voice: int,
    speed: float | None = None,
    *,
    max_chunk_chars: int = 500,
) -> bytes:
    """
    Turn one TTS request ``{text, voice, speed}`` into WAV bytes.
    """
    chunks = split_for_synthesis(text, max_chunk_chars)
    if not chunks:
        raise ValueError("Text is required")
    clamped = clamp_speed(speed)
    logger.debug("Synthesizing %d chunk(s) speaker=%s speed=%.2f", len(chunks), voice, clamped)
    return merge_wavs(client.synthesize_wav(chunk, voice, speed=clamped) for chunk in chunks)


def flatten_speakers(speakers: Iterable[dict]) -> list[dict[str, object]]:
    """One entry per VoiceVox style, sorted by style id."""
    voices: list[dict[str, object]] = []
    for speaker in speakers:
        name = speaker.get("name")
        for style in speaker.get("styles") or []:
            style_id = style.get("id")
            if not isinstance(style_id, int):
                continue
            style_name = style.get("name") or ""
            voices.append(
                {
                    "id": style_id,
                    "name": name,
                    "style": style_name,
                    "displayName": f"{name}（{style_name}）" if style_name else name,
                }
            )
    voices.sort(key=lambda item: item["id"])  # type: ignore[arg-type,return-value]
    return voices


def fetch_voices(
    client: VoiceVoxClient,
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> list[dict[str, object]]:
    """
    List voices, retrying with exponential backoff up to *attempts* times.
    """
    last_exc: Exception | None = None
    for attempt in range(max(1, attempts)):
        try:
            return flatten_speakers(client.list_speakers())
        except (VoiceVoxError, VoiceVoxUnavailableError) as exc:
            last_exc = exc
            if attempt + 1 >= attempts:
                break
            delay = base_delay * (2**attempt)
            logger.warning("Voice list fetch failed (%s); retrying in %.1fs", exc, delay)
            sleep(delay)
    assert last_exc is not None
    raise last_exc


class VoiceVoxSynthesizer:
    """
    Awaitable synthesis for the playback engine.

    The blocking client runs in the loop's default executor; requests are
    serialized because one VoiceVox engine handles one synthesis at a time.
    """

    def __init__(self, client: VoiceVoxClient, *, max_chunk_chars: int = 500) -> None:
        self.client = client
        self.max_chunk_chars = max_chunk_chars
        self._lock = threading.Lock()

    def _run(self, text: str, voice: int, speed: float) -> bytes:
        with self._lock:
            return synthesize(
                self.client, text, voice, speed, max_chunk_chars=self.max_chunk_chars
            )

    async def __call__(self, text: str, voice: int, speed: float) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run, text, voice, speed)

    def close(self) -> None:
        self.client.close()


__all__ = [
    "VoiceVoxClient",
    "VoiceVoxSynthesizer",
    "clamp_speed",
    "normalize_engine_url",
    "split_for_synthesis",
    "merge_wavs",
    "synthesize",
    "flatten_speakers",
    "fetch_voices",
]
