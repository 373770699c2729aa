from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Coroutine, Iterable, Protocol

from .config import PlaybackTiming
from .sentences import Sentence

logger = logging.getLogger(__name__)


class RepeatMode(str, Enum):
    NONE = "none"
    ALL = "all"
    ONE = "one"

    def next(self) -> "RepeatMode":
        order = (RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE)
        return order[(order.index(self) + 1) % len(order)]


class PlaybackPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class PlaybackState:
    current_index: int = -1
    is_playing: bool = False
    is_paused: bool = False
    repeat_mode: RepeatMode = RepeatMode.NONE
    countdown_seconds: int = 0
    phase: PlaybackPhase = PlaybackPhase.IDLE
    error: str | None = None


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AudioClip(Protocol):
    """Decoded, playable audio kept in the cache."""

    def release(self) -> None: ...


class AudioHandle(Protocol):
    """One playback session of a clip."""

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...


class AudioBackend(Protocol):
    def load(self, data: bytes) -> AudioClip: ...

    def play(
        self,
        clip: AudioClip,
        on_end: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> AudioHandle: ...


Synthesizer = Callable[[str, int, float], Awaitable[bytes]]
CacheKey = tuple[str, int, float]


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class AudioCache:
    """
    Synthesized clips keyed by (text, voice, speed).

    Entries are only ever dropped all at once; an article holds few sentences.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, AudioClip] = {}

    @staticmethod
    def key(text: str, voice: int, speed: float) -> CacheKey:
        return (text, voice, float(speed))

    def get(self, key: CacheKey) -> AudioClip | None:
        return self._entries.get(key)

    def put(self, key: CacheKey, clip: AudioClip) -> None:
        previous = self._entries.get(key)
        if previous is not None and previous is not clip:
            previous.release()
        self._entries[key] = clip

    def clear(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for clip in entries:
            try:
                clip.release()
            except Exception as exc:  # pragma: no cover - backend specific
                logger.warning("Failed to release cached audio: %s", exc)

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class PlaybackEngine:
    """
    Sentence-by-sentence playback with repeat modes.

    Every user action bumps a generation counter; synthesis results and audio
    end events from an older generation are dropped. At most one continuation
    timer and one audio handle exist at any time.
    """

    def __init__(
        self,
        sentences: Iterable[Sentence],
        synthesizer: Synthesizer,
        backend: AudioBackend,
        *,
        voice: int,
        speed: float = 1.0,
        repeat_mode: RepeatMode = RepeatMode.NONE,
        timing: PlaybackTiming | None = None,
        scheduler: Scheduler | None = None,
        use_readings: bool = False,
    ) -> None:
        self._sentences: list[Sentence] = list(sentences)
        self._synthesizer = synthesizer
        self._backend = backend
        self.voice = voice
        self.speed = float(speed)
        self.timing = timing or PlaybackTiming()
        self.use_readings = use_readings
        self.state = PlaybackState(repeat_mode=repeat_mode)
        self.cache = AudioCache()
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._handle: AudioHandle | None = None
        self._pending: TimerHandle | None = None
        self._pending_index: int | None = None
        self._resume_index: int | None = None
        self._finished_index: int | None = None
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[PlaybackState], None]] = []
        self._closed = False

    # -- observation -----------------------------------------------------

    @property
    def sentences(self) -> list[Sentence]:
        return list(self._sentences)

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def sentence_text(self, index: int) -> str:
        sentence = self._sentences[index]
        return sentence.reading_text() if self.use_readings else sentence.text()

    def subscribe(self, listener: Callable[[PlaybackState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        snapshot = replace(self.state)
        for listener in list(self._listeners):
            listener(snapshot)

    # -- internals -------------------------------------------------------

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._pending_index = None
        self.state.countdown_seconds = 0

    def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.stop()

    def _invalidate(self, *, clear_cache: bool) -> None:
        self._generation += 1
        self._cancel_pending()
        self._release_handle()
        self._finished_index = None
        self._resume_index = None
        if clear_cache:
            self.cache.clear()

    def _settle_idle(self, *, keep_index: bool = True) -> None:
        st = self.state
        st.phase = PlaybackPhase.IDLE
        st.is_playing = False
        st.is_paused = False
        st.countdown_seconds = 0
        if not keep_index:
            st.current_index = -1
        self._emit()

    def _spawn(self, coro: Coroutine[object, object, object]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled playback failed: %s", exc)

    def _schedule_play(self, delay: float, index: int) -> None:
        self._cancel_pending()
        generation = self._generation

        def fire() -> None:
            self._pending = None
            self._pending_index = None
            if self._closed or generation != self._generation:
                return
            self._spawn(self.play(index))

        self._pending = self._scheduler.call_later(delay, fire)
        self._pending_index = index

    def _start_countdown(self, seconds: int, index: int) -> None:
        if seconds <= 0:
            self._schedule_play(0, index)
            return
        self._cancel_pending()
        self.state.countdown_seconds = seconds
        generation = self._generation

        def tick() -> None:
            self._pending = None
            self._pending_index = None
            if self._closed or generation != self._generation:
                return
            self.state.countdown_seconds -= 1
            if self.state.countdown_seconds <= 0:
                self.state.countdown_seconds = 0
                self._spawn(self.play(index))
                return
            self._emit()
            self._pending = self._scheduler.call_later(self.timing.tick, tick)
            self._pending_index = index

        self._pending = self._scheduler.call_later(self.timing.tick, tick)
        self._pending_index = index
        self._emit()

    def _on_audio_end(self, generation: int, index: int) -> None:
        if self._closed or generation != self._generation:
            return
        self._release_handle()
        self.state.phase = PlaybackPhase.IDLE
        self.state.is_playing = False
        self.state.is_paused = False
        self._finished_index = index
        self._after_sentence(index)

    def _on_audio_error(self, generation: int, index: int, exc: BaseException) -> None:
        if self._closed or generation != self._generation:
            return
        logger.warning("Audio playback failed for sentence %d: %s", index, exc)
        self._fail(exc)

    def _fail(self, exc: BaseException) -> None:
        self._release_handle()
        self.state.error = str(exc) or exc.__class__.__name__
        self._settle_idle(keep_index=True)

    def _after_sentence(self, index: int) -> None:
        mode = self.state.repeat_mode
        is_last = index >= len(self._sentences) - 1
        if mode is RepeatMode.ONE:
            self._start_countdown(self.timing.repeat_one_countdown, index)
        elif not is_last:
            self._schedule_play(self.timing.advance_delay, index + 1)
            self._emit()
        elif mode is RepeatMode.ALL:
            self._start_countdown(self.timing.repeat_all_countdown, 0)
        else:
            self._finished_index = None
            self._settle_idle(keep_index=False)

    # -- actions ---------------------------------------------------------

    async def play(self, index: int) -> bool:
        """
        Play sentence *index*, synthesizing it first on a cache miss.

        Returns ``False`` when synthesis failed or the request was superseded.
        """
        if self._closed:
            raise RuntimeError("PlaybackEngine is closed.")
        if not 0 <= index < len(self._sentences):
            raise IndexError(f"Sentence index out of range: {index}")

        self._invalidate(clear_cache=False)
        generation = self._generation
        st = self.state
        st.current_index = index
        st.error = None

        text = self.sentence_text(index)
        key = AudioCache.key(text, self.voice, self.speed)
        clip = self.cache.get(key)
        if clip is None:
            st.phase = PlaybackPhase.LOADING
            st.is_playing = False
            st.is_paused = False
            self._emit()
            try:
                data = await self._synthesizer(text, self.voice, self.speed)
            except Exception as exc:
                if generation != self._generation or self._closed:
                    return False
                logger.warning("Synthesis failed for sentence %d: %s", index, exc)
                self._fail(exc)
                return False
            if generation != self._generation or self._closed:
                logger.debug("Discarding stale audio for sentence %d", index)
                return False
            try:
                clip = self._backend.load(data)
            except Exception as exc:
                logger.warning("Could not decode audio for sentence %d: %s", index, exc)
                self._fail(exc)
                return False
            self.cache.put(key, clip)

        try:
            self._handle = self._backend.play(
                clip,
                functools.partial(self._on_audio_end, generation, index),
                functools.partial(self._on_audio_error, generation, index),
            )
        except Exception as exc:
            logger.warning("Could not start audio for sentence %d: %s", index, exc)
            self._fail(exc)
            return False
        st.phase = PlaybackPhase.PLAYING
        st.is_playing = True
        st.is_paused = False
        self._emit()
        return True

    def pause(self) -> None:
        st = self.state
        if st.phase is PlaybackPhase.PLAYING and self._handle is not None:
            self._handle.pause()
        elif st.phase is PlaybackPhase.LOADING:
            # the in-flight synthesis result is dropped; resume re-requests it
            self._generation += 1
        elif self._pending is not None:
            # an advance or countdown is armed; resume starts its target now
            target = self._pending_index
            self._cancel_pending()
            self._resume_index = target
        else:
            return
        st.phase = PlaybackPhase.PAUSED
        st.is_playing = False
        st.is_paused = True
        self._emit()

    async def resume(self) -> None:
        st = self.state
        if st.phase is not PlaybackPhase.PAUSED:
            return
        if self._handle is None:
            target = self._resume_index
            if target is None:
                target = st.current_index
            if 0 <= target < len(self._sentences):
                await self.play(target)
            return
        self._handle.resume()
        st.phase = PlaybackPhase.PLAYING
        st.is_playing = True
        st.is_paused = False
        self._emit()

    async def toggle(self) -> None:
        """Play/pause button: pause, resume, or start from the current sentence."""
        if self.state.is_playing or self._pending is not None:
            self.pause()
        elif self.state.is_paused:
            await self.resume()
        elif self._sentences:
            await self.play(max(self.state.current_index, 0))

    async def next(self) -> bool:
        if self.state.current_index >= len(self._sentences) - 1:
            return False
        return await self.play(self.state.current_index + 1)

    async def previous(self) -> bool:
        if self.state.current_index <= 0:
            return False
        return await self.play(self.state.current_index - 1)

    async def select(self, index: int) -> bool:
        st = self.state
        if index == st.current_index and st.phase in (PlaybackPhase.PLAYING, PlaybackPhase.LOADING):
            return False
        return await self.play(index)

    async def set_voice(self, voice: int) -> None:
        if voice == self.voice:
            return
        self.voice = voice
        await self._restart_after_audio_change()

    async def set_speed(self, speed: float) -> None:
        if float(speed) == self.speed:
            return
        self.speed = float(speed)
        await self._restart_after_audio_change()

    async def _restart_after_audio_change(self) -> None:
        st = self.state
        was_active = st.phase in (PlaybackPhase.PLAYING, PlaybackPhase.LOADING)
        finished = self._finished_index if self._pending is not None else None
        self._invalidate(clear_cache=True)
        if was_active and st.current_index >= 0:
            await self.play(st.current_index)
        elif finished is not None:
            # re-arm the advance or countdown that was running
            self._finished_index = finished
            self._after_sentence(finished)
        else:
            self._settle_idle(keep_index=True)

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        st = self.state
        if mode is st.repeat_mode:
            return
        st.repeat_mode = mode
        had_pending = self._pending is not None
        self._cancel_pending()
        finished = self._finished_index
        if not had_pending or finished is None or st.phase is not PlaybackPhase.IDLE:
            self._emit()
            return
        if mode is RepeatMode.NONE:
            self._finished_index = None
            self._settle_idle(keep_index=True)
            return
        self._after_sentence(finished)

    def cycle_repeat_mode(self) -> RepeatMode:
        self.set_repeat_mode(self.state.repeat_mode.next())
        return self.state.repeat_mode

    def load_sentences(self, sentences: Iterable[Sentence]) -> None:
        """Switch to another article's sentences, dropping all audio."""
        self._invalidate(clear_cache=True)
        self._sentences = list(sentences)
        st = self.state
        st.current_index = -1
        st.error = None
        self._settle_idle(keep_index=False)

    def close(self) -> None:
        if self._closed:
            return
        self._invalidate(clear_cache=True)
        self._closed = True
        self.state.phase = PlaybackPhase.IDLE
        self.state.is_playing = False
        self.state.is_paused = False
        self._listeners.clear()


__all__ = [
    "RepeatMode",
    "PlaybackPhase",
    "PlaybackState",
    "AudioCache",
    "AudioBackend",
    "AudioClip",
    "AudioHandle",
    "Scheduler",
    "LoopScheduler",
    "PlaybackEngine",
]
