from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import tempfile
from pathlib import Path
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_COMMAND = ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet")


class MemoryClip:
    __slots__ = ("data", "released")

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.released = False

    def release(self) -> None:
        self.released = True
        self.data = b""


class MemoryHandle:
    """Inert playback handle; ``finish()`` simulates the natural end of audio."""

    def __init__(
        self,
        clip: MemoryClip,
        on_end: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self.clip = clip
        self._on_end = on_end
        self._on_error = on_error
        self.paused = False
        self.stopped = False

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.stopped = True

    def finish(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self._on_end()

    def fail(self, exc: BaseException) -> None:
        """Simulate the output device giving up mid-clip."""
        if self.stopped:
            return
        self.stopped = True
        if self._on_error is not None:
            self._on_error(exc)


class MemoryAudioBackend:
    def __init__(self) -> None:
        self.clips: list[MemoryClip] = []
        self.handles: list[MemoryHandle] = []

    def load(self, data: bytes) -> MemoryClip:
        clip = MemoryClip(data)
        self.clips.append(clip)
        return clip

    def play(
        self,
        clip: MemoryClip,
        on_end: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> MemoryHandle:
        handle = MemoryHandle(clip, on_end, on_error)
        self.handles.append(handle)
        return handle

    @property
    def current(self) -> MemoryHandle | None:
        return self.handles[-1] if self.handles else None

    def live_handles(self) -> list[MemoryHandle]:
        return [handle for handle in self.handles if not handle.stopped]


class FileClip:
    """WAV bytes spilled to a temp file so an external player can read them."""

    def __init__(self, data: bytes, directory: Path) -> None:
        fd, name = tempfile.mkstemp(suffix=".wav", dir=directory)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        self.path: Path | None = Path(name)

    def release(self) -> None:
        path, self.path = self.path, None
        if path is not None:
            path.unlink(missing_ok=True)


class SubprocessHandle:
    def __init__(
        self,
        on_end: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._on_end = on_end
        self._on_error = on_error
        self._process: asyncio.subprocess.Process | None = None
        self._stopped = False
        self._task: asyncio.Task | None = None

    async def _run(self, command: Sequence[str]) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.error("Could not start audio player %s: %s", command[0], exc)
            if not self._stopped:
                self._stopped = True
                if self._on_error is not None:
                    self._on_error(exc)
            return
        if self._stopped:
            self._terminate()
            return
        returncode = await self._process.wait()
        if self._stopped:
            return
        if returncode != 0:
            logger.warning("Audio player exited with status %s", returncode)
        self._stopped = True
        self._on_end()

    def _signal(self, signum: int) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.send_signal(signum)
        except ProcessLookupError:
            pass

    def _terminate(self) -> None:
        if hasattr(signal, "SIGCONT"):
            self._signal(signal.SIGCONT)
        self._signal(signal.SIGTERM)

    def pause(self) -> None:
        if hasattr(signal, "SIGSTOP"):
            self._signal(signal.SIGSTOP)

    def resume(self) -> None:
        if hasattr(signal, "SIGCONT"):
            self._signal(signal.SIGCONT)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._terminate()


class SubprocessAudioBackend:
    """
    Plays clips with an external command line player (ffplay by default).
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_PLAYER_COMMAND,
        *,
        temp_dir: Path | None = None,
    ) -> None:
        if not command:
            raise ValueError("Player command cannot be empty.")
        if shutil.which(command[0]) is None:
            raise FileNotFoundError(f"Audio player executable not found: {command[0]}")
        self.command = tuple(command)
        self._owned_dir = temp_dir is None
        self.temp_dir = temp_dir or Path(tempfile.mkdtemp(prefix="yomu-audio-"))

    def load(self, data: bytes) -> FileClip:
        return FileClip(data, self.temp_dir)

    def play(
        self,
        clip: FileClip,
        on_end: Callable[[], None],
        on_error: Callable[[BaseException], None] | None = None,
    ) -> SubprocessHandle:
        if clip.path is None:
            raise RuntimeError("Cannot play a released clip.")
        handle = SubprocessHandle(on_end, on_error)
        loop = asyncio.get_running_loop()
        handle._task = loop.create_task(handle._run([*self.command, str(clip.path)]))
        return handle

    def close(self) -> None:
        if self._owned_dir:
            shutil.rmtree(self.temp_dir, ignore_errors=True)


__all__ = [
    "MemoryClip",
    "MemoryHandle",
    "MemoryAudioBackend",
    "FileClip",
    "SubprocessHandle",
    "SubprocessAudioBackend",
    "DEFAULT_PLAYER_COMMAND",
]
