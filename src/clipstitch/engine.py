"""ffmpeg engine — the external transcoder behind every export.

FFmpegEngine gives ffmpeg a small file-store interface: files are written
into a private working directory by name, ffmpeg runs there with a plain
argument list, and results are read back by name. Each call is awaitable
so the event loop stays free while ffmpeg works.

Progress comes from ffmpeg's machine-readable -progress output. Given the
expected output duration, exec() turns out_time_us into a 0..1 fraction
and hands it to the caller's callback.

One engine is shared per process (get_engine). It is created lazily,
loaded once, reused across exports, and torn down by shutdown_engine()
(also registered with atexit).
"""

import asyncio
import atexit
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable

import imageio_ffmpeg

from .errors import EngineCommandError, EngineInitError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Prepended to every invocation: overwrite outputs, keep stderr to real
# errors, and emit key=value progress blocks on stdout.
_BASE_ARGS = [
    "-y", "-hide_banner", "-nostats", "-loglevel", "error",
    "-progress", "pipe:1",
]


def parse_progress_line(line: str, duration: float | None) -> float | None:
    """Turn one line of ffmpeg -progress output into a 0..1 fraction.

    Returns None for lines that carry no usable progress (other keys,
    N/A values, or no known duration).
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress" and value == "end":
        return 1.0
    if key not in ("out_time_us", "out_time_ms") or not duration or duration <= 0:
        return None
    try:
        # Both keys are microseconds (out_time_ms is misnamed upstream).
        seconds = int(value) / 1_000_000
    except ValueError:
        return None
    return min(1.0, max(0.0, seconds / duration))


class FFmpegEngine:
    """ffmpeg with a named-file working directory.

    Args:
        ffmpeg_exe: ffmpeg binary. Defaults to the one bundled with
            imageio-ffmpeg, resolved on load().
        work_dir: Working directory. Defaults to a fresh temp dir that the
            engine removes on close().
    """

    def __init__(
        self,
        ffmpeg_exe: str | None = None,
        work_dir: str | Path | None = None,
    ):
        self._requested_exe = ffmpeg_exe
        self._requested_dir = Path(work_dir) if work_dir is not None else None
        self._owns_dir = False
        self._load_lock: asyncio.Lock | None = None
        self.ffmpeg_exe: str | None = None
        self.work_dir: Path | None = None
        self.loaded = False
        # Set by the export that currently owns the working directory.
        self.claimed = False

    # ── Lifecycle ──────────────────────────────────────────────────

    async def load(self) -> None:
        """Resolve the binary and create the working directory. Idempotent.

        Raises:
            EngineInitError: No usable ffmpeg, or the directory can't be made.
        """
        if self.loaded:
            return
        if self._load_lock is None:
            self._load_lock = asyncio.Lock()
        async with self._load_lock:
            if self.loaded:
                return
            try:
                exe = self._requested_exe or await asyncio.to_thread(
                    imageio_ffmpeg.get_ffmpeg_exe
                )
                if shutil.which(exe) is None and not Path(exe).is_file():
                    raise FileNotFoundError(f"ffmpeg binary not found: {exe}")
                if self._requested_dir is not None:
                    self._requested_dir.mkdir(parents=True, exist_ok=True)
                    work_dir = self._requested_dir
                else:
                    work_dir = Path(tempfile.mkdtemp(prefix="clipstitch_"))
                    self._owns_dir = True
            except Exception as exc:
                raise EngineInitError(f"Failed to load FFmpeg: {exc}") from exc

            self.ffmpeg_exe = exe
            self.work_dir = work_dir
            self.loaded = True
            logger.info("ffmpeg engine ready: %s (work dir %s)", exe, work_dir)

    def close(self) -> None:
        """Drop the working directory (if the engine created it)."""
        if self._owns_dir and self.work_dir is not None:
            shutil.rmtree(self.work_dir, ignore_errors=True)
        self._owns_dir = False
        self.work_dir = None
        self.loaded = False

    def _require_loaded(self) -> None:
        if not self.loaded:
            raise RuntimeError("FFmpegEngine used before load()")

    def _path(self, name: str) -> Path:
        self._require_loaded()
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValueError(f"Invalid engine file name: {name!r}")
        return self.work_dir / name

    # ── File store ─────────────────────────────────────────────────

    async def write_file(self, name: str, data: bytes) -> None:
        path = self._path(name)
        await asyncio.to_thread(path.write_bytes, data)

    async def read_file(self, name: str) -> bytes:
        path = self._path(name)
        return await asyncio.to_thread(path.read_bytes)

    async def delete_file(self, name: str) -> None:
        """Delete a file by name. Raises FileNotFoundError if absent."""
        path = self._path(name)
        await asyncio.to_thread(path.unlink)

    # ── Invocation ─────────────────────────────────────────────────

    async def exec(
        self,
        args: list[str],
        duration: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Run ffmpeg with args inside the working directory.

        Args:
            args: ffmpeg arguments, file names relative to the work dir.
            duration: Expected output duration in seconds, for progress.
            on_progress: Called with a 0..1 fraction as ffmpeg advances.

        Raises:
            EngineCommandError: ffmpeg exited non-zero.
        """
        self._require_loaded()
        cmd = [self.ffmpeg_exe, *_BASE_ARGS, *args]
        logger.debug("ffmpeg %s", " ".join(args))

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self.work_dir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            # stdout and stderr are drained together so neither pipe fills up.
            _, stderr = await asyncio.gather(
                self._pump_progress(proc.stdout, duration, on_progress),
                proc.stderr.read(),
            )
            returncode = await proc.wait()
        except BaseException:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if returncode != 0:
            raise EngineCommandError(returncode, stderr.decode(errors="replace"))

    @staticmethod
    async def _pump_progress(stream, duration, on_progress) -> None:
        async for raw in stream:
            if on_progress is None:
                continue
            fraction = parse_progress_line(raw.decode(errors="replace"), duration)
            if fraction is not None:
                on_progress(fraction)


# ── Process-wide engine ────────────────────────────────────────────

_engine: FFmpegEngine | None = None
_atexit_registered = False


def get_engine() -> FFmpegEngine:
    """Return the shared engine, creating it on first use (not loaded yet)."""
    global _engine, _atexit_registered
    if _engine is None:
        _engine = FFmpegEngine()
        if not _atexit_registered:
            atexit.register(shutdown_engine)
            _atexit_registered = True
    return _engine


def shutdown_engine() -> None:
    """Close and forget the shared engine. Safe to call more than once."""
    global _engine
    if _engine is not None:
        _engine.close()
        _engine = None
