"""Export orchestration — per-clip transcode, then one concat.

State machine:

  IDLE -> LOADING_ENGINE -> PROCESSING_CLIP (once per clip) -> CONCATENATING
       -> COMPLETE
  any running state -> ERRORED
  COMPLETE / ERRORED -> IDLE via reset(), or straight into a new run

One export() call is one session:
  1. Guards: at least one included clip, and every included clip has a
     valid effective range. The first invalid clip (store order) is
     reported. A failed guard changes no state.
  2. Load the engine (once per process).
  3. For each included clip, strictly one at a time: write its bytes
     into the engine, transcode the effective range to the target
     geometry as segment_<i>.mp4.
  4. Write a concat list and re-encode all segments into one mp4 with
     +faststart.
  5. Read the result back and publish it as a ResourceHandle.

Every artifact name is recorded before the engine touches it, and all of
them are deleted when the run ends, whether it succeeded or not. Artifact
names are fixed, so an engine serves one export at a time: the orchestrator
claims it for the whole run. Apart from ExportInProgressError, which is
raised to the caller that was turned away, errors never escape export():
they end up in error / error_message.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from .clips import Clip
from .common import (
    DEFAULT_ASPECT,
    DEFAULT_FIT,
    FIT_MODES,
    AspectPreset,
    format_seconds,
    get_preset,
    input_extension,
    scale_filter,
    to_safe_name,
)
from .engine import FFmpegEngine, get_engine
from .errors import (
    ClipstitchError,
    ClipValidationError,
    ConcatError,
    EngineCommandError,
    EngineInitError,
    ExportInProgressError,
    OutputFormatError,
    TranscodeError,
)
from .progress import ProgressEstimator
from .ranges import EffectiveRange, resolve_range
from .resources import ResourceHandle, ResourceLifecycle

logger = logging.getLogger(__name__)

OUTPUT_NAME = "clipstitch_output.mp4"
OUTPUT_MEDIA_TYPE = "video/mp4"
CONCAT_LIST_NAME = "concat_list.txt"

STAGE_LOADING = "Loading FFmpeg…"
STAGE_CONCAT = "Concatenating clips…"
STAGE_COMPLETE = "Export complete. Ready to download."


class ExportState(Enum):
    IDLE = "idle"
    LOADING_ENGINE = "loading_engine"
    PROCESSING_CLIP = "processing_clip"
    CONCATENATING = "concatenating"
    COMPLETE = "complete"
    ERRORED = "errored"


@dataclass(frozen=True)
class ExportSettings:
    aspect: str = DEFAULT_ASPECT
    fit: str = DEFAULT_FIT

    def __post_init__(self):
        get_preset(self.aspect)
        if self.fit not in FIT_MODES:
            raise ValueError(
                f"Unknown fit mode '{self.fit}'. Valid: {list(FIT_MODES)}"
            )

    @property
    def preset(self) -> AspectPreset:
        return get_preset(self.aspect)


@dataclass(frozen=True)
class ExportStatus:
    state: ExportState
    stage: str
    percent: int
    clip_index: int | None = None
    error_message: str = ""


# ── Engine arguments ───────────────────────────────────────────────

def segment_name(index: int) -> str:
    return f"segment_{index}.mp4"


def clip_input_name(clip: Clip, index: int) -> str:
    """Working-dir name for a clip's source bytes, unique per position."""
    base = to_safe_name(clip.name, f"clip_{index}")
    return f"{base}_{index}.{input_extension(clip.name)}"


def transcode_args(
    input_name: str, output_name: str, rng: EffectiveRange, vf: str,
) -> list[str]:
    return [
        "-ss", format_seconds(rng.start),
        "-to", format_seconds(rng.end),
        "-i", input_name,
        "-vf", vf,
        "-pix_fmt", "yuv420p",
        "-c:v", "libx264", "-preset", "veryfast", "-crf", "23",
        "-c:a", "aac", "-b:a", "128k",
        output_name,
    ]


def concat_list(segment_names: list[str]) -> str:
    """ffmpeg concat demuxer list, one `file '<name>'` line per segment."""
    return "\n".join(f"file '{name}'" for name in segment_names)


def concat_args(list_name: str, output_name: str) -> list[str]:
    # Re-encode rather than -c copy so mismatched segments still join.
    return [
        "-f", "concat", "-safe", "0",
        "-i", list_name,
        "-c:v", "libx264",
        "-c:a", "aac",
        "-movflags", "+faststart",
        output_name,
    ]


# ── Orchestrator ───────────────────────────────────────────────────

class ExportOrchestrator:
    """Runs exports one at a time and exposes their state.

    Args:
        engine: Engine to use. Defaults to the shared process engine.
        resources: Owner of the output handle. A private one by default.
        on_status: Called with an ExportStatus whenever stage, state or
            percent changes.
    """

    def __init__(
        self,
        engine: FFmpegEngine | None = None,
        resources: ResourceLifecycle | None = None,
        on_status: Callable[[ExportStatus], None] | None = None,
    ):
        self._engine = engine
        self.resources = resources if resources is not None else ResourceLifecycle()
        self.on_status = on_status
        self.state = ExportState.IDLE
        self.stage = ""
        self.percent = 0
        self.clip_index: int | None = None
        self.error: Exception | None = None
        self.error_message = ""
        self.output: ResourceHandle | None = None
        self.running = False

    @property
    def status(self) -> ExportStatus:
        return ExportStatus(
            self.state, self.stage, self.percent, self.clip_index, self.error_message,
        )

    def _emit(self) -> None:
        if self.on_status is not None:
            self.on_status(self.status)

    def _enter(self, state: ExportState, stage: str, clip_index: int | None = None) -> None:
        self.state = state
        self.stage = stage
        self.clip_index = clip_index
        self._emit()

    def _on_percent(self, percent: int) -> None:
        self.percent = percent
        self._emit()

    def _reject(self, exc: ClipstitchError) -> None:
        # Guard failures report an error without leaving the current state.
        self.error = exc
        self.error_message = str(exc)
        logger.warning("Export rejected: %s", exc)
        self._emit()

    def _fail(self, exc: BaseException) -> None:
        self.error = exc
        self.error_message = str(exc) or "Export failed."
        self.state = ExportState.ERRORED
        self._emit()

    def reset(self) -> None:
        """Release the output and return to IDLE."""
        if self.running:
            raise ExportInProgressError("Cannot reset while an export is running.")
        self.resources.release(self.output)
        self.output = None
        self.error = None
        self.error_message = ""
        self.percent = 0
        self._enter(ExportState.IDLE, "")

    async def export(
        self,
        clips: Iterable[Clip],
        settings: ExportSettings | None = None,
    ) -> ResourceHandle | None:
        """Export the included clips as one mp4.

        Args:
            clips: A ClipStore or any iterable of clips, in export order.
                Only clips with include=True are exported. The included
                list is snapshotted before the first await.
            settings: Aspect preset and fit mode.

        Returns:
            The output handle on success, None on rejection or failure
            (see error / error_message).

        Raises:
            ExportInProgressError: This orchestrator, or another one on the
                same engine, is mid-export. Nothing about the running
                export is touched.
        """
        settings = settings or ExportSettings()

        if self.running:
            logger.warning("Export rejected: an export is already running")
            raise ExportInProgressError("An export is already running.")
        engine = self._resolve_engine()
        if engine.claimed:
            logger.warning("Export rejected: engine is busy with another export")
            raise ExportInProgressError("Another export is using the FFmpeg engine.")

        included = [c for c in clips if c.include]
        if not included:
            self._reject(ClipValidationError("Include at least one clip before exporting."))
            return None

        ranges = []
        for clip in included:
            rng = resolve_range(clip)
            if not rng.valid:
                self._reject(ClipValidationError(
                    f"Cannot export: {clip.name} has invalid trim settings. {rng.reason}"
                ))
                return None
            ranges.append(rng)

        self.running = True
        engine.claimed = True
        self.error = None
        self.error_message = ""
        self.resources.release(self.output)
        self.output = None
        self.percent = 0

        loaded = False
        artifacts: list[str] = []
        try:
            self._enter(ExportState.LOADING_ENGINE, STAGE_LOADING)
            await self._load_engine(engine)
            loaded = True

            progress = ProgressEstimator(len(included), on_change=self._on_percent)
            vf = scale_filter(settings.preset, settings.fit)
            logger.info(
                "Exporting %d clip(s) at %s, fit=%s",
                len(included), settings.aspect, settings.fit,
            )

            segments = []
            for i, (clip, rng) in enumerate(zip(included, ranges)):
                segments.append(await self._transcode(
                    engine, clip, rng, i, len(included), vf, progress, artifacts,
                ))

            total_duration = sum(r.end - r.start for r in ranges)
            await self._concat(engine, segments, total_duration, progress, artifacts)

            data = await engine.read_file(OUTPUT_NAME)
            if not isinstance(data, (bytes, bytearray)):
                raise OutputFormatError("Unexpected FFmpeg output format.")

            self.output = self.resources.create(data, OUTPUT_NAME, OUTPUT_MEDIA_TYPE)
            self._enter(ExportState.COMPLETE, STAGE_COMPLETE)
            progress.complete()
            logger.info("Export complete: %d bytes", len(data))
            return self.output
        except asyncio.CancelledError as exc:
            self._fail(exc)
            self.error_message = "Export cancelled."
            raise
        except ClipstitchError as exc:
            logger.error("Export failed: %s", exc)
            self._fail(exc)
            return None
        except Exception as exc:
            logger.exception("Export failed unexpectedly")
            self._fail(exc)
            return None
        finally:
            try:
                if loaded:
                    await self._cleanup(engine, artifacts)
            finally:
                engine.claimed = False
                self.running = False

    def _resolve_engine(self) -> FFmpegEngine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    @staticmethod
    async def _load_engine(engine: FFmpegEngine) -> None:
        try:
            await engine.load()
        except EngineInitError:
            raise
        except Exception as exc:
            raise EngineInitError(f"Failed to load FFmpeg: {exc}") from exc

    async def _transcode(
        self,
        engine: FFmpegEngine,
        clip: Clip,
        rng: EffectiveRange,
        index: int,
        total: int,
        vf: str,
        progress: ProgressEstimator,
        artifacts: list[str],
    ) -> str:
        input_name = clip_input_name(clip, index)
        output_name = segment_name(index)
        artifacts.extend([input_name, output_name])

        self._enter(
            ExportState.PROCESSING_CLIP,
            f"Processing clip {index + 1} of {total}…",
            clip_index=index,
        )
        progress.begin_clip(index)

        try:
            data = await asyncio.to_thread(clip.source.read_bytes)
            await engine.write_file(input_name, data)
            del data
            await engine.exec(
                transcode_args(input_name, output_name, rng, vf),
                duration=rng.end - rng.start,
                on_progress=progress.update,
            )
        except (EngineCommandError, OSError) as exc:
            raise TranscodeError(
                f"Failed to process clip {index + 1} of {total} ({clip.name}): {exc}"
            ) from exc
        return output_name

    async def _concat(
        self,
        engine: FFmpegEngine,
        segments: list[str],
        duration: float,
        progress: ProgressEstimator,
        artifacts: list[str],
    ) -> None:
        artifacts.extend([CONCAT_LIST_NAME, OUTPUT_NAME])
        self._enter(ExportState.CONCATENATING, STAGE_CONCAT)
        progress.begin_concat()

        try:
            await engine.write_file(CONCAT_LIST_NAME, concat_list(segments).encode())
            await engine.exec(
                concat_args(CONCAT_LIST_NAME, OUTPUT_NAME),
                duration=duration,
                on_progress=progress.update,
            )
        except (EngineCommandError, OSError) as exc:
            raise ConcatError(f"Failed to concatenate clips: {exc}") from exc

    @staticmethod
    async def _cleanup(engine: FFmpegEngine, artifacts: list[str]) -> None:
        for name in artifacts:
            try:
                await engine.delete_file(name)
            except Exception as exc:
                logger.debug("Cleanup skipped %s: %s", name, exc)
