"""Clip model and the ordered clip store.

A Clip is one imported source video plus its trim/inclusion state. Clips
are frozen; every change goes through ClipStore.update / batch_update with
an updater that returns a modified copy (see with_fields and the batch
action helpers below). Store order is export order.

Import probes durations with moviepy. All probes in one batch run
concurrently, and a single failure rejects the whole batch so the store
never ends up half-imported.
"""

import asyncio
import itertools
import logging
import math
import mimetypes
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from moviepy import VideoFileClip

from .common import as_float
from .errors import ClipImportError
from .resources import ResourceHandle, ResourceLifecycle

logger = logging.getLogger(__name__)

MAX_CLIPS = 30
DEFAULT_OUTRO_SECONDS = 4.55

LARGE_EXPORT_CLIP_COUNT = 10
LARGE_EXPORT_BYTES = 500 * 1024 * 1024
LARGE_EXPORT_WARNING = (
    "Large export selected. Exports of more than 10 clips or 500MB "
    "may run slowly or run out of memory."
)

_clip_ids = itertools.count(1)


# ── Model ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MediaSource:
    """A raw media file the user picked. name defaults to the file name."""

    path: Path
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))
        if not self.name:
            object.__setattr__(self, "name", self.path.name)

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    @property
    def media_type(self) -> str:
        guessed, _ = mimetypes.guess_type(self.path.name)
        return guessed or "video/mp4"

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True)
class Clip:
    id: str
    name: str
    source: MediaSource
    duration: float
    include: bool = True
    trim_enabled: bool = True
    trim_start: float = 0.0
    trim_end: float = 0.0
    remove_outro_enabled: bool = False
    outro_seconds: float = DEFAULT_OUTRO_SECONDS
    selected: bool = False
    preview: ResourceHandle | None = field(default=None, compare=False, repr=False)


def new_clip_id() -> str:
    """Process-wide unique clip id. Ids are never reused."""
    return f"clip-{next(_clip_ids)}"


# ── Updaters ───────────────────────────────────────────────────────

Updater = Callable[[Clip], Clip]


def with_fields(**changes) -> Updater:
    """Updater that sets the given fields, e.g. with_fields(include=False)."""
    def _apply(clip: Clip) -> Clip:
        return replace(clip, **changes)
    return _apply


apply_remove_outro = with_fields(remove_outro_enabled=True, trim_enabled=True)
clear_remove_outro = with_fields(remove_outro_enabled=False)
enable_trim = with_fields(trim_enabled=True)
disable_trim = with_fields(trim_enabled=False)


# ── Probing ────────────────────────────────────────────────────────

def _read_duration(path: Path) -> float:
    with VideoFileClip(str(path)) as clip:
        duration = clip.duration
    if duration is None or not math.isfinite(duration):
        return 0.0
    return float(duration)


async def probe_duration(source: MediaSource) -> float:
    """Read a source's duration in seconds (0 when the container has none).

    moviepy blocks while it opens the file, so the read runs in a worker
    thread and the event loop stays free for the other probes.

    Raises:
        ClipImportError: The file could not be opened as video.
    """
    try:
        return await asyncio.to_thread(_read_duration, source.path)
    except Exception as exc:
        raise ClipImportError(
            f"Could not read video metadata for {source.name}"
        ) from exc


# ── Store ──────────────────────────────────────────────────────────

class ClipStore:
    """Ordered collection of clips. Owns the clips and their previews."""

    def __init__(
        self,
        outro_seconds: float = DEFAULT_OUTRO_SECONDS,
        resources: ResourceLifecycle | None = None,
        probe: Callable[[MediaSource], Awaitable[float]] = probe_duration,
    ):
        self._clips: list[Clip] = []
        # Slots held by imports that are still probing.
        self._pending = 0
        self._outro_seconds = DEFAULT_OUTRO_SECONDS
        self.outro_seconds = outro_seconds
        self.resources = resources if resources is not None else ResourceLifecycle()
        self._probe = probe

    def __len__(self):
        return len(self._clips)

    def __iter__(self):
        return iter(tuple(self._clips))

    @property
    def outro_seconds(self) -> float:
        """Global outro length applied to newly imported clips."""
        return self._outro_seconds

    @outro_seconds.setter
    def outro_seconds(self, value) -> None:
        value = as_float(value)
        self._outro_seconds = value if math.isfinite(value) and value > 0 else 0.0

    @property
    def clips(self) -> tuple[Clip, ...]:
        return tuple(self._clips)

    @property
    def included_clips(self) -> list[Clip]:
        return [c for c in self._clips if c.include]

    @property
    def selected_count(self) -> int:
        return sum(1 for c in self._clips if c.selected)

    def get(self, clip_id: str) -> Clip | None:
        for clip in self._clips:
            if clip.id == clip_id:
                return clip
        return None

    async def import_sources(self, sources: Iterable[MediaSource]) -> list[Clip]:
        """Probe and append a batch of sources. All or nothing.

        Args:
            sources: Media sources in the order they should be appended.

        Returns:
            The newly created clips.

        Raises:
            ClipImportError: The batch would exceed MAX_CLIPS (counting
                imports still probing), or any probe failed. The store is unchanged in both cases.
        """
        sources = list(sources)
        if not sources:
            return []

        if len(self._clips) + self._pending + len(sources) > MAX_CLIPS:
            raise ClipImportError(
                f"Too many clips selected. Limit is {MAX_CLIPS} clips."
            )

        self._pending += len(sources)
        try:
            durations = await asyncio.gather(*(self._probe(s) for s in sources))
        except ClipImportError:
            raise
        except Exception as exc:
            raise ClipImportError(f"Failed to import videos: {exc}") from exc
        finally:
            self._pending -= len(sources)

        outro = self._outro_seconds
        new_clips = []
        for source, duration in zip(sources, durations):
            preview = self.resources.create_from_path(
                source.path, source.name, source.media_type,
            )
            new_clips.append(Clip(
                id=new_clip_id(),
                name=source.name,
                source=source,
                duration=duration,
                trim_end=duration,
                outro_seconds=outro,
                preview=preview,
            ))

        self._clips.extend(new_clips)
        logger.info("Imported %d clip(s), %d total", len(new_clips), len(self._clips))
        return new_clips

    def update(self, clip_id: str, fn: Updater) -> None:
        """Apply fn to the clip with clip_id. Unknown ids are ignored."""
        for i, clip in enumerate(self._clips):
            if clip.id == clip_id:
                self._clips[i] = self._checked(clip, fn(clip))
                return

    def batch_update(self, fn: Updater) -> None:
        """Apply fn to every clip that is selected right now."""
        self._clips = [
            self._checked(c, fn(c)) if c.selected else c for c in self._clips
        ]

    def set_all_selected(self, selected: bool) -> None:
        self._clips = [replace(c, selected=selected) for c in self._clips]

    def apply_global_outro(self) -> None:
        """Copy the global outro length onto every selected clip."""
        self.batch_update(with_fields(outro_seconds=self._outro_seconds))

    def move(self, index: int, direction: int) -> None:
        """Swap the clip at index with its neighbour. No-op at either end."""
        if direction not in (-1, 1):
            raise ValueError(f"direction must be -1 or 1, got {direction!r}")
        target = index + direction
        if not (0 <= index < len(self._clips)) or not (0 <= target < len(self._clips)):
            return
        clips = self._clips
        clips[index], clips[target] = clips[target], clips[index]

    def close(self) -> None:
        """End the session: release every preview and drop all clips."""
        for clip in self._clips:
            self.resources.release(clip.preview)
        self._clips = []

    @staticmethod
    def _checked(old: Clip, new: Clip) -> Clip:
        if new.id != old.id:
            raise ValueError(f"Updater changed clip id {old.id!r} -> {new.id!r}")
        return new


# ── Queries ────────────────────────────────────────────────────────

def large_export_warning(clips: Iterable[Clip]) -> str:
    """Warning text when the included clips make a heavy export, else ''.

    Never blocks export; callers just show it.
    """
    included = [c for c in clips if c.include]
    total_bytes = sum(c.source.size for c in included)
    if len(included) > LARGE_EXPORT_CLIP_COUNT or total_bytes > LARGE_EXPORT_BYTES:
        return LARGE_EXPORT_WARNING
    return ""
