"""Shared test fixtures for clipstitch tests."""

import itertools
import subprocess

import pytest
import imageio_ffmpeg

from clipstitch.clips import Clip, MediaSource, new_clip_id
from clipstitch.errors import EngineCommandError

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


@pytest.fixture
def source_video(tmp_path):
    """Create a 5-second test video (320x240, 10fps) with audio using ffmpeg.

    Shared across the engine, export and CLI integration tests.
    """
    out = tmp_path / "source.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=blue:s=320x240:d=5:r=10",
            "-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "32k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def make_clip(tmp_path):
    """Factory for clips backed by small placeholder files.

    Defaults match a freshly imported clip: included, trim on, full range.
    """
    counter = itertools.count()

    def _make(name="clip.mp4", duration=10.0, size=16, **fields):
        path = tmp_path / f"src_{next(counter)}_{name}"
        path.write_bytes(b"x" * size)
        fields.setdefault("trim_end", duration)
        return Clip(
            id=new_clip_id(),
            name=name,
            source=MediaSource(path, name),
            duration=duration,
            **fields,
        )

    return _make


def fake_probe(durations: dict[str, float]):
    """Async probe returning durations by source name. Unknown names fail."""
    async def _probe(source):
        if source.name not in durations:
            raise RuntimeError(f"cannot probe {source.name}")
        return durations[source.name]
    return _probe


class FakeEngine:
    """In-memory stand-in for FFmpegEngine that records every call.

    exec() writes a placeholder for its output file before deciding whether
    to fail, so a failing call leaves a partial artifact behind, like ffmpeg.
    """

    def __init__(self, fail_on=None, fail_load=False, read_result=None):
        self.fail_on = fail_on
        self.fail_load = fail_load
        self.read_result = read_result
        self.loaded = False
        self.claimed = False
        self.load_calls = 0
        self.files: dict[str, bytes] = {}
        self.writes: dict[str, bytes] = {}
        self.calls: list[list[str]] = []
        self.deleted: list[str] = []

    async def load(self):
        self.load_calls += 1
        if self.fail_load:
            raise RuntimeError("ffmpeg download failed")
        self.loaded = True

    async def write_file(self, name, data):
        self.writes[name] = bytes(data)
        self.files[name] = bytes(data)

    async def exec(self, args, duration=None, on_progress=None):
        index = len(self.calls)
        self.calls.append(list(args))
        self.files[args[-1]] = b"partial"
        if on_progress is not None:
            for fraction in (0.0, 0.25, 0.5, 1.0):
                on_progress(fraction)
        if self.fail_on is not None and self.fail_on(index, args):
            raise EngineCommandError(1, "Conversion failed!")
        self.files[args[-1]] = b"rendered:" + args[-1].encode()

    async def read_file(self, name):
        if self.read_result is not None:
            return self.read_result
        return self.files[name]

    async def delete_file(self, name):
        self.deleted.append(name)
        del self.files[name]

    @property
    def transcode_calls(self):
        return [c for c in self.calls if "-vf" in c]

    @property
    def concat_calls(self):
        return [c for c in self.calls if "concat" in c]


@pytest.fixture
def fake_engine():
    return FakeEngine()
