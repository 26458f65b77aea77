"""Tests for the clip model and ClipStore."""

import asyncio
from pathlib import Path

import pytest

from clipstitch.clips import (
    DEFAULT_OUTRO_SECONDS,
    LARGE_EXPORT_WARNING,
    MAX_CLIPS,
    ClipStore,
    MediaSource,
    apply_remove_outro,
    clear_remove_outro,
    disable_trim,
    large_export_warning,
    probe_duration,
    with_fields,
)
from clipstitch.errors import ClipImportError

from conftest import fake_probe


def _sources(tmp_path, names):
    sources = []
    for name in names:
        p = tmp_path / name
        p.write_bytes(b"video")
        sources.append(MediaSource(p))
    return sources


def _store(tmp_path, names, durations=None, **kwargs):
    durations = durations or {n: 10.0 for n in names}
    store = ClipStore(probe=fake_probe(durations), **kwargs)
    asyncio.run(store.import_sources(_sources(tmp_path, names)))
    return store


class TestMediaSource:
    def test_name_defaults_to_file_name(self, tmp_path):
        src = MediaSource(tmp_path / "cat.mov")
        assert src.name == "cat.mov"
        assert isinstance(src.path, Path)

    def test_explicit_name(self, tmp_path):
        assert MediaSource(tmp_path / "a.mp4", "Intro").name == "Intro"

    def test_size_and_bytes(self, tmp_path):
        p = tmp_path / "a.mp4"
        p.write_bytes(b"12345")
        src = MediaSource(p)
        assert src.size == 5
        assert src.read_bytes() == b"12345"

    def test_media_type(self, tmp_path):
        assert MediaSource(tmp_path / "a.mp4").media_type == "video/mp4"


class TestImport:
    def test_defaults(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"], {"a.mp4": 12.0}, outro_seconds=3.5)
        clip = store.clips[0]
        assert clip.name == "a.mp4"
        assert clip.duration == 12.0
        assert clip.include is True
        assert clip.trim_enabled is True
        assert clip.trim_start == 0
        assert clip.trim_end == 12.0
        assert clip.remove_outro_enabled is False
        assert clip.outro_seconds == 3.5
        assert clip.selected is False

    def test_preserves_source_order(self, tmp_path):
        store = _store(tmp_path, ["c.mp4", "a.mp4", "b.mp4"])
        assert [c.name for c in store] == ["c.mp4", "a.mp4", "b.mp4"]

    def test_appends_to_existing(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"], {"a.mp4": 1.0, "b.mp4": 2.0})
        asyncio.run(store.import_sources(_sources(tmp_path, ["b.mp4"])))
        assert [c.name for c in store] == ["a.mp4", "b.mp4"]

    def test_ids_unique(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])
        ids = [c.id for c in store]
        assert len(set(ids)) == 3

    def test_empty_batch(self, tmp_path):
        store = ClipStore(probe=fake_probe({}))
        assert asyncio.run(store.import_sources([])) == []
        assert len(store) == 0

    def test_creates_previews(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        assert len(store.resources.active) == 2
        assert store.clips[0].preview.path == tmp_path / "a.mp4"

    def test_global_outro_captured_at_import(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"], {"a.mp4": 1.0, "b.mp4": 1.0})
        store.outro_seconds = 2.0
        asyncio.run(store.import_sources(_sources(tmp_path, ["b.mp4"])))
        assert store.clips[0].outro_seconds == DEFAULT_OUTRO_SECONDS
        assert store.clips[1].outro_seconds == 2.0

    def test_probe_failure_rejects_batch(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"], {"a.mp4": 5.0})
        with pytest.raises(ClipImportError):
            asyncio.run(store.import_sources(_sources(tmp_path, ["a.mp4", "bad.mp4"])))
        assert [c.name for c in store] == ["a.mp4"]
        assert len(store.resources.active) == 1

    def test_cap_exceeded_rejects_batch(self, tmp_path):
        names = [f"{i}.mp4" for i in range(MAX_CLIPS)]
        durations = {n: 1.0 for n in names}
        store = _store(tmp_path, names[:29], durations)
        with pytest.raises(ClipImportError, match="Limit is 30 clips"):
            asyncio.run(store.import_sources(_sources(tmp_path, names[:2])))
        assert len(store) == 29

    def test_cap_counts_overlapping_imports(self, tmp_path):
        async def probe(source):
            await asyncio.sleep(0.01)
            return 5.0

        store = ClipStore(probe=probe)
        first = _sources(tmp_path, [f"a{i}.mp4" for i in range(20)])
        second = _sources(tmp_path, [f"b{i}.mp4" for i in range(20)])

        async def scenario():
            return await asyncio.gather(
                store.import_sources(first),
                store.import_sources(second),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert len(results[0]) == 20
        assert isinstance(results[1], ClipImportError)
        assert len(store) == 20
        assert len(store.resources.active) == 20

    def test_failed_import_frees_its_slots(self, tmp_path):
        names = [f"{i}.mp4" for i in range(MAX_CLIPS)]
        store = ClipStore(probe=fake_probe({}))
        with pytest.raises(ClipImportError):
            asyncio.run(store.import_sources(_sources(tmp_path, names)))
        store._probe = fake_probe({n: 1.0 for n in names})
        asyncio.run(store.import_sources(_sources(tmp_path, names)))
        assert len(store) == MAX_CLIPS

    def test_cap_exactly_reached(self, tmp_path):
        names = [f"{i}.mp4" for i in range(MAX_CLIPS)]
        store = _store(tmp_path, names)
        assert len(store) == MAX_CLIPS

    def test_probes_run_concurrently(self, tmp_path):
        running = 0
        peak = 0

        async def probe(source):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return 1.0

        store = ClipStore(probe=probe)
        asyncio.run(store.import_sources(_sources(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])))
        assert peak == 3


class TestProbeDuration:
    def test_real_video(self, source_video):
        duration = asyncio.run(probe_duration(MediaSource(source_video)))
        assert 4.5 < duration < 5.5

    def test_unreadable_file(self, tmp_path):
        p = tmp_path / "broken.mp4"
        p.write_bytes(b"not a video")
        with pytest.raises(ClipImportError, match="broken.mp4"):
            asyncio.run(probe_duration(MediaSource(p)))


class TestUpdate:
    def test_updates_one_clip(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        target = store.clips[1].id
        store.update(target, with_fields(include=False))
        assert store.clips[0].include is True
        assert store.clips[1].include is False

    def test_unknown_id_is_noop(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"])
        before = store.clips
        store.update("clip-does-not-exist", with_fields(include=False))
        assert store.clips == before

    def test_rejects_id_change(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"])
        with pytest.raises(ValueError):
            store.update(store.clips[0].id, with_fields(id="other"))

    def test_get(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"])
        clip = store.clips[0]
        assert store.get(clip.id) is clip
        assert store.get("missing") is None


class TestSelectionAndBatch:
    def test_set_all_selected(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        store.set_all_selected(True)
        assert store.selected_count == 2
        store.set_all_selected(False)
        assert store.selected_count == 0

    def test_batch_only_touches_selected(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])
        store.update(store.clips[0].id, with_fields(selected=True))
        store.update(store.clips[2].id, with_fields(selected=True))
        store.batch_update(apply_remove_outro)
        assert [c.remove_outro_enabled for c in store] == [True, False, True]

    def test_batch_with_nothing_selected(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        before = store.clips
        store.batch_update(disable_trim)
        assert store.clips == before

    def test_apply_remove_outro_enables_trim(self, tmp_path):
        store = _store(tmp_path, ["a.mp4"])
        store.update(store.clips[0].id, with_fields(selected=True, trim_enabled=False))
        store.batch_update(apply_remove_outro)
        clip = store.clips[0]
        assert clip.trim_enabled and clip.remove_outro_enabled
        store.batch_update(clear_remove_outro)
        assert not store.clips[0].remove_outro_enabled

    def test_apply_global_outro(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        store.outro_seconds = 7
        store.update(store.clips[1].id, with_fields(selected=True))
        store.apply_global_outro()
        assert store.clips[0].outro_seconds == DEFAULT_OUTRO_SECONDS
        assert store.clips[1].outro_seconds == 7.0

    def test_selection_independent_of_include(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        store.update(store.clips[0].id, with_fields(include=False, selected=True))
        assert store.selected_count == 1
        assert [c.name for c in store.included_clips] == ["b.mp4"]


class TestMove:
    def test_move_down(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])
        store.move(0, 1)
        assert [c.name for c in store] == ["b.mp4", "a.mp4", "c.mp4"]

    def test_move_up(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])
        store.move(2, -1)
        assert [c.name for c in store] == ["a.mp4", "c.mp4", "b.mp4"]

    def test_round_trip_restores_order(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4", "c.mp4"])
        before = [c.id for c in store]
        store.move(1, 1)
        store.move(2, -1)
        assert [c.id for c in store] == before

    def test_boundaries_are_noops(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        store.move(0, -1)
        store.move(1, 1)
        store.move(5, -1)
        assert [c.name for c in store] == ["a.mp4", "b.mp4"]

    def test_invalid_direction(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        with pytest.raises(ValueError):
            store.move(0, 2)


class TestGlobalOutro:
    def test_negative_coerced_to_zero(self):
        store = ClipStore(outro_seconds=-3)
        assert store.outro_seconds == 0.0

    def test_non_numeric_coerced_to_zero(self):
        store = ClipStore()
        store.outro_seconds = "abc"
        assert store.outro_seconds == 0.0

    def test_default(self):
        assert ClipStore().outro_seconds == DEFAULT_OUTRO_SECONDS


class TestClose:
    def test_releases_previews(self, tmp_path):
        store = _store(tmp_path, ["a.mp4", "b.mp4"])
        previews = [c.preview for c in store]
        store.close()
        assert len(store) == 0
        assert all(p.released for p in previews)
        assert store.resources.active == []
        # Source files stay on disk.
        assert (tmp_path / "a.mp4").exists()


class TestLargeExportWarning:
    def test_small_export(self, make_clip):
        assert large_export_warning([make_clip() for _ in range(10)]) == ""

    def test_too_many_clips(self, make_clip):
        clips = [make_clip() for _ in range(11)]
        assert large_export_warning(clips) == LARGE_EXPORT_WARNING

    def test_excluded_clips_not_counted(self, make_clip):
        clips = [make_clip() for _ in range(10)] + [make_clip(include=False)]
        assert large_export_warning(clips) == ""

    def test_too_many_bytes(self, make_clip, monkeypatch):
        from clipstitch import clips as clips_mod

        monkeypatch.setattr(clips_mod, "LARGE_EXPORT_BYTES", 100)
        clips = [make_clip(size=60), make_clip(size=60)]
        assert large_export_warning(clips) == LARGE_EXPORT_WARNING
