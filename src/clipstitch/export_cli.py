"""CLI for export — trim, reframe and stitch clips into one mp4.

Usage:
    # Clips straight from the command line
    clipstitch export a.mp4 b.mp4 c.mp4 --output final.mp4 \
        --aspect landscape --fit cover --remove-outro --outro-seconds 4.55

    # A session described in a YAML manifest
    clipstitch export --manifest session.yaml --output final.mp4

    # Check effective ranges without rendering
    clipstitch export --manifest session.yaml --validate
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .clips import (
    DEFAULT_OUTRO_SECONDS,
    ClipStore,
    MediaSource,
    large_export_warning,
    with_fields,
)
from .common import ASPECT_PRESETS, DEFAULT_ASPECT, DEFAULT_FIT, FIT_MODES
from .errors import ClipImportError
from .export import ExportOrchestrator, ExportSettings, ExportStatus
from .export_manifest import load_export_manifest, validate_export_paths
from .ranges import resolve_range


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Trim, reframe and stitch clips into a single mp4.",
    )
    parser.add_argument(
        "sources", nargs="*",
        help="Clip files in export order (omit when using --manifest)",
    )
    parser.add_argument(
        "--manifest", default=None,
        help="Path to an export YAML manifest",
    )
    parser.add_argument(
        "--output", default=None,
        help="Output mp4 path (required unless --validate)",
    )
    parser.add_argument(
        "--aspect", choices=sorted(ASPECT_PRESETS), default=None,
        help=f"Output aspect preset (default: {DEFAULT_ASPECT})",
    )
    parser.add_argument(
        "--fit", choices=list(FIT_MODES), default=None,
        help=f"cover crops to fill, contain pads to fit (default: {DEFAULT_FIT})",
    )
    parser.add_argument(
        "--remove-outro", action="store_true",
        help="Drop the last --outro-seconds of every clip",
    )
    parser.add_argument(
        "--outro-seconds", type=float, default=None,
        help=f"Outro length in seconds (default: {DEFAULT_OUTRO_SECONDS})",
    )
    parser.add_argument(
        "--no-trim", action="store_true",
        help="Export every clip in full",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Probe clips and print effective ranges, don't render",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Debug logging (ffmpeg commands, cleanup)",
    )
    return parser, parser.parse_args(args)


def _config_from_args(parsed) -> dict:
    """Build the same normalized config the manifest loader returns."""
    outro = parsed.outro_seconds if parsed.outro_seconds is not None else DEFAULT_OUTRO_SECONDS
    return {
        "output": {
            "aspect": parsed.aspect or DEFAULT_ASPECT,
            "fit": parsed.fit or DEFAULT_FIT,
            "outro_seconds": outro,
        },
        "clips": [
            {
                "path": src,
                "name": Path(src).name,
                "include": True,
                "trim": not parsed.no_trim,
                "start": 0.0,
                "end": None,
                "remove_outro": parsed.remove_outro,
                "outro_seconds": outro,
            }
            for src in parsed.sources
        ],
    }


async def build_store(config: dict) -> ClipStore:
    """Import the config's clips and apply their per-clip settings.

    Raises:
        ClipImportError: A clip could not be probed.
    """
    store = ClipStore(outro_seconds=config["output"]["outro_seconds"])
    entries = config["clips"]
    clips = await store.import_sources(
        MediaSource(Path(e["path"]), e["name"]) for e in entries
    )
    for clip, entry in zip(clips, entries):
        store.update(clip.id, with_fields(
            include=entry["include"],
            trim_enabled=entry["trim"],
            trim_start=entry["start"],
            trim_end=entry["end"] if entry["end"] is not None else clip.duration,
            remove_outro_enabled=entry["remove_outro"],
            outro_seconds=entry["outro_seconds"],
        ))
    return store


def _print_ranges(store: ClipStore) -> bool:
    """Print each clip's effective range. Returns True if export can run."""
    ok = bool(store.included_clips)
    for i, clip in enumerate(store):
        rng = resolve_range(clip)
        if not clip.include:
            print(f"  {i}: {clip.name}  (excluded)")
            continue
        if rng.valid:
            print(f"  {i}: {clip.name}  {rng.start:.3f}s — {rng.end:.3f}s")
        else:
            ok = False
            print(f"  {i}: {clip.name}  INVALID: {rng.reason}")
    if not store.included_clips:
        print("No clips included.")
    return ok


class _ProgressPrinter:
    """on_status callback: one line per stage, plus every 10%."""

    def __init__(self):
        self._stage = None
        self._decile = -1

    def __call__(self, status: ExportStatus) -> None:
        decile = status.percent // 10
        if status.stage and status.stage != self._stage:
            self._stage = status.stage
            print(f"  [{status.percent:3d}%] {status.stage}", flush=True)
        elif decile > self._decile and status.percent not in (0, 100):
            print(f"  [{status.percent:3d}%]", flush=True)
        self._decile = max(self._decile, decile)


async def run_export(config: dict, output: str | None, validate_only: bool = False) -> int:
    """Import, validate and (unless validate_only) export. Returns an exit code."""
    try:
        store = await build_store(config)
    except ClipImportError as exc:
        print(f"Import failed: {exc}")
        return 1

    try:
        print(f"Clips ({len(store)}):")
        ok = _print_ranges(store)
        warning = large_export_warning(store)
        if warning:
            print(f"Warning: {warning}")

        if validate_only:
            print("Session valid." if ok else "Session has errors.")
            return 0 if ok else 1

        settings = ExportSettings(
            aspect=config["output"]["aspect"], fit=config["output"]["fit"],
        )
        preset = settings.preset
        print(f"\nExporting to {preset.width}x{preset.height} ({settings.fit})")

        orchestrator = ExportOrchestrator(on_status=_ProgressPrinter())
        handle = await orchestrator.export(store, settings)
        if handle is None:
            print(f"Export failed: {orchestrator.error_message}")
            return 1

        handle.save(output)
        orchestrator.reset()
        print(f"\nDone: {output}")
        return 0
    finally:
        store.close()


def main(args=None):
    parser, parsed = _parse_args(args)

    if parsed.manifest and parsed.sources:
        parser.error("Pass clip files or --manifest, not both")
    if not parsed.manifest and not parsed.sources:
        parser.error("No clips given. Pass clip files or --manifest")
    if not parsed.validate and not parsed.output:
        parser.error("--output is required (unless using --validate)")
    if parsed.manifest and (
        parsed.remove_outro or parsed.no_trim or parsed.outro_seconds is not None
    ):
        parser.error(
            "--remove-outro, --outro-seconds and --no-trim apply to clip files; "
            "set them per clip in the manifest"
        )

    configure_logging(parsed.verbose)

    if parsed.manifest:
        config = load_export_manifest(parsed.manifest)
        # CLI flags override manifest output settings.
        if parsed.aspect:
            config["output"]["aspect"] = parsed.aspect
        if parsed.fit:
            config["output"]["fit"] = parsed.fit
    else:
        config = _config_from_args(parsed)
    validate_export_paths(config)

    code = asyncio.run(run_export(config, parsed.output, parsed.validate))
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
