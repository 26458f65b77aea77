"""Export manifest loader — a whole export session described in YAML.

Follows the same ${var} path resolution as the other manifests.

Export manifest schema:
  output:
    aspect: shorts          # shorts | landscape | square (default shorts)
    fit: contain            # cover | contain (default contain)
    outro_seconds: 4.55     # global outro length (default 4.55)
  paths:
    clips: "/data/clips"
  clips:
    - path: "${clips}/intro.mp4"
      name: "Intro"         # optional display name (default: file name)
      include: true         # default true
      trim: true            # default true
      start: 0.0            # default 0
      end: 12.5             # default: probed duration
      remove_outro: false   # default false
      outro_seconds: 3.0    # default: output.outro_seconds

Trim values are not range-checked here: an out-of-range trim is a normal
clip state, reported by the range resolver when the session is exported.
"""

from pathlib import Path

import yaml

from .clips import DEFAULT_OUTRO_SECONDS, MAX_CLIPS
from .common import ASPECT_PRESETS, DEFAULT_ASPECT, DEFAULT_FIT, FIT_MODES, resolve_path_vars


_BOOL_FIELDS = {"include": True, "trim": True, "remove_outro": False}


def _number(value, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{where} must be a number, got {value!r}")
    return float(value)


def load_export_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize an export manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Validate output settings (aspect, fit, outro_seconds).
      3. Resolve ${path} variables in clip paths.
      4. Apply defaults to each clip entry.

    Args:
        manifest_path: Path to the YAML export manifest.

    Returns:
        Normalized config dict: {"output": {...}, "clips": [...]}. Clip
        "end" is None when the manifest leaves it to the probed duration.

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Export manifest: top level must be a mapping")
    if "clips" not in raw:
        raise ValueError("Export manifest: missing required 'clips' field")

    output = dict(raw.get("output") or {})
    aspect = output.get("aspect", DEFAULT_ASPECT)
    if aspect not in ASPECT_PRESETS:
        raise ValueError(
            f"Export manifest: invalid output.aspect '{aspect}'. "
            f"Valid: {sorted(ASPECT_PRESETS)}"
        )
    fit = output.get("fit", DEFAULT_FIT)
    if fit not in FIT_MODES:
        raise ValueError(
            f"Export manifest: invalid output.fit '{fit}'. Valid: {list(FIT_MODES)}"
        )
    outro = _number(
        output.get("outro_seconds", DEFAULT_OUTRO_SECONDS),
        "Export manifest: output.outro_seconds",
    )
    if outro < 0:
        raise ValueError(f"Export manifest: output.outro_seconds must be >= 0, got {outro}")

    config = {"output": {"aspect": aspect, "fit": fit, "outro_seconds": outro}}

    paths = raw.get("paths", {})
    entries = raw["clips"] or []
    if len(entries) > MAX_CLIPS:
        raise ValueError(
            f"Export manifest: {len(entries)} clips listed, limit is {MAX_CLIPS}"
        )

    clips = []
    for i, entry in enumerate(entries):
        if "path" not in entry:
            raise ValueError(f"Clip {i}: missing required field 'path'")
        path = resolve_path_vars(str(entry["path"]), paths)

        clip = {
            "path": path,
            "name": str(entry.get("name") or Path(path).name),
        }
        for key, default in _BOOL_FIELDS.items():
            value = entry.get(key, default)
            if not isinstance(value, bool):
                raise ValueError(f"Clip {i}: '{key}' must be true or false, got {value!r}")
            clip[key] = value

        clip["start"] = _number(entry.get("start", 0.0), f"Clip {i}: start")
        clip["end"] = (
            _number(entry["end"], f"Clip {i}: end") if entry.get("end") is not None else None
        )
        clip["outro_seconds"] = _number(
            entry.get("outro_seconds", outro), f"Clip {i}: outro_seconds",
        )
        clips.append(clip)

    config["clips"] = clips
    return config


def validate_export_paths(config: dict) -> None:
    """Check that every clip file exists on disk.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [c["path"] for c in config["clips"] if not Path(c["path"]).exists()]
    if missing:
        msg = f"Missing {len(missing)} clip file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
