"""clipstitch.common — shared helpers for naming, framing, and paths.

Contains: aspect presets, fit-mode filter construction, filesystem-safe
name derivation, seconds formatting for ffmpeg, and ${var} path
resolution for manifests.
"""

import math
import re
from dataclasses import dataclass
from pathlib import Path


# ── Aspect presets ─────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectPreset:
    label: str
    width: int
    height: int


ASPECT_PRESETS: dict[str, AspectPreset] = {
    "shorts": AspectPreset("YouTube Shorts (9:16) — 1080x1920", 1080, 1920),
    "landscape": AspectPreset("Landscape (16:9) — 1920x1080", 1920, 1080),
    "square": AspectPreset("Square (1:1) — 1080x1080", 1080, 1080),
}

DEFAULT_ASPECT = "shorts"

# cover: fill the frame and crop the excess. contain: fit inside and pad.
FIT_MODES = ("cover", "contain")

DEFAULT_FIT = "contain"


def get_preset(key: str) -> AspectPreset:
    """Look up an aspect preset by key. Raises ValueError if unknown."""
    if key not in ASPECT_PRESETS:
        raise ValueError(
            f"Unknown aspect preset '{key}'. Valid: {sorted(ASPECT_PRESETS)}"
        )
    return ASPECT_PRESETS[key]


def scale_filter(preset: AspectPreset, fit: str) -> str:
    """Build the ffmpeg -vf chain that reframes a clip to the preset size.

    cover scales up until both dimensions are filled, then crops to exactly
    W x H. contain scales down until both fit, then pads symmetrically.
    """
    w, h = preset.width, preset.height
    if fit == "cover":
        return f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h}"
    if fit == "contain":
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2"
        )
    raise ValueError(f"Unknown fit mode '{fit}'. Valid: {list(FIT_MODES)}")


# ── Naming ─────────────────────────────────────────────────────────

def to_safe_name(name: str, fallback: str) -> str:
    """Strip the extension and replace anything outside [A-Za-z0-9_-].

    Returns fallback when nothing is left (e.g. ".mp4").
    """
    base = re.sub(r"\.[^/.]+$", "", name)
    cleaned = re.sub(r"[^a-zA-Z0-9_-]", "_", base)
    return cleaned or fallback


def input_extension(name: str, default: str = "mp4") -> str:
    """Lowercase alphanumeric extension of a file name, or default."""
    suffix = Path(name).suffix.lstrip(".")
    cleaned = re.sub(r"[^a-z0-9]", "", suffix.lower())
    return cleaned or default


def format_seconds(value: float) -> str:
    """Format seconds with millisecond precision, as ffmpeg -ss/-to expect."""
    return f"{value:.3f}"


def as_float(value) -> float:
    """Coerce a form/manifest value to float, NaN when it isn't numeric."""
    if isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)
