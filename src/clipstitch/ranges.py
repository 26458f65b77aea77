"""Effective range resolution — which part of a clip goes into the export.

resolve_range() is a pure function of the clip's trim state. It is called
on demand (for display, validation, and export) and never cached, so the
answer always reflects the clip as it is right now.

Validation runs four checks in a fixed order and reports the first that
fails, so a clip with several problems always gets the same message:
  1. start, end and the clip duration are finite numbers
  2. start >= 0
  3. end <= duration
  4. end > start
"""

import math
from dataclasses import dataclass


NO_DURATION = "Clip has no readable duration."
NOT_NUMERIC = "Trim values must be numeric."
NEGATIVE_START = "Trim start cannot be negative."
END_PAST_DURATION = "Trim end cannot exceed clip duration."
END_BEFORE_START = (
    "Trim end must be greater than trim start. "
    "Reduce outro seconds or adjust start."
)


@dataclass(frozen=True)
class EffectiveRange:
    start: float
    end: float
    valid: bool
    reason: str = ""

    @property
    def length(self) -> float:
        return max(0.0, self.end - self.start) if self.valid else 0.0


def _is_finite(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def outro_end(clip) -> float:
    """End point after dropping the clip's outro, never below zero.

    NaN passes through so that resolve_range reports it as non-numeric.
    """
    end = clip.duration - clip.outro_seconds
    if math.isnan(end):
        return end
    return max(0.0, end)


def resolve_range(clip) -> EffectiveRange:
    """Compute the clip's export range and whether it is usable.

    Args:
        clip: A Clip (anything with duration, trim_enabled, trim_start,
            trim_end, remove_outro_enabled, outro_seconds).

    Returns:
        EffectiveRange with start/end in seconds, a validity flag and,
        when invalid, a human-readable reason.
    """
    if not clip.trim_enabled:
        has_duration = _is_finite(clip.duration) and clip.duration > 0
        return EffectiveRange(
            start=0.0,
            end=clip.duration,
            valid=has_duration,
            reason="" if has_duration else NO_DURATION,
        )

    start = clip.trim_start
    if clip.remove_outro_enabled:
        try:
            end = outro_end(clip)
        except TypeError:
            end = math.nan
    else:
        end = clip.trim_end

    if not all(_is_finite(v) for v in (start, end, clip.duration)):
        return EffectiveRange(start, end, False, NOT_NUMERIC)
    if start < 0:
        return EffectiveRange(start, end, False, NEGATIVE_START)
    if end > clip.duration:
        return EffectiveRange(start, end, False, END_PAST_DURATION)
    if end <= start:
        return EffectiveRange(start, end, False, END_BEFORE_START)

    return EffectiveRange(start, end, True)
