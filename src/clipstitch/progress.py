"""Overall export progress from per-invocation ffmpeg progress.

ffmpeg reports progress per invocation (0..1 for one transcode or for the
final concat), not for the whole export. ProgressEstimator stitches those
signals onto one 0-100 scale:

  - N transcode stages share 90%, each weighted 90/N.
  - The concat stage gets the trailing 10%.

While a stage is running the value is clamped to [1, 99]; 0 means "not
started" and 100 is only reported by complete(). The value never goes
backwards within a run.
"""

import math
from typing import Callable

TRANSCODE_SHARE = 90.0
CONCAT_SHARE = 10.0


class ProgressEstimator:
    def __init__(
        self,
        total_clips: int,
        on_change: Callable[[int], None] | None = None,
    ):
        if total_clips < 1:
            raise ValueError(f"total_clips must be >= 1, got {total_clips}")
        self.total_clips = total_clips
        self.on_change = on_change
        self.percent = 0
        self.base = 0.0
        self.weight = TRANSCODE_SHARE / total_clips

    def _set(self, value: int) -> int:
        if value > self.percent:
            self.percent = value
            if self.on_change is not None:
                self.on_change(value)
        return self.percent

    def begin_clip(self, index: int) -> None:
        """Enter transcode stage index (0-based)."""
        self.weight = TRANSCODE_SHARE / self.total_clips
        self.base = index / self.total_clips * TRANSCODE_SHARE

    def begin_concat(self) -> None:
        self.base = TRANSCODE_SHARE
        self.weight = CONCAT_SHARE

    def update(self, fraction: float) -> int:
        """Map a 0..1 fraction of the current stage onto the overall scale."""
        if not math.isfinite(fraction):
            return self.percent
        fraction = min(1.0, max(0.0, fraction))
        estimate = self.base + fraction * self.weight
        # Half-up rounding, not Python's round-half-even.
        rounded = math.floor(estimate + 0.5)
        return self._set(min(99, max(1, rounded)))

    def complete(self) -> int:
        return self._set(100)
