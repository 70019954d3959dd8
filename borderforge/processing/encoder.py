"""Size-constrained JPEG encoding.

The engine exposes only a coarse 0..12 quality scale, so hitting a byte-size
window is a local search: save once at the configured start quality, and if
the file falls outside [min, max] step the quality one unit at a time in the
direction that moves the size toward the window.

Precondition: output size is assumed to grow monotonically with quality. The
early-exit rules below rely on that; it is not verified at runtime.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from borderforge.logger import LOGGER
from borderforge.options import QUALITY_MAX, QUALITY_MIN, BatchOptions

from .engine import Document


@dataclass(frozen=True)
class EncodingTrial:
    quality: int
    size: int
    score: float


@dataclass
class EncodeResult:
    final_size: int
    final_quality: int
    in_window: bool
    trials: List[EncodingTrial] = field(default_factory=list)


class SizeWindow:
    """Byte-size bounds; a bound of 0 means unbounded on that side."""

    def __init__(self, min_bytes: int, max_bytes: int):
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes

    def contains(self, size: int) -> bool:
        if size <= 0:
            return False
        if self.min_bytes > 0 and size < self.min_bytes:
            return False
        if self.max_bytes > 0 and size > self.max_bytes:
            return False
        return True

    def score(self, size: int) -> float:
        """Return 0 inside the window, else the distance to the violated bound."""
        if size <= 0:
            return math.inf
        if self.contains(size):
            return 0
        if self.min_bytes > 0 and size < self.min_bytes:
            return self.min_bytes - size
        if self.max_bytes > 0 and size > self.max_bytes:
            return size - self.max_bytes
        return math.inf

    def too_large(self, size: int) -> bool:
        return self.max_bytes > 0 and size > self.max_bytes

    def too_small(self, size: int) -> bool:
        return self.min_bytes > 0 and 0 < size < self.min_bytes


def encode(document: Document, target: Path, options: BatchOptions) -> EncodeResult:
    """Save document to target, searching quality to land inside the size window."""
    start = max(QUALITY_MIN, min(QUALITY_MAX, options.jpeg_quality))
    embed = options.embed_profile

    if not options.size_limits_active:
        size = document.save(target, start, embed)
        return EncodeResult(final_size=size, final_quality=start, in_window=True,
                            trials=[EncodingTrial(start, size, 0)])

    window = SizeWindow(options.min_bytes, options.max_bytes)
    trials: List[EncodingTrial] = []

    def attempt(quality: int) -> EncodingTrial:
        size = document.save(target, quality, embed)
        trial = EncodingTrial(quality, size, window.score(size))
        trials.append(trial)
        LOGGER.debug(f"Encode {target.name} q={quality} -> {size} bytes (score {trial.score})")
        return trial

    first = attempt(start)
    if first.score == 0:
        return EncodeResult(first.size, first.quality, True, trials)

    if window.too_large(first.size):
        for quality in range(start - 1, QUALITY_MIN - 1, -1):
            trial = attempt(quality)
            if trial.score == 0:
                return EncodeResult(trial.size, trial.quality, True, trials)
            if window.too_small(trial.size):
                break
    elif window.too_small(first.size):
        for quality in range(start + 1, QUALITY_MAX + 1):
            trial = attempt(quality)
            if trial.score == 0:
                return EncodeResult(trial.size, trial.quality, True, trials)
            if window.too_large(trial.size):
                break
    else:
        for quality in range(QUALITY_MIN, QUALITY_MAX + 1):
            trial = attempt(quality)
            if trial.score == 0:
                return EncodeResult(trial.size, trial.quality, True, trials)

    best = min(trials, key=lambda t: t.score)
    last = trials[-1]
    if best is not last:
        # The target holds the last trial's bytes; rewrite it with the closest one
        size = document.save(target, best.quality, embed)
        best = EncodingTrial(best.quality, size, window.score(size))
    LOGGER.info(
        f"No quality hit the size window for {target.name}; kept q={best.quality} ({best.size} bytes)"
    )
    return EncodeResult(best.size, best.quality, False, trials)
