"""Per-file pipeline: normalize, frame/pad, encode."""

import time
from pathlib import Path
from typing import Callable, Optional

from borderforge.batch.addressing import detect_directive
from borderforge.logger import LOGGER
from borderforge.options import BatchOptions, BorderMode, SrgbMode

from .encoder import EncodeResult, encode
from .engine import RGB, SRGB_PROFILE, Anchor, Document, ImageEngine
from .errors import ErrorKind, ProcessingError


WHITE: RGB = (255, 255, 255)
BLACK: RGB = (0, 0, 0)

# Rec. 709 luma at or below this picks a black border
DARK_LUMINANCE_THRESHOLD = 105

OPEN_RETRIES = 2
OPEN_RETRY_SLEEP_MS = 200


def open_with_retry(
    engine: ImageEngine,
    path: Path,
    retries: int = OPEN_RETRIES,
    sleep_ms: int = OPEN_RETRY_SLEEP_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> Document:
    """Open a file, retrying intermittent failures a few times."""
    last_error: Optional[ProcessingError] = None
    for attempt in range(retries + 1):
        try:
            return engine.open(path)
        except ProcessingError as e:
            if e.kind is ErrorKind.RESOURCE_EXHAUSTED:
                raise
            last_error = e
            LOGGER.debug(f"Open attempt {attempt + 1} failed for {path.name}: {e}")
            sleep(sleep_ms / 1000)
    raise last_error


def luminance(color: RGB) -> float:
    red, green, blue = color
    return 0.2126 * red + 0.7152 * green + 0.0722 * blue


def safe_average_color(document: Document, fallback: Optional[RGB] = WHITE) -> Optional[RGB]:
    try:
        return tuple(document.average_color())
    except ProcessingError as e:
        if e.kind is ErrorKind.RESOURCE_EXHAUSTED:
            raise
        LOGGER.debug(f"Average color failed, using fallback: {e}")
        return fallback


def pick_auto_border_color(document: Document) -> RGB:
    """Black for dark images, white for bright ones (white when unmeasurable)."""
    average = safe_average_color(document, fallback=None)
    if average is None:
        return WHITE
    if luminance(average) <= DARK_LUMINANCE_THRESHOLD:
        return BLACK
    return WHITE


def choose_border_color(document: Document, file_name: str, options: BatchOptions) -> RGB:
    mode = options.border_mode
    if mode is BorderMode.BLACK:
        return BLACK
    if mode is BorderMode.CUSTOM:
        return options.border_rgb
    if mode is BorderMode.AVERAGE:
        return safe_average_color(document)
    if mode is BorderMode.AUTO:
        return pick_auto_border_color(document)
    if mode is BorderMode.AUTO_FILENAME:
        directive = detect_directive(file_name)
        if directive == "WHITE":
            return WHITE
        if directive == "BLACK":
            return BLACK
        if directive == "AVERAGE":
            return safe_average_color(document)
        return pick_auto_border_color(document)
    return WHITE


def cap_long_side(document: Document, long_side: int) -> None:
    """Downscale so neither dimension exceeds long_side; never upscales."""
    limit = max(1, round(long_side))
    current = max(document.width, document.height)
    if current > limit:
        scale = limit / current
        document.resize(round(document.width * scale), round(document.height * scale))


def ratio_canvas(options: BatchOptions) -> tuple:
    """Return (canvas_w, canvas_h) for ratio mode; height is the long side setting."""
    canvas_h = round(options.long_side)
    canvas_w = round(options.long_side * options.ratio_w / options.ratio_h)
    return canvas_w, canvas_h


def apply_resolution(document: Document, options: BatchOptions) -> None:
    if options.set_ppi and options.ppi:
        document.set_resolution(options.ppi)


def normalize(document: Document, options: BatchOptions) -> None:
    document.normalize_color("RGB")
    if options.srgb_mode is SrgbMode.FORCE:
        document.convert_color_profile(SRGB_PROFILE)
    elif options.srgb_mode is SrgbMode.AUTO:
        if "srgb" not in (document.profile_name or "").lower():
            document.convert_color_profile(SRGB_PROFILE)
    document.flatten()


def frame(document: Document, file_name: str, options: BatchOptions) -> None:
    """Resize and pad the document onto its bordered canvas."""
    document.fill_background(choose_border_color(document, file_name, options))

    if options.ignore_ratio:
        cap_long_side(document, options.long_side)
        apply_resolution(document, options)
        document.expand_canvas(
            round(document.width + 2 * options.padding),
            round(document.height + 2 * options.padding),
            Anchor.CENTER,
        )
        return

    canvas_w, canvas_h = ratio_canvas(options)
    inner_w = max(1, canvas_w - 2 * options.padding)
    inner_h = max(1, canvas_h - 2 * options.padding)

    scale = min(inner_w / document.width, inner_h / document.height)
    if scale != 1:
        document.resize(round(document.width * scale), round(document.height * scale))

    apply_resolution(document, options)
    document.expand_canvas(canvas_w, canvas_h, Anchor.CENTER)


def process_one(engine: ImageEngine, source: Path, target: Path, options: BatchOptions) -> EncodeResult:
    """Run the full pipeline for one input file and write its JPEG to target.

    Raises:
        ProcessingError: on any engine failure, tagged with its ErrorKind
    """
    document = open_with_retry(engine, source)
    try:
        normalize(document, options)

        if options.ignore_border:
            cap_long_side(document, options.long_side)
            apply_resolution(document, options)
        else:
            frame(document, source.name, options)

        return encode(document, target, options)
    finally:
        document.close(discard_changes=True)
