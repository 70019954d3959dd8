"""Pillow-backed implementation of the image engine."""

import functools
import io
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageCms

from borderforge.logger import LOGGER

from .engine import RGB, SRGB_PROFILE, Anchor
from .errors import FatalProcessingError, ProcessingError, classify


def pillow_quality(quality: int) -> int:
    """Map the 0..12 quality scale onto Pillow's JPEG quality (10..94)."""
    quality = max(0, min(12, int(quality)))
    return 10 + 7 * quality


def _engine_call(method):
    """Re-raise anything other than a ProcessingError as a classified ProcessingError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except ProcessingError:
            raise
        except Exception as e:
            raise classify(e) from e

    return wrapper


def _srgb_profile_bytes() -> bytes:
    return ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()


def _profile_color_space(icc: bytes) -> Optional[str]:
    """Return the ICC header color space (e.g. RGB, GRAY, CMYK, LAB), None when unreadable."""
    try:
        return ImageCms.ImageCmsProfile(io.BytesIO(icc)).profile.xcolor_space.strip()
    except (OSError, ImageCms.PyCMSError):
        return None


class PillowDocument:
    """An image held in memory while the pipeline transforms it."""

    def __init__(self, image: Image.Image, source_path: Optional[Path] = None):
        self.source_path = source_path
        self._image = image
        self._icc: Optional[bytes] = image.info.get("icc_profile")
        self._background: RGB = (255, 255, 255)
        self._dpi: Optional[Tuple[int, int]] = None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise ProcessingError("Document is closed")
        return self._image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def profile_name(self) -> Optional[str]:
        if not self._icc:
            return None
        try:
            profile = ImageCms.ImageCmsProfile(io.BytesIO(self._icc))
            return ImageCms.getProfileDescription(profile).strip()
        except (OSError, ImageCms.PyCMSError):
            return None

    @property
    def has_alpha(self) -> bool:
        return self.image.mode in ("RGBA", "LA", "PA") or (
            self.image.mode == "P" and "transparency" in self.image.info
        )

    @property
    def has_rgb_profile(self) -> bool:
        return bool(self._icc) and _profile_color_space(self._icc) == "RGB"

    def _managed_to_rgb(self) -> Optional[Image.Image]:
        """Convert non-RGB pixels through their own profile into sRGB, None when that is impossible."""
        image = self.image
        alpha = image.getchannel("A") if "A" in image.getbands() else None
        base = image.convert(image.mode[:-1]) if image.mode in ("LA", "RGBA") else image
        try:
            source = ImageCms.ImageCmsProfile(io.BytesIO(self._icc))
            converted = ImageCms.profileToProfile(
                base, source, ImageCms.createProfile("sRGB"),
                renderingIntent=ImageCms.Intent.PERCEPTUAL, outputMode="RGB",
            )
        except (OSError, ValueError, ImageCms.PyCMSError) as e:
            LOGGER.debug(f"Embedded {base.mode} profile unusable, converting unmanaged: {e}")
            return None
        if alpha is not None:
            converted.putalpha(alpha)
        return converted

    @_engine_call
    def normalize_color(self, mode: str = "RGB") -> None:
        """Convert pixels to RGB(A); any non-RGB embedded profile is replaced by sRGB."""
        target = "RGBA" if self.has_alpha else mode
        if self._icc and not self.has_rgb_profile:
            if self.image.mode != target:
                converted = self._managed_to_rgb()
                if converted is not None:
                    self._image = converted
            self._icc = _srgb_profile_bytes()
        if self.image.mode != target:
            self._image = self.image.convert(target)

    @_engine_call
    def convert_color_profile(self, target_profile: str = SRGB_PROFILE) -> None:
        # Untagged images and profiles that do not describe RGB pixels are treated as sRGB already
        if self._icc and self.has_rgb_profile and self.image.mode in ("RGB", "RGBA"):
            image = self.image
            alpha = image.getchannel("A") if image.mode == "RGBA" else None
            rgb = image.convert("RGB") if image.mode != "RGB" else image
            try:
                source = ImageCms.ImageCmsProfile(io.BytesIO(self._icc))
                converted = ImageCms.profileToProfile(
                    rgb, source, ImageCms.createProfile("sRGB"),
                    renderingIntent=ImageCms.Intent.PERCEPTUAL, outputMode="RGB",
                )
            except ImageCms.PyCMSError as e:
                LOGGER.warning(f"sRGB conversion skipped for {self.source_path}: {e}")
                converted = None
            if converted is not None:
                if alpha is not None:
                    converted.putalpha(alpha)
                self._image = converted
        self._icc = _srgb_profile_bytes()

    @_engine_call
    def flatten(self) -> None:
        if not self.has_alpha:
            return
        rgba = self.image.convert("RGBA")
        flat = Image.new("RGB", rgba.size, self._background)
        flat.paste(rgba, mask=rgba.getchannel("A"))
        self._image = flat

    @_engine_call
    def resize(self, width: int, height: int) -> None:
        width, height = max(1, int(width)), max(1, int(height))
        if (width, height) != self.image.size:
            self._image = self.image.resize((width, height), Image.Resampling.BICUBIC)

    @_engine_call
    def expand_canvas(self, width: int, height: int, anchor: Anchor = Anchor.CENTER) -> None:
        width, height = max(1, int(width)), max(1, int(height))
        self.flatten()
        canvas = Image.new("RGB", (width, height), self._background)
        offset = ((width - self.image.width) // 2, (height - self.image.height) // 2)
        canvas.paste(self.image.convert("RGB"), offset)
        self._image = canvas

    def fill_background(self, color: RGB) -> None:
        self._background = tuple(int(c) for c in color)

    def set_resolution(self, ppi: int) -> None:
        self._dpi = (int(ppi), int(ppi))

    @_engine_call
    def average_color(self) -> RGB:
        pixels = np.asarray(self.image.convert("RGB"), dtype=np.float64).reshape(-1, 3)
        mean = pixels.mean(axis=0)
        return tuple(int(round(c)) for c in mean)

    @_engine_call
    def save(self, path: Path, quality: int, embed_profile: bool = False) -> int:
        path = Path(path)
        if not path.parent.is_dir():
            raise FatalProcessingError(f"Output folder is missing: {path.parent}")
        image = self.image
        if image.mode != "RGB":
            self.flatten()
            image = self.image.convert("RGB")

        params = {"quality": pillow_quality(quality), "optimize": True}
        if self._dpi:
            params["dpi"] = self._dpi
        if embed_profile and self._icc:
            params["icc_profile"] = self._icc

        image.save(path, "JPEG", **params)
        return path.stat().st_size

    def close(self, discard_changes: bool = True) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None


class PillowEngine:
    """Image engine that decodes files with Pillow."""

    @_engine_call
    def open(self, path: Path) -> PillowDocument:
        path = Path(path)
        if not path.exists():
            raise ProcessingError(f"File does not exist: {path}")
        with Image.open(path) as src:
            src.load()
            image = src.copy()
        return PillowDocument(image, path)

    def reclaim(self, deep: bool = False) -> None:
        if not deep:
            return
        clear_cache = getattr(Image.core, "clear_cache", None)
        if clear_cache is not None:
            clear_cache()
