"""Image engine protocol: the pixel-level collaborator used by the pipeline."""

from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Tuple


RGB = Tuple[int, int, int]

SRGB_PROFILE = "sRGB IEC61966-2.1"


class Anchor(Enum):
    CENTER = "center"


class Document(Protocol):
    """An open image being transformed.

    Every method may raise ProcessingError (including ResourceExhaustedError).
    """

    @property
    def width(self) -> int:
        ...

    @property
    def height(self) -> int:
        ...

    @property
    def profile_name(self) -> Optional[str]:
        """Return the embedded color profile description, if any."""
        ...

    def normalize_color(self, mode: str = "RGB") -> None:
        ...

    def convert_color_profile(self, target_profile: str = SRGB_PROFILE) -> None:
        ...

    def flatten(self) -> None:
        """Drop transparency by compositing onto the current background color."""
        ...

    def resize(self, width: int, height: int) -> None:
        ...

    def expand_canvas(self, width: int, height: int, anchor: Anchor = Anchor.CENTER) -> None:
        ...

    def fill_background(self, color: RGB) -> None:
        """Set the color used for new canvas area and flattening."""
        ...

    def set_resolution(self, ppi: int) -> None:
        """Set resolution metadata without resampling."""
        ...

    def average_color(self) -> RGB:
        ...

    def save(self, path: Path, quality: int, embed_profile: bool = False) -> int:
        """Encode as JPEG at quality 0..12 and return the bytes written."""
        ...

    def close(self, discard_changes: bool = True) -> None:
        ...


class ImageEngine(Protocol):
    """Opens documents and reclaims engine-side resources."""

    def open(self, path: Path) -> Document:
        ...

    def reclaim(self, deep: bool = False) -> None:
        """Release cached resources; deep also drops longer-lived caches."""
        ...
