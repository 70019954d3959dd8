"""Batch options: validated, immutable configuration for a single run."""

import re
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Dict, Mapping, Optional

from borderforge.logger import LOGGER
from borderforge.state.kvfile import parse_bool, parse_int


QUALITY_MIN = 0
QUALITY_MAX = 12

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")


class ConfigurationError(ValueError):
    """Raised when options are malformed or out of range."""


class BorderMode(str, Enum):
    WHITE = "WHITE"
    BLACK = "BLACK"
    AVERAGE = "AVERAGE"
    AUTO = "AUTO"
    AUTO_FILENAME = "AUTO_FILENAME"
    CUSTOM = "CUSTOM"


class SrgbMode(str, Enum):
    OFF = "OFF"
    AUTO = "AUTO"
    FORCE = "FORCE"


def normalize_hex(value: str) -> str:
    """Return a 6-digit upper-case hex color, accepting an optional leading '#'."""
    match = HEX_COLOR_RE.match(str(value).strip())
    if not match:
        raise ConfigurationError(f"Invalid hex color: {value!r}")
    return match.group(1).upper()


@dataclass(frozen=True)
class BatchOptions:
    """Everything that controls how a batch is processed.

    Constructed once at the trust boundary (CLI arguments or the persisted
    settings record) and then passed unchanged through the run.
    """

    # Geometry
    ratio_w: int = 4
    ratio_h: int = 5
    ignore_ratio: bool = False
    long_side: int = 1350
    padding: int = 40

    # Border
    ignore_border: bool = False
    border_mode: BorderMode = BorderMode.WHITE
    border_hex: str = "FFFFFF"

    # Encoding
    jpeg_quality: int = 10
    min_kb: int = 0
    max_kb: int = 900
    ignore_file_size_limits: bool = False

    # Color management
    srgb_mode: SrgbMode = SrgbMode.OFF
    embed_profile: bool = False
    set_ppi: bool = True
    ppi: int = 72

    # Naming
    suffix: str = "WB"

    # Stability
    chunk_size: int = 100
    cooldown_ms: int = 0
    scratch_max_retries: int = 2
    scratch_retry_cooldown_ms: int = 5000

    # Policy
    skip_existing: bool = True
    silent_mode: bool = True

    def __post_init__(self):
        try:
            object.__setattr__(self, "border_mode", BorderMode(self.border_mode))
        except ValueError:
            raise ConfigurationError(f"Unknown border mode: {self.border_mode!r}")
        try:
            object.__setattr__(self, "srgb_mode", SrgbMode(self.srgb_mode))
        except ValueError:
            raise ConfigurationError(f"Unknown sRGB mode: {self.srgb_mode!r}")
        object.__setattr__(self, "border_hex", normalize_hex(self.border_hex))

        if self.ratio_w <= 0 or self.ratio_h <= 0:
            raise ConfigurationError(f"Aspect ratio must be positive, got {self.ratio_w}:{self.ratio_h}")
        if self.long_side < 1:
            raise ConfigurationError(f"Long side must be at least 1px, got {self.long_side}")
        if self.padding < 0:
            raise ConfigurationError(f"Padding cannot be negative, got {self.padding}")
        if not QUALITY_MIN <= self.jpeg_quality <= QUALITY_MAX:
            raise ConfigurationError(
                f"JPEG quality must be between {QUALITY_MIN} and {QUALITY_MAX}, got {self.jpeg_quality}"
            )
        if self.min_kb < 0 or self.max_kb < 0:
            raise ConfigurationError("Size limits cannot be negative")
        if self.size_limits_active and self.min_kb > 0 and self.max_kb > 0 and self.min_kb > self.max_kb:
            raise ConfigurationError(f"Min size ({self.min_kb} KB) is larger than max size ({self.max_kb} KB)")
        if self.ppi < 1:
            raise ConfigurationError(f"PPI must be at least 1, got {self.ppi}")
        if "/" in self.suffix or "\\" in self.suffix:
            raise ConfigurationError(f"Suffix cannot contain path separators: {self.suffix!r}")
        if self.chunk_size < 1:
            raise ConfigurationError(f"Chunk size must be at least 1, got {self.chunk_size}")
        if self.cooldown_ms < 0 or self.scratch_retry_cooldown_ms < 0:
            raise ConfigurationError("Cooldowns cannot be negative")
        if self.scratch_max_retries < 0:
            raise ConfigurationError(f"Scratch retries cannot be negative, got {self.scratch_max_retries}")

    @property
    def size_limits_active(self) -> bool:
        return not self.ignore_file_size_limits and (self.min_kb > 0 or self.max_kb > 0)

    @property
    def min_bytes(self) -> int:
        return self.min_kb * 1024 if self.min_kb > 0 else 0

    @property
    def max_bytes(self) -> int:
        return self.max_kb * 1024 if self.max_kb > 0 else 0

    @property
    def border_rgb(self) -> tuple:
        return hex_to_rgb(self.border_hex)

    def to_record(self) -> Dict[str, object]:
        """Flatten to camelCase keys for the settings record."""
        record = {}
        for key, value in asdict(self).items():
            if isinstance(value, Enum):
                value = value.value
            record[_RECORD_KEYS[key]] = value
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, str]) -> "BatchOptions":
        """Build options from a persisted settings record.

        Unparseable or out-of-range numbers fall back to their defaults, then
        the assembled options are validated as a whole.
        """
        defaults = cls()

        def number(key: str, default: int, minimum: int, maximum: Optional[int] = None) -> int:
            value = parse_int(record.get(_RECORD_KEYS[key]))
            if value is None or value < minimum or (maximum is not None and value > maximum):
                return default
            return value

        def flag(key: str) -> bool:
            return parse_bool(record.get(_RECORD_KEYS[key]), getattr(defaults, key))

        border_mode = str(record.get(_RECORD_KEYS["border_mode"]) or defaults.border_mode.value).upper()
        if border_mode not in BorderMode.__members__:
            LOGGER.warning(f"Unknown persisted border mode {border_mode!r}, using WHITE")
            border_mode = BorderMode.WHITE.value

        srgb_mode = str(record.get(_RECORD_KEYS["srgb_mode"]) or defaults.srgb_mode.value).upper()
        if srgb_mode not in SrgbMode.__members__:
            srgb_mode = SrgbMode.OFF.value

        border_hex = record.get(_RECORD_KEYS["border_hex"]) or defaults.border_hex
        if not HEX_COLOR_RE.match(border_hex.strip()):
            border_hex = defaults.border_hex

        return cls(
            ratio_w=number("ratio_w", 4, 1),
            ratio_h=number("ratio_h", 5, 1),
            ignore_ratio=flag("ignore_ratio"),
            long_side=number("long_side", 1350, 200),
            padding=number("padding", 40, 0),
            ignore_border=flag("ignore_border"),
            border_mode=border_mode,
            border_hex=border_hex,
            jpeg_quality=number("jpeg_quality", 10, QUALITY_MIN, QUALITY_MAX),
            min_kb=number("min_kb", 0, 0),
            max_kb=number("max_kb", 0, 0),
            ignore_file_size_limits=flag("ignore_file_size_limits"),
            srgb_mode=srgb_mode,
            embed_profile=flag("embed_profile"),
            set_ppi=flag("set_ppi"),
            ppi=number("ppi", 72, 1),
            suffix=record.get(_RECORD_KEYS["suffix"]) or defaults.suffix,
            chunk_size=number("chunk_size", 100, 1),
            cooldown_ms=number("cooldown_ms", 0, 0),
            scratch_max_retries=number("scratch_max_retries", 2, 0),
            scratch_retry_cooldown_ms=number("scratch_retry_cooldown_ms", 5000, 0),
            skip_existing=flag("skip_existing"),
            silent_mode=flag("silent_mode"),
        )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


_RECORD_KEYS = {f.name: _camel(f.name) for f in fields(BatchOptions)}
# Persisted names that do not follow the plain camelCase rule
_RECORD_KEYS.update(
    jpeg_quality="jpegQuality",
    min_kb="minKB",
    max_kb="maxKB",
    set_ppi="setPPI",
    ppi="ppi",
)


def hex_to_rgb(hex6: str) -> tuple:
    hex6 = normalize_hex(hex6)
    return (int(hex6[0:2], 16), int(hex6[2:4], 16), int(hex6[4:6], 16))


PRESETS: Dict[str, Dict[str, object]] = {
    "instagram-portrait": dict(ratio_w=4, ratio_h=5, long_side=1350, max_kb=900),
    "instagram-landscape": dict(ratio_w=5, ratio_h=4, long_side=1080, max_kb=900),
    "instagram-square": dict(ratio_w=1, ratio_h=1, long_side=1080, max_kb=900),
    "instagram-story": dict(ratio_w=9, ratio_h=16, long_side=1920, max_kb=1200),
}


def apply_preset(options: BatchOptions, name: str) -> BatchOptions:
    """Return options with a named preset's ratio, long side and size limits applied."""
    if name not in PRESETS:
        raise ConfigurationError(f"Unknown preset: {name!r} (choose from {', '.join(PRESETS)})")
    return replace(options, min_kb=0, jpeg_quality=10, ignore_ratio=False, **PRESETS[name])
