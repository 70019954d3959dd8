"""Plain-text key=value records used for run-state and settings persistence."""

from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from borderforge.logger import LOGGER


def parse_key_values(text: str) -> Dict[str, str]:
    """Parse key=value lines.

    Blank lines, lines starting with '#' and lines without '=' are ignored.
    Keys and values are trimmed; the last occurrence of a key wins.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        if line.lstrip().startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        values[key] = value.strip()
    return values


def format_key_values(values: Mapping[str, object], header: Iterable[str] = ()) -> str:
    """Render a mapping as key=value lines, skipping None values."""
    lines = [f"# {line}" if line else "" for line in header]
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def load_key_values(path: Path) -> Dict[str, str]:
    """Read a key=value file.

    Returns an empty dict when the file is missing or cannot be read, so an
    interrupted write is indistinguishable from an empty record.
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_key_values(f.read())
    except (OSError, UnicodeDecodeError) as e:
        LOGGER.warning(f"Failed to read {path}: {e}")
        return {}


def save_key_values(path: Path, values: Mapping[str, object], header: Iterable[str] = ()) -> None:
    """Rewrite a key=value file in full."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_key_values(values, header))


def parse_bool(value: Optional[str], fallback: bool) -> bool:
    """Interpret true/false, 1/0 and yes/no; anything else yields fallback."""
    if value is None:
        return fallback
    lowered = str(value).strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    return fallback


def parse_int(value: Optional[str]) -> Optional[int]:
    """Parse a base-10 integer, returning None when it is not one."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None
