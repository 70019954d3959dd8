"""Settings record with key=value persistence."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from borderforge.logger import LOGGER
from borderforge.options import BatchOptions

from .kvfile import load_key_values, parse_bool, save_key_values


SETTINGS_HEADER = (
    "BorderForge Export settings",
    "Simple key=value format for reliability.",
    "",
)


@dataclass(frozen=True)
class FolderChoices:
    """Folder selections remembered between runs."""

    remember_folders: bool = True
    input_path: str = ""
    use_custom_out: bool = False
    custom_out_path: str = ""

    def to_record(self) -> Dict[str, object]:
        return {
            "rememberFolders": self.remember_folders,
            "inputPath": self.input_path if self.remember_folders else "",
            "useCustomOut": self.use_custom_out,
            "customOutPath": self.custom_out_path if self.remember_folders else "",
        }

    @classmethod
    def from_record(cls, record: Dict[str, str]) -> "FolderChoices":
        return cls(
            remember_folders=parse_bool(record.get("rememberFolders"), False),
            input_path=record.get("inputPath", ""),
            use_custom_out=parse_bool(record.get("useCustomOut"), False),
            custom_out_path=record.get("customOutPath", ""),
        )


@dataclass(frozen=True)
class PersistedSettings:
    options: BatchOptions
    folders: FolderChoices


class SettingsStore:
    """Load and save the settings record."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load_record(self) -> Dict[str, str]:
        return load_key_values(self.path)

    def load(self) -> Optional[PersistedSettings]:
        """Return persisted settings, or None when nothing has been saved yet.

        Raises:
            ConfigurationError: the record exists but holds invalid options
        """
        record = self.load_record()
        if not record:
            return None
        return PersistedSettings(
            options=BatchOptions.from_record(record),
            folders=FolderChoices.from_record(record),
        )

    def save(self, options: BatchOptions, folders: FolderChoices) -> None:
        record = {}
        record.update(folders.to_record())
        record["ratioPresetText"] = f"{options.ratio_w}:{options.ratio_h}"
        record.update(options.to_record())
        try:
            save_key_values(self.path, record, SETTINGS_HEADER)
        except OSError as e:
            LOGGER.error(f"Failed to save settings to {self.path}: {e}")
            raise
