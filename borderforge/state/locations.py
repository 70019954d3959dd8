"""Where the run-state, settings and log files live."""

import os
import tempfile
from pathlib import Path
from typing import Optional


HOME_ENV_VAR = "BORDERFORGE_HOME"

RUN_STATE_FILENAME = "borderforge_runstate.txt"
SETTINGS_FILENAME = "settings.txt"
LOG_FILENAME = "borderforge_log.txt"
DRY_RUN_FOLDER = ".borderforge_test"


def state_home(override: Optional[Path] = None) -> Optional[Path]:
    """Return the single directory holding all state files, if one is configured."""
    if override:
        return Path(override)
    env = os.environ.get(HOME_ENV_VAR)
    return Path(env) if env else None


def run_state_path(override: Optional[Path] = None) -> Path:
    home = state_home(override)
    return (home or Path(tempfile.gettempdir())) / RUN_STATE_FILENAME


def settings_path(override: Optional[Path] = None) -> Path:
    home = state_home(override)
    return (home or Path.home() / ".borderforge") / SETTINGS_FILENAME


def log_path(override: Optional[Path] = None) -> Path:
    home = state_home(override)
    return (home or Path(tempfile.gettempdir())) / LOG_FILENAME


def dry_run_folder(override: Optional[Path] = None) -> Path:
    home = state_home(override)
    return (home or Path(tempfile.gettempdir())) / DRY_RUN_FOLDER
