"""Crash-durable record of the batch currently in progress.

The record is rewritten before and after every file so that, after a crash or
a kill, the next launch can tell which file was being worked on.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from borderforge.logger import LOGGER

from .kvfile import load_key_values, parse_bool, parse_int, save_key_values


RUN_STATE_HEADER = ("BorderForge run-state",)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class RunState:
    running: bool = True
    clean_exit: bool = False
    started_at: str = ""
    heartbeat: str = ""
    ended_at: str = ""
    input_path: str = ""
    output_path: str = ""
    total: int = 0
    last_started_idx: int = -1
    last_started_name: str = ""
    last_done_idx: int = -1
    last_done_name: str = ""

    @classmethod
    def begin(cls, input_path: Path, output_path: Path, start_idx: int, total: int) -> "RunState":
        """Create the record written when a batch starts."""
        return cls(
            running=True,
            clean_exit=False,
            started_at=_now(),
            input_path=str(input_path) if input_path else "",
            output_path=str(output_path) if output_path else "",
            total=total,
            last_started_idx=start_idx,
            last_started_name="",
            last_done_idx=-1,
            last_done_name="",
        )

    def mark_started(self, idx: int, name: str) -> None:
        """Record the file about to be processed."""
        self.running = True
        self.clean_exit = False
        self.heartbeat = _now()
        self.last_started_idx = idx
        self.last_started_name = name

    def mark_done(self, idx: int, name: str) -> None:
        """Record a file that finished or was skipped on purpose."""
        self.running = True
        self.clean_exit = False
        self.heartbeat = _now()
        self.last_done_idx = idx
        self.last_done_name = name

    def mark_clean_exit(self) -> None:
        """Flag the run as completed normally."""
        self.running = False
        self.clean_exit = True
        self.ended_at = _now()

    def to_record(self) -> Dict[str, object]:
        return {
            "running": self.running,
            "cleanExit": self.clean_exit,
            "startedAt": self.started_at,
            "heartbeat": self.heartbeat,
            "endedAt": self.ended_at,
            "inputPath": self.input_path,
            "outputPath": self.output_path,
            "total": self.total,
            "lastStartedIdx": self.last_started_idx,
            "lastStartedName": self.last_started_name,
            "lastDoneIdx": self.last_done_idx,
            "lastDoneName": self.last_done_name,
        }

    @classmethod
    def from_record(cls, record: Dict[str, str]) -> "RunState":
        def index(key: str) -> int:
            value = parse_int(record.get(key))
            return -1 if value is None else value

        return cls(
            running=parse_bool(record.get("running"), False),
            clean_exit=parse_bool(record.get("cleanExit"), False),
            started_at=record.get("startedAt", ""),
            heartbeat=record.get("heartbeat", ""),
            ended_at=record.get("endedAt", ""),
            input_path=record.get("inputPath", ""),
            output_path=record.get("outputPath", ""),
            total=parse_int(record.get("total")) or 0,
            last_started_idx=index("lastStartedIdx"),
            last_started_name=record.get("lastStartedName", ""),
            last_done_idx=index("lastDoneIdx"),
            last_done_name=record.get("lastDoneName", ""),
        )


class RunStateStore:
    """Durable read/write of the run-state record; it never interprets values."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load_raw(self) -> Dict[str, str]:
        """Return the stored keys, empty when missing or unreadable."""
        return load_key_values(self.path)

    def load(self) -> Optional[RunState]:
        record = self.load_raw()
        if not record:
            return None
        return RunState.from_record(record)

    def save(self, state: RunState) -> None:
        try:
            save_key_values(self.path, state.to_record(), RUN_STATE_HEADER)
        except OSError as e:
            LOGGER.error(f"Failed to write run-state {self.path}: {e}")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            LOGGER.debug(f"Could not remove run-state {self.path}: {e}")

    def finish(self, state: RunState) -> None:
        """Record a clean exit, then remove the record."""
        state.mark_clean_exit()
        self.save(state)
        self.clear()
