"""Startup check for a batch that stopped without reaching a clean exit."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict

from borderforge.logger import LOGGER

from .kvfile import parse_bool, parse_int
from .run_state import RunStateStore


class RecoveryStatus(Enum):
    NO_STATE = "no_state"
    CLEAN_EXIT = "clean_exit"
    DIRTY_NO_FIELDS = "dirty_no_fields"
    DIRTY_WITH_FIELDS = "dirty_with_fields"


@dataclass
class RecoveryInspection:
    status: RecoveryStatus
    last_started_idx: int = -1
    last_started_name: str = ""


@dataclass
class RecoveryDecision:
    do_resume: bool
    last_started_idx: int = -1
    last_started_name: str = ""
    cleared: bool = False


def inspect(store: RunStateStore) -> RecoveryInspection:
    """Classify the stored run-state without changing it."""
    if not store.exists():
        return RecoveryInspection(RecoveryStatus.NO_STATE)

    record: Dict[str, str] = store.load_raw()
    if parse_bool(record.get("cleanExit"), False):
        return RecoveryInspection(RecoveryStatus.CLEAN_EXIT)

    if "lastStartedIdx" not in record and "lastStartedName" not in record:
        return RecoveryInspection(RecoveryStatus.DIRTY_NO_FIELDS)

    idx = parse_int(record.get("lastStartedIdx"))
    return RecoveryInspection(
        RecoveryStatus.DIRTY_WITH_FIELDS,
        last_started_idx=-1 if idx is None else idx,
        last_started_name=record.get("lastStartedName", ""),
    )


def build_prompt(inspection: RecoveryInspection) -> str:
    """Build the yes/no resume question for a dirty run-state."""
    if inspection.status is RecoveryStatus.DIRTY_NO_FIELDS:
        return (
            "An unexpected stop was detected from the last run.\n"
            "Resume from where you left off using your last saved settings?"
        )

    lines = ["Unexpected failure detected."]
    if inspection.last_started_name:
        lines.append(f"Last started: {inspection.last_started_name}")
    if inspection.last_started_idx >= 0:
        lines.append(f"Index: {inspection.last_started_idx}")
    lines.append("")
    lines.append("YES: re-run the last started image (overwriting its output if needed) and continue.")
    lines.append("NO: clear the recovery state and start fresh.")
    lines.append("Resume from where you left off?")
    return "\n".join(lines)


def resolve(store: RunStateStore, confirm: Callable[[str], bool]) -> RecoveryDecision:
    """Decide whether to resume an interrupted batch.

    Args:
        store: Run-state store to inspect
        confirm: Asks the user a yes/no question; only called for dirty state

    Returns:
        RecoveryDecision; when do_resume is False the caller starts fresh
    """
    inspection = inspect(store)

    if inspection.status is RecoveryStatus.NO_STATE:
        return RecoveryDecision(do_resume=False)

    if inspection.status is RecoveryStatus.CLEAN_EXIT:
        LOGGER.debug("Discarding stale run-state from a clean exit")
        store.clear()
        return RecoveryDecision(do_resume=False, cleared=True)

    LOGGER.info(
        f"Unexpected stop detected (last started: {inspection.last_started_name or '?'}, "
        f"index {inspection.last_started_idx})"
    )
    if not confirm(build_prompt(inspection)):
        store.clear()
        return RecoveryDecision(do_resume=False, cleared=True)

    return RecoveryDecision(
        do_resume=True,
        last_started_idx=inspection.last_started_idx,
        last_started_name=inspection.last_started_name,
    )
