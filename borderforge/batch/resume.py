"""Rebuild a batch from saved settings after an unexpected stop."""

from dataclasses import dataclass
from pathlib import Path
from typing import List

from borderforge.logger import LOGGER
from borderforge.options import BatchOptions, ConfigurationError
from borderforge.state.kvfile import parse_int
from borderforge.state.recovery import RecoveryDecision
from borderforge.state.run_state import RunStateStore
from borderforge.state.settings import SettingsStore

from .addressing import DEFAULT_OUTPUT_BASE, next_numbered_folder
from .enumerator import EnvironmentMissingError, FileTask, enumerate_files


class ResumeRefusedError(EnvironmentMissingError):
    """Resume was requested but the saved settings cannot reconstruct the run."""


@dataclass
class ResumePlan:
    input_dir: Path
    output_dir: Path
    options: BatchOptions
    tasks: List[FileTask]
    start_index: int
    force_redo_index: int


def resolve_output_dir(input_dir: Path, use_custom_out: bool, custom_out_path: str, recorded_output: str) -> Path:
    if use_custom_out:
        if not custom_out_path:
            raise ResumeRefusedError("Resume failed: the last custom output folder path is missing.")
        return Path(custom_out_path)

    if recorded_output and Path(recorded_output).is_dir():
        return Path(recorded_output)

    folder, _ = next_numbered_folder(input_dir, DEFAULT_OUTPUT_BASE)
    return folder


def plan_resume(
    decision: RecoveryDecision,
    settings_store: SettingsStore,
    run_state_store: RunStateStore,
) -> ResumePlan:
    """Work out where and how to continue an interrupted batch.

    Raises:
        ResumeRefusedError: settings missing/invalid, folders not remembered,
            the saved input folder is gone, or the output folder cannot be
            determined or created
        EmptyInputError: the saved input folder has no images left
    """
    try:
        persisted = settings_store.load()
    except ConfigurationError as e:
        raise ResumeRefusedError(f"Resume failed: saved settings were invalid ({e}).")
    if persisted is None:
        raise ResumeRefusedError("Resume was requested, but no saved settings were found.")

    folders = persisted.folders
    if not folders.remember_folders:
        raise ResumeRefusedError(
            "Resume was requested, but 'remember folders' was off in the last saved settings. "
            "Enable it and run once; crash-resume needs the saved input and output folders."
        )
    if not folders.input_path:
        raise ResumeRefusedError("Resume was requested, but the last input folder path is missing.")

    input_dir = Path(folders.input_path)
    if not input_dir.is_dir():
        raise ResumeRefusedError(f"Resume failed: the last input folder no longer exists: {input_dir}")

    state_record = run_state_store.load_raw()
    output_dir = resolve_output_dir(
        input_dir, folders.use_custom_out, folders.custom_out_path, state_record.get("outputPath", "")
    )
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ResumeRefusedError(f"Resume failed: could not create output folder {output_dir}: {e}")

    tasks = enumerate_files(input_dir)

    resume_idx = parse_int(state_record.get("lastStartedIdx"))
    if resume_idx is None or resume_idx < 0:
        resume_idx = decision.last_started_idx
    if resume_idx is None or resume_idx < 0:
        resume_idx = 0
    resume_idx = min(resume_idx, len(tasks) - 1)

    LOGGER.info(f"Resuming {input_dir} at index {resume_idx} ({tasks[resume_idx].name}) into {output_dir}")
    return ResumePlan(
        input_dir=input_dir,
        output_dir=output_dir,
        options=persisted.options,
        tasks=tasks,
        start_index=resume_idx,
        force_redo_index=resume_idx,
    )
