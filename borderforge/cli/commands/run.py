"""Batch run and dry-run CLI commands."""

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Tuple

from borderforge.batch.addressing import DEFAULT_OUTPUT_BASE, next_numbered_folder
from borderforge.batch.dry_run import dry_run_once, format_bytes
from borderforge.batch.enumerator import EnvironmentMissingError, enumerate_files
from borderforge.batch.orchestrator import BatchResult, run_batch
from borderforge.batch.resume import plan_resume
from borderforge.logger import LOGGER, setup_logging
from borderforge.options import PRESETS, BatchOptions, BorderMode, ConfigurationError, SrgbMode, apply_preset
from borderforge.processing.pillow_engine import PillowEngine
from borderforge.state import locations
from borderforge.state.recovery import resolve
from borderforge.state.run_state import RunStateStore
from borderforge.state.settings import FolderChoices, PersistedSettings, SettingsStore


# CLI destination -> BatchOptions field
OPTION_ARGS = (
    "ratio_w", "ratio_h", "ignore_ratio", "long_side", "padding",
    "ignore_border", "border_mode", "border_hex",
    "jpeg_quality", "min_kb", "max_kb", "ignore_file_size_limits",
    "srgb_mode", "embed_profile", "set_ppi", "ppi", "suffix",
    "chunk_size", "cooldown_ms", "scratch_max_retries", "scratch_retry_cooldown_ms",
    "skip_existing", "silent_mode",
)


class NoAnswerError(Exception):
    """The terminal closed before a yes/no question was answered."""


def prompt_yes_no(message: str) -> bool:
    """Ask a yes/no question on the terminal; any answer but yes means no.

    Raises:
        NoAnswerError: stdin is closed, so nobody can answer
    """
    print(message)
    try:
        answer = input("[y/N] ")
    except EOFError:
        raise NoAnswerError(message)
    return answer.strip().lower() in ("y", "yes")


def make_confirm(mode: str) -> Callable[[str], bool]:
    """Map --resume yes/no/ask to a confirm callable."""
    if mode == "yes":
        return lambda message: True
    if mode == "no":
        return lambda message: False
    return prompt_yes_no


def open_stores(args) -> Tuple[RunStateStore, SettingsStore]:
    """Open the run-state and settings stores under the chosen state directory."""
    state_dir = getattr(args, "state_dir", None)
    return (
        RunStateStore(locations.run_state_path(state_dir)),
        SettingsStore(locations.settings_path(state_dir)),
    )


def load_persisted(settings_store: SettingsStore) -> Optional[PersistedSettings]:
    """Load saved settings, ignoring a record that no longer validates."""
    try:
        return settings_store.load()
    except ConfigurationError as e:
        LOGGER.warning(f"Ignoring invalid saved settings: {e}")
        return None


def options_from_args(args, base: BatchOptions) -> BatchOptions:
    """Apply the preset and any explicitly given CLI options over base.

    Raises:
        ConfigurationError: a resulting value is out of range
    """
    options = base
    if getattr(args, "preset", None):
        options = apply_preset(options, args.preset)
    overrides = {}
    for name in OPTION_ARGS:
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return replace(options, **overrides)


def resolve_folders(args, persisted: Optional[PersistedSettings]) -> Tuple[Path, Path, FolderChoices]:
    """Pick input and output folders from the arguments or the remembered choices.

    Raises:
        EnvironmentMissingError: no usable input folder
    """
    remembered = persisted.folders if persisted else FolderChoices()
    remember = remembered.remember_folders if args.remember_folders is None else args.remember_folders

    input_path = args.input or (remembered.input_path if remembered.remember_folders else "")
    if not input_path:
        raise EnvironmentMissingError("Input folder is not set. Pass --input.")
    input_dir = Path(input_path)
    if not input_dir.is_dir():
        raise EnvironmentMissingError(f"Input folder does not exist: {input_dir}")

    if args.output:
        output_dir = Path(args.output)
        use_custom = True
    elif args.input is None and remembered.use_custom_out and remembered.custom_out_path:
        output_dir = Path(remembered.custom_out_path)
        use_custom = True
    else:
        output_dir, _ = next_numbered_folder(input_dir, DEFAULT_OUTPUT_BASE)
        use_custom = False

    folders = FolderChoices(
        remember_folders=remember,
        input_path=str(input_dir),
        use_custom_out=use_custom,
        custom_out_path=str(output_dir) if use_custom else "",
    )
    return input_dir, output_dir, folders


def ensure_output_dir(output_dir: Path) -> None:
    """Create the output folder, reporting failure as a missing environment."""
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EnvironmentMissingError(f"Could not create output folder {output_dir}: {e}")


def report_result(result: BatchResult, output_dir: Path, log_file: Path) -> int:
    """Print the run summary and return the exit code."""
    if not result.finished_normally:
        print(f"✗ Aborted: {result.aborted_reason}")
        print("  The run can be resumed on the next launch.")
        print(f"  Log: {log_file}")
        return 1

    print("✓ Completed")
    print(f"  Processed: {result.processed}")
    print(f"  Skipped: {result.skipped}")
    if result.failed:
        print(f"  Failed: {result.failed}")
        for name in result.failed_files[:3]:
            print(f"    - {name}")
    print(f"  Output: {output_dir}")
    print(f"  Log: {log_file}")
    return 2 if result.failed else 0


def try_resume(args, run_state_store: RunStateStore, settings_store: SettingsStore) -> Optional[int]:
    """Offer to resume an interrupted run; returns an exit code when a resumed run happened."""
    try:
        decision = resolve(run_state_store, make_confirm(args.resume))
    except NoAnswerError:
        print("✗ No answer to the resume question; the interrupted run was left untouched.")
        print("  Run again with --resume yes or --resume no.")
        return 1
    if not decision.do_resume:
        return None

    try:
        plan = plan_resume(decision, settings_store, run_state_store)
    except EnvironmentMissingError as e:
        print(f"✗ {e}")
        print("  Continuing with a fresh run.")
        return None

    log_file = locations.log_path(args.state_dir)
    print(f"Resuming at {plan.start_index + 1}/{len(plan.tasks)}: {plan.tasks[plan.start_index].name}")
    result = run_batch(
        plan.tasks,
        plan.start_index,
        plan.output_dir,
        plan.options,
        plan.force_redo_index,
        engine=PillowEngine(),
        store=run_state_store,
        input_dir=plan.input_dir,
        show_progress=not args.quiet and sys.stderr.isatty(),
    )
    return report_result(result, plan.output_dir, log_file)


def prepare_fresh_run(args, settings_store: SettingsStore):
    """Validate options and folders for a new run and persist the accepted settings."""
    persisted = load_persisted(settings_store)
    base = persisted.options if persisted else BatchOptions()
    options = options_from_args(args, base)
    input_dir, output_dir, folders = resolve_folders(args, persisted)
    tasks = enumerate_files(input_dir)
    try:
        settings_store.save(options, folders)
    except OSError:
        print("Warning: settings could not be saved; this run cannot be resumed after a crash.")
    return options, input_dir, output_dir, tasks


def cmd_run(args):
    """Run a batch, offering to resume an interrupted one first."""
    log_file = locations.log_path(args.state_dir)
    setup_logging(log_file, verbose=args.verbose, quiet=args.quiet)
    run_state_store, settings_store = open_stores(args)

    resumed = try_resume(args, run_state_store, settings_store)
    if resumed is not None:
        return resumed

    try:
        options, input_dir, output_dir, tasks = prepare_fresh_run(args, settings_store)
        ensure_output_dir(output_dir)
    except ConfigurationError as e:
        print(f"Invalid options: {e}")
        return 1
    except EnvironmentMissingError as e:
        print(f"✗ {e}")
        return 1

    print(f"Processing {len(tasks)} images from {input_dir}")
    print(f"  Output: {output_dir}")

    run_state_store.clear()
    result = run_batch(
        tasks,
        0,
        output_dir,
        options,
        -1,
        engine=PillowEngine(),
        store=run_state_store,
        input_dir=input_dir,
        show_progress=not args.quiet and sys.stderr.isatty(),
    )
    return report_result(result, output_dir, log_file)


def cmd_dry_run(args):
    """Process one random image into a hidden temp folder and report the result."""
    log_file = locations.log_path(args.state_dir)
    setup_logging(log_file, verbose=args.verbose, quiet=args.quiet)
    _, settings_store = open_stores(args)

    try:
        options, input_dir, output_dir, tasks = prepare_fresh_run(args, settings_store)
    except ConfigurationError as e:
        print(f"Invalid options: {e}")
        return 1
    except EnvironmentMissingError as e:
        print(f"✗ {e}")
        return 1

    engine = PillowEngine()
    report = dry_run_once(
        tasks, options, engine, locations.dry_run_folder(args.state_dir), keep_output=args.keep
    )

    print(f"Original file: {report.original_name}")
    print(f"Original size: {format_bytes(report.original_size)}")
    if not report.ok:
        print(f"✗ Dry run failed: {report.error}")
        return 1
    print(f"Exported file name: {report.export_name} (temp)")
    print(f"Exported size: {format_bytes(report.export_size)} (quality {report.export_quality})")
    print(f"Border mode: {report.border_mode}")
    print(f"Temp export: {report.temp_folder} (hidden)")
    print(f"Batch output: {output_dir}")
    return 0


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--state-dir", type=Path, default=None, help="Directory for run-state, settings and log files")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    parser.add_argument("--quiet", action="store_true", help="Only show errors and the final summary")


def add_option_arguments(parser: argparse.ArgumentParser) -> None:
    """Batch option flags; anything left unset falls back to the saved settings."""
    bool_flag = argparse.BooleanOptionalAction

    folders = parser.add_argument_group("folders")
    folders.add_argument("--input", "-i", default=None, help="Input folder (top-level JPG/PNG/TIF files)")
    folders.add_argument("--output", "-o", default=None, help=f"Custom output folder (default: next '{DEFAULT_OUTPUT_BASE}' folder)")
    folders.add_argument("--remember-folders", action=bool_flag, default=None, help="Save folder choices (required for resume)")

    sizing = parser.add_argument_group("aspect and sizing")
    sizing.add_argument("--preset", choices=sorted(PRESETS), default=None, help="Apply a ratio/long-side/size preset")
    sizing.add_argument("--ratio-w", type=int, default=None)
    sizing.add_argument("--ratio-h", type=int, default=None)
    sizing.add_argument("--ignore-ratio", action=bool_flag, default=None, help="Keep proportions and pad equally")
    sizing.add_argument("--long-side", type=int, default=None, help="Long side in pixels")
    sizing.add_argument("--padding", type=int, default=None, help="Border padding in pixels")

    border = parser.add_argument_group("border")
    border.add_argument("--ignore-border", action=bool_flag, default=None, help="Resize and export without a border")
    border.add_argument("--border-mode", type=str.upper, choices=[m.value for m in BorderMode], default=None)
    border.add_argument("--border-hex", default=None, help="Custom border color, e.g. F0E8D8")

    output = parser.add_argument_group("output")
    output.add_argument("--jpeg-quality", "-q", type=int, default=None, help="Start quality (0-12)")
    output.add_argument("--min-kb", type=int, default=None, help="Minimum file size in KB (0 = none)")
    output.add_argument("--max-kb", type=int, default=None, help="Maximum file size in KB (0 = none)")
    output.add_argument("--ignore-file-size-limits", action=bool_flag, default=None)
    output.add_argument("--suffix", default=None, help="Filename suffix before .jpg")

    color = parser.add_argument_group("color management")
    color.add_argument("--srgb-mode", type=str.upper, choices=[m.value for m in SrgbMode], default=None)
    color.add_argument("--embed-profile", action=bool_flag, default=None)
    color.add_argument("--set-ppi", action=bool_flag, default=None)
    color.add_argument("--ppi", type=int, default=None)

    stability = parser.add_argument_group("batch stability")
    stability.add_argument("--skip-existing", action=bool_flag, default=None)
    stability.add_argument("--silent-mode", action=bool_flag, default=None, help="Log per-file errors and continue")
    stability.add_argument("--chunk-size", type=int, default=None)
    stability.add_argument("--cooldown-ms", type=int, default=None)
    stability.add_argument("--scratch-max-retries", type=int, default=None)
    stability.add_argument("--scratch-retry-cooldown-ms", type=int, default=None)


def setup_run_commands(subparsers):
    """Setup run and dry-run subcommands."""
    run_parser = subparsers.add_parser("run", help="Run a batch export")
    add_common_arguments(run_parser)
    add_option_arguments(run_parser)
    run_parser.add_argument(
        "--resume", choices=["ask", "yes", "no"], default="ask",
        help="What to do when an interrupted run is detected",
    )
    run_parser.set_defaults(func=cmd_run)

    dry_parser = subparsers.add_parser("dry-run", help="Preview settings on one random image")
    add_common_arguments(dry_parser)
    add_option_arguments(dry_parser)
    dry_parser.add_argument("--keep", action="store_true", help="Keep the temporary JPEG")
    dry_parser.set_defaults(func=cmd_dry_run)
