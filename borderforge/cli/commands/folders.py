"""Numbered output folder CLI commands."""

from pathlib import Path

from borderforge.batch.addressing import DEFAULT_OUTPUT_BASE, next_numbered_folder, purge_numbered_folders
from borderforge.logger import LOGGER, setup_logging
from borderforge.state import locations

from .run import NoAnswerError, prompt_yes_no


def cmd_next_folder(args):
    """Print the folder the next fresh run would write to."""
    parent = Path(args.parent)
    if not parent.is_dir():
        print(f"Error: Folder does not exist: {parent}")
        return 1

    folder, n = next_numbered_folder(parent, args.base)
    print(f"{folder} (#{n})")
    return 0


def cmd_purge_folders(args):
    """Delete the numbered output folders under a parent folder."""
    setup_logging(locations.log_path(args.state_dir))
    parent = Path(args.parent)
    if not parent.is_dir():
        print(f"Error: Folder does not exist: {parent}")
        return 1

    _, next_index = next_numbered_folder(parent, args.base)
    if next_index <= 1:
        print(f"No '{args.base}' folders found in {parent}")
        return 0

    count = next_index - 1
    if not args.yes:
        try:
            confirmed = prompt_yes_no(
                f"Delete {count} '{args.base}' folder(s) in {parent}? This cannot be undone."
            )
        except NoAnswerError:
            print("Cancelled: no answer. Pass --yes to purge without asking.")
            return 1
        if not confirmed:
            print("Cancelled")
            return 0

    report = purge_numbered_folders(parent, args.base, next_index)
    print(f"Deleted {len(report.deleted)} folder(s)")
    if report.failed or report.item_failures:
        LOGGER.warning(f"Purge left {len(report.failed)} folder(s) behind, {report.item_failures} item failure(s)")
        for folder in report.failed:
            print(f"  Could not fully delete: {folder}")
        return 2
    return 0


def setup_folder_commands(subparsers):
    """Setup numbered-folder subcommands."""
    next_parser = subparsers.add_parser("next-folder", help="Show the next numbered output folder")
    next_parser.add_argument("parent", help="Parent folder (usually the input folder)")
    next_parser.add_argument("--base", default=DEFAULT_OUTPUT_BASE, help="Folder base name")
    next_parser.set_defaults(func=cmd_next_folder)

    purge_parser = subparsers.add_parser("purge-folders", help="Delete numbered output folders")
    purge_parser.add_argument("parent", help="Parent folder (usually the input folder)")
    purge_parser.add_argument("--base", default=DEFAULT_OUTPUT_BASE, help="Folder base name")
    purge_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")
    purge_parser.add_argument("--state-dir", type=Path, default=None, help="Directory for the log file")
    purge_parser.set_defaults(func=cmd_purge_folders)
