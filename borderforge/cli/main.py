"""Main CLI entry point for borderforge."""

import argparse
import sys

from .commands.folders import setup_folder_commands
from .commands.run import setup_run_commands


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="borderforge", description="Batch bordered JPEG export with crash-safe resume"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    setup_run_commands(subparsers)
    setup_folder_commands(subparsers)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Execute command
    if hasattr(args, "func"):
        return args.func(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
