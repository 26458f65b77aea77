"""Subcommand dispatcher for clipstitch.

Usage:
    clipstitch export a.mp4 b.mp4 --output final.mp4
    clipstitch export --manifest session.yaml --output final.mp4
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipstitch",
        description="Trim, reframe and stitch clips into a single video.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("export", help="Trim, reframe and concatenate clips")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "export":
        from .export_cli import main as export_main
        export_main(remaining)


if __name__ == "__main__":
    main()
