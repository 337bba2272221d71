"""Subcommand dispatcher for sessionreel.

Usage:
    sessionreel assemble   --event section-event.yaml --root .sessionreel/
    sessionreel chapters   a1.mp4 a2.mp4 a3.mp4
    sessionreel thumbnail  session.mp4 --output thumb.jpg
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="sessionreel",
        description="Interview session assembly: chapters, merged video, thumbnail.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("assemble", help="Run one section-answers event locally")
    subparsers.add_parser("chapters", help="Print the chapter timeline for clips")
    subparsers.add_parser("thumbnail", help="Extract a thumbnail from a video")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "assemble":
        from .assemble_cli import main as assemble_main
        assemble_main(remaining)
    elif parsed.command == "chapters":
        from .chapters_cli import main as chapters_main
        chapters_main(remaining)
    elif parsed.command == "thumbnail":
        from .thumbnail_cli import main as thumbnail_main
        thumbnail_main(remaining)


if __name__ == "__main__":
    main()
