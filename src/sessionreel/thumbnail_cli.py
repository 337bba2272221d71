"""CLI for thumbnails — write the first frame of a video as a JPEG.

Usage:
    sessionreel thumbnail session.mp4
    sessionreel thumbnail session.mp4 --output thumbs/session.jpg
"""

import argparse
import asyncio
from pathlib import Path

from .media import MoviepyFrameExtractor
from .thumbnail import thumbnail_filename


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Extract a thumbnail (first frame) from a video.",
    )
    parser.add_argument(
        "source",
        help="Path to video file",
    )
    parser.add_argument(
        "--output", default=None,
        help="Output JPEG path (default: <source>_thumbnail.jpg beside the video)",
    )
    parsed = parser.parse_args(args)

    source = Path(parsed.source)
    if not source.exists():
        parser.error(f"Video not found: {source}")
    output = parsed.output or str(source.parent / thumbnail_filename(source.name))

    asyncio.run(MoviepyFrameExtractor().extract_frame(source, output))
    print(f"Thumbnail: {output}")


if __name__ == "__main__":
    main()
