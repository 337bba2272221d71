"""CLI for chapter timelines — probe local clips and print their chapters.

Usage:
    sessionreel chapters a1.mp4 a2.mp4 a3.mp4
    sessionreel chapters a1.mp4 a2.mp4 --output chapters.yaml
"""

import argparse
import asyncio
from pathlib import Path

import yaml

from .chapters import build_chapters
from .media import MoviepyMediaProbe
from .models import AnswerClip


def _clip_for(path: Path) -> AnswerClip:
    return AnswerClip(
        answer_id=path.stem,
        question_id=path.stem,
        question_title=path.stem,
        media_url=str(path),
        media_filename=path.name,
        answer_type="video",
    )


async def build_timeline(sources: list[str]) -> list[dict]:
    """Chapter dicts for local files, in the order given."""
    probe = MoviepyMediaProbe()
    paths = [Path(s) for s in sources]
    durations = [await probe.duration(str(p)) for p in paths]
    chapters = build_chapters([_clip_for(p) for p in paths], durations)
    return [c.to_dict() for c in chapters]


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Print the chapter timeline for a list of clips.",
    )
    parser.add_argument(
        "sources", nargs="+",
        help="Clip files, in presentation order",
    )
    parser.add_argument(
        "--output", default=None,
        help="Write chapters as YAML to this path",
    )
    parsed = parser.parse_args(args)

    missing = [s for s in parsed.sources if not Path(s).exists()]
    if missing:
        parser.error(f"Missing clip file(s): {', '.join(missing)}")

    chapters = asyncio.run(build_timeline(parsed.sources))
    for ch in chapters:
        t = ch["time"]
        print(f"  {t['startTime']:>8.2f}s — {t['endTime']:>8.2f}s  {ch['answerId']}")

    if parsed.output:
        Path(parsed.output).parent.mkdir(parents=True, exist_ok=True)
        with open(parsed.output, "w") as f:
            yaml.safe_dump(chapters, f, sort_keys=False)
        print(f"Output: {parsed.output}")


if __name__ == "__main__":
    main()
