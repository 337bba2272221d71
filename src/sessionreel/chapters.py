"""Chapter timeline: place each answer clip on the merged section timeline.

Clips are laid end to end in input order with a fixed gap between them:

    chapter 0:  start = 0                      end = d0
    chapter i:  start = end[i-1] + GAP         end = start + d_i

All times are rounded to 2 decimals before being recorded, and each start
is computed from the previous chapter's *recorded* end, so rounding never
accumulates drift beyond one step.
"""

import logging

from .common import join_storage_path, round_to_places
from .errors import MediaProbeError
from .models import AnswerClip, Chapter, ChapterTime
from .providers import MediaProbe, ObjectStorage

logger = logging.getLogger(__name__)

CHAPTER_GAP_SECONDS = 0.5


def build_chapters(clips: list[AnswerClip], durations: list[float],
                   gap: float = CHAPTER_GAP_SECONDS) -> list[Chapter]:
    """Turn clip durations into ordered chapters.

    Raises:
        ValueError: Length mismatch or a negative duration.
    """
    if len(clips) != len(durations):
        raise ValueError(
            f"Got {len(durations)} durations for {len(clips)} clips"
        )

    chapters = []
    prev_end = None
    for clip, duration in zip(clips, durations):
        if duration < 0:
            raise ValueError(f"Negative duration for answer {clip.answer_id}: {duration}")
        start = 0.0 if prev_end is None else round_to_places(prev_end + gap)
        end = round_to_places(start + duration)
        chapters.append(Chapter(
            answer_id=clip.answer_id,
            question_title=clip.question_title,
            transcript=clip.transcript,
            time=ChapterTime(start_time=start, end_time=end),
        ))
        prev_end = end
    return chapters


async def _probe_clip(probe: MediaProbe, source: str) -> float:
    try:
        duration = await probe.duration(source)
    except MediaProbeError:
        raise
    except Exception as exc:
        raise MediaProbeError(source, str(exc)) from exc
    if duration is None:
        raise MediaProbeError(source, "no duration reported")
    return float(duration)


async def generate_session_chapters(
    clips: list[AnswerClip],
    probe: MediaProbe,
    storage: ObjectStorage,
    response_path: str,
) -> list[Chapter]:
    """Probe each clip's duration and build the section's chapter list.

    Clips are probed one at a time, in order. The first probe failure
    aborts the whole generation; no partial chapter list is returned.

    Args:
        clips: Answer clips in presentation order.
        probe: Media duration probe.
        storage: Object storage holding the clip files.
        response_path: Storage folder of the clips (trailing slash optional).

    Raises:
        MediaProbeError: A clip's duration could not be read.
    """
    durations = []
    for clip in clips:
        object_path = join_storage_path(response_path, clip.media_filename)
        source = storage.readable_url(object_path)
        duration = await _probe_clip(probe, source)
        logger.info("Duration of %s: %.3f seconds", object_path, duration)
        durations.append(duration)

    chapters = build_chapters(clips, durations)
    logger.info("Generated %d chapters", len(chapters))
    return chapters
