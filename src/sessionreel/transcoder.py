"""Transcoding job orchestration. Merges a section's answer clips into one video.

A merge job concatenates its inputs 1:1: one input per clip (input1..inputN)
and one edit atom per input (atom1..atomN), in clip order. No trimming.

Job lifecycle as seen from here:

    submitted -> PENDING / RUNNING -> SUCCEEDED
                                   -> FAILED or unknown state  (TranscodeFailure)
                                   -> attempts exhausted       (RetryExhausted)
"""

import asyncio
import logging

from .errors import RetryExhausted, TranscodeFailure
from .models import AnswerClip, EditAtom, JobInput, JobState, TranscodeJob
from .providers import TranscoderService
from .retry import RetryPolicy, backoff_delay

logger = logging.getLogger(__name__)

DEFAULT_POLL_POLICY = RetryPolicy(max_attempts=15, base_delay=0.5)
DEFAULT_CREATE_TIMEOUT_S = 300.0

# Fixed output profile for merged session videos.
OUTPUT_PROFILE = {
    "video": {"codec": "h264", "frame_rate": 60, "width_pixels": 640,
              "height_pixels": 360, "bitrate_bps": 550000},
    "audio": {"codec": "aac", "bitrate_bps": 64000},
    "container": "mp4",
}


# ── Request building ───────────────────────────────────────────────

def input_key(index: int) -> str:
    return f"input{index + 1}"


def edit_atom_key(index: int) -> str:
    return f"atom{index + 1}"


def generate_input_list(clips: list[AnswerClip]) -> list[JobInput]:
    return [JobInput(key=input_key(i), uri=clip.media_url) for i, clip in enumerate(clips)]


def generate_edit_atom(index: int, input_keys: list[str],
                       start_time_offset: float | None = None,
                       end_time_offset: float | None = None) -> EditAtom:
    return EditAtom(
        key=edit_atom_key(index),
        inputs=tuple(input_keys),
        start_time_offset=start_time_offset,
        end_time_offset=end_time_offset,
    )


def generate_edit_atom_list(clips: list[AnswerClip]) -> list[EditAtom]:
    """One atom per clip, each referencing only its same-indexed input."""
    return [generate_edit_atom(i, [input_key(i)]) for i in range(len(clips))]


def build_transcode_request(
    parent: str,
    output_uri: str,
    inputs: list[JobInput],
    edit_atoms: list[EditAtom],
    output_name: str,
) -> dict:
    """Build a job-creation request using the fixed OUTPUT_PROFILE.

    The mux stream key doubles as the output file stem, so the merged
    video lands at output_uri + output_name + ".mp4".
    """
    video = OUTPUT_PROFILE["video"]
    audio = OUTPUT_PROFILE["audio"]
    elementary_streams = [
        {
            "key": "video-stream0",
            "video_stream": {
                video["codec"]: {
                    "frame_rate": video["frame_rate"],
                    "width_pixels": video["width_pixels"],
                    "height_pixels": video["height_pixels"],
                    "bitrate_bps": video["bitrate_bps"],
                },
            },
        },
        {
            "key": "audio-stream0",
            "audio_stream": {"codec": audio["codec"], "bitrate_bps": audio["bitrate_bps"]},
        },
    ]
    mux_streams = [
        {
            "key": output_name,
            "container": OUTPUT_PROFILE["container"],
            "elementary_streams": ["video-stream0", "audio-stream0"],
        },
    ]
    return {
        "parent": parent,
        "job": {
            "output_uri": output_uri,
            "config": {
                "inputs": [i.to_dict() for i in inputs],
                "edit_list": [a.to_dict() for a in edit_atoms],
                "elementary_streams": elementary_streams,
                "mux_streams": mux_streams,
            },
        },
    }


def job_id_from_name(job_name: str) -> str:
    """'projects/p/locations/r/jobs/abc' -> 'abc'."""
    return job_name.rstrip("/").rsplit("/", 1)[-1]


# ── Polling ────────────────────────────────────────────────────────

async def poll_job_state(
    service: TranscoderService,
    job_id: str,
    policy: RetryPolicy = DEFAULT_POLL_POLICY,
    sleep=asyncio.sleep,
) -> str:
    """Poll a job until it succeeds, fails, or the attempt budget runs out.

    Polls at most policy.max_attempts + 1 times, sleeping
    backoff_delay(attempt) between polls while the job is PENDING or
    RUNNING.

    Returns:
        JobState.SUCCEEDED.

    Raises:
        TranscodeFailure: FAILED or an unrecognized state (not retried).
        RetryExhausted: Still in progress after the last allowed poll.
    """
    for attempt in range(policy.max_attempts + 1):
        state = str(await service.get_job_state(job_id))
        logger.info("Job %s state: %s (poll %d)", job_id, state, attempt + 1)

        if state == JobState.SUCCEEDED:
            return state
        if state not in JobState.IN_PROGRESS:
            raise TranscodeFailure(state, job_id)

        if attempt < policy.max_attempts:
            delay = backoff_delay(attempt, policy.base_delay)
            logger.debug("Waiting %.2fs before checking job %s again", delay, job_id)
            await sleep(delay)

    raise RetryExhausted(job_id)


async def submit_job(service: TranscoderService, request: dict,
                     timeout: float = DEFAULT_CREATE_TIMEOUT_S) -> str:
    """Create the job and return its id."""
    job_name = await service.create_job(request, timeout=timeout)
    job_id = job_id_from_name(job_name)
    logger.info("Transcode job submitted: %s", job_id)
    return job_id


async def merge_video(
    service: TranscoderService,
    clips: list[AnswerClip],
    output_uri: str,
    output_name: str,
    timeout: float = DEFAULT_CREATE_TIMEOUT_S,
    policy: RetryPolicy = DEFAULT_POLL_POLICY,
    sleep=asyncio.sleep,
) -> TranscodeJob:
    """Concatenate clips into output_uri/output_name.mp4 and wait for completion.

    Returns:
        The finished TranscodeJob (state SUCCEEDED).

    Raises:
        ValueError: No clips.
        TranscodeFailure, RetryExhausted: See poll_job_state.
    """
    if not clips:
        raise ValueError("No clips to merge")

    inputs = generate_input_list(clips)
    atoms = generate_edit_atom_list(clips)
    request = build_transcode_request(
        service.location_path(), output_uri, inputs, atoms, output_name,
    )

    job_id = await submit_job(service, request, timeout=timeout)
    state = await poll_job_state(service, job_id, policy, sleep=sleep)
    logger.info("Transcode job %s completed: %d clips merged", job_id, len(clips))

    return TranscodeJob(job_id=job_id, inputs=tuple(inputs),
                        edit_atoms=tuple(atoms), state=state)
