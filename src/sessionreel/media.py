"""Media probe and frame extractor backed by moviepy.

moviepy reads through ffmpeg, so sources can be local paths or http(s)
URLs (e.g. signed object-storage URLs). Both operations are blocking and
run in a worker thread.
"""

import asyncio
import logging
from pathlib import Path

import numpy as np
from PIL import Image

from .common import load_clip
from .errors import MediaProbeError, ThumbnailError

logger = logging.getLogger(__name__)

THUMBNAIL_JPEG_QUALITY = 90


def probe_duration(source: str) -> float:
    """Duration of a media file in seconds.

    Raises:
        MediaProbeError: Unreadable file or no duration in its metadata.
    """
    try:
        clip = load_clip(source)
    except (OSError, KeyError, ValueError) as exc:
        raise MediaProbeError(str(source), str(exc)) from exc
    try:
        duration = clip.duration
    finally:
        clip.close()
    if duration is None:
        raise MediaProbeError(str(source), "no duration in container metadata")
    return float(duration)


def first_frame(source: str | Path) -> np.ndarray:
    """First decodable frame as an RGB uint8 array."""
    clip = load_clip(source)
    try:
        frame = clip.get_frame(0)
    finally:
        clip.close()
    if frame is None:
        raise ThumbnailError(f"No frame could be decoded from {source}")
    return np.asarray(frame, dtype=np.uint8)


def save_frame_jpeg(frame: np.ndarray, output: str | Path,
                    quality: int = THUMBNAIL_JPEG_QUALITY) -> Path:
    """Write an RGB frame as JPEG, creating parent dirs."""
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(frame[..., :3]).convert("RGB").save(output, "JPEG", quality=quality)
    return output


class MoviepyMediaProbe:
    async def duration(self, source: str) -> float:
        return await asyncio.to_thread(probe_duration, source)


class MoviepyFrameExtractor:
    """Writes the first frame of a video as a JPEG still."""

    def __init__(self, quality: int = THUMBNAIL_JPEG_QUALITY):
        self.quality = quality

    def _extract(self, local_media_path, local_output_path) -> None:
        frame = first_frame(local_media_path)
        save_frame_jpeg(frame, local_output_path, quality=self.quality)
        logger.info("Frame extracted: %s -> %s", local_media_path, local_output_path)

    async def extract_frame(self, local_media_path: str | Path,
                            local_output_path: str | Path) -> None:
        await asyncio.to_thread(self._extract, local_media_path, local_output_path)
