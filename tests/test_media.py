"""Tests for the moviepy-backed probe and frame extractor.

Uses the shared source_video fixture from conftest.py.
"""

import numpy as np
import pytest
from PIL import Image

from sessionreel.errors import MediaProbeError
from sessionreel.media import (
    MoviepyFrameExtractor,
    MoviepyMediaProbe,
    first_frame,
    probe_duration,
    save_frame_jpeg,
)


class TestProbeDuration:
    def test_duration(self, source_video):
        assert probe_duration(str(source_video)) == pytest.approx(5.0, abs=0.2)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MediaProbeError, match="Could not probe media duration"):
            probe_duration(str(tmp_path / "missing.mp4"))

    @pytest.mark.asyncio
    async def test_async_probe(self, source_video):
        duration = await MoviepyMediaProbe().duration(str(source_video))
        assert duration == pytest.approx(5.0, abs=0.2)


class TestFirstFrame:
    def test_shape_and_color(self, source_video):
        frame = first_frame(source_video)
        assert frame.shape == (240, 320, 3)
        assert frame.dtype == np.uint8
        # Solid blue source.
        r, g, b = frame[120, 160]
        assert b > 200 and r < 50 and g < 50


class TestSaveFrameJpeg:
    def test_writes_jpeg(self, tmp_path):
        frame = np.zeros((36, 64, 3), dtype=np.uint8)
        out = save_frame_jpeg(frame, tmp_path / "sub" / "f.jpg")
        with Image.open(out) as img:
            assert img.format == "JPEG"
            assert img.size == (64, 36)

    def test_drops_alpha(self, tmp_path):
        frame = np.zeros((10, 10, 4), dtype=np.uint8)
        out = save_frame_jpeg(frame, tmp_path / "f.jpg")
        with Image.open(out) as img:
            assert img.mode == "RGB"


class TestMoviepyFrameExtractor:
    @pytest.mark.asyncio
    async def test_extracts_first_frame(self, source_video, tmp_path):
        out = tmp_path / "thumb.jpg"
        await MoviepyFrameExtractor().extract_frame(source_video, out)
        with Image.open(out) as img:
            assert img.size == (320, 240)
