"""Shared test fixtures for sessionreel tests."""

import logging
import subprocess
from pathlib import Path

import pytest
import imageio_ffmpeg

from sessionreel.config import Settings
from sessionreel.local import LocalObjectStorage, MemoryDocumentStore
from sessionreel.models import Patient, SessionIdentity
from sessionreel.providers import Collaborators

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def make_video(out: Path, duration: float = 2.0, color: str = "blue",
               size: str = "320x240") -> Path:
    """Render a small test video (10fps) with a silent audio track."""
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r=10",
            "-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "32k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture(autouse=True)
def restore_sessionreel_logger():
    """Undo configure_logging() so caplog keeps seeing pipeline records."""
    logger = logging.getLogger("sessionreel")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def source_video(tmp_path):
    """A 5-second test video (320x240, 10fps) with audio."""
    return make_video(tmp_path / "source.mp4", duration=5)


# ── Fake collaborators ─────────────────────────────────────────────

class FakeProbe:
    """Durations keyed by file name. An Exception value is raised instead."""

    def __init__(self, durations: dict):
        self.durations = dict(durations)
        self.calls = []

    async def duration(self, source):
        self.calls.append(source)
        value = self.durations[Path(source).name]
        if isinstance(value, Exception):
            raise value
        return value


class FakeTranscoder:
    """Replays a fixed state sequence; writes a placeholder output on submit."""

    def __init__(self, states=("SUCCEEDED",), job_id="job-1"):
        self.states = list(states)
        self.job_id = job_id
        self.requests = []
        self.polls = 0

    def location_path(self):
        return "projects/test/locations/us-central1"

    async def create_job(self, request, timeout):
        self.requests.append((request, timeout))
        job = request["job"]
        out_dir = Path(job["output_uri"].rstrip("/"))
        out_dir.mkdir(parents=True, exist_ok=True)
        name = job["config"]["mux_streams"][0]["key"]
        (out_dir / f"{name}.mp4").write_bytes(b"merged")
        return f"{self.location_path()}/jobs/{self.job_id}"

    async def get_job_state(self, job_id):
        state = self.states[min(self.polls, len(self.states) - 1)]
        self.polls += 1
        return state


class FakeExtractor:
    def __init__(self):
        self.calls = []

    async def extract_frame(self, local_media_path, local_output_path):
        self.calls.append((Path(local_media_path), Path(local_output_path)))
        Path(local_output_path).write_bytes(b"\xff\xd8jpeg")


@pytest.fixture
def settings():
    return Settings(
        env="test",
        bucket_name="test-bucket",
        poll_base_delay=0.001,
        retry_base_delay=0.001,
    )


@pytest.fixture
def identity():
    return SessionIdentity(
        tenant_id="org-1",
        response_ref_id="resp-doc-1",
        response_id="series-1",
        user_id="user-1",
        document_id="sec-doc-1",
        patient=Patient(name="Jane Doe", email="jane@example.com", phone="555-0100"),
    )


@pytest.fixture
def deps(tmp_path, settings):
    """Collaborators with real local store/storage and fake media/transcoder."""
    return Collaborators(
        settings=settings,
        store=MemoryDocumentStore(),
        storage=LocalObjectStorage(tmp_path / "bucket"),
        transcoder=FakeTranscoder(),
        probe=FakeProbe({"a-1.mp4": 2.0, "a-2.mp4": 1.5, "a-3.mp4": 1.5}),
        extractor=FakeExtractor(),
    )


def raw_answer(answer_id, answer_type="video", **overrides):
    """A raw answer record as written by the upstream form processor."""
    record = {
        "answerId": answer_id,
        "questionId": f"q-{answer_id}",
        "questionTitle": f"Question for {answer_id}",
        "answerType": answer_type,
        "videoFilename": f"{answer_id}.mp4",
        "transcript": f"transcript {answer_id}",
        "transcribedWords": [{"word": "hello", "start_time": 0.0, "end_time": 0.4}],
        "transcribedConfidence": 0.9,
    }
    record.update(overrides)
    return record
