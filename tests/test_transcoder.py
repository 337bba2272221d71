"""Tests for merge job building and polling.

Uses FakeTranscoder from conftest.py, which replays a fixed list of
job states.
"""

import pytest

from sessionreel.errors import RetryExhausted, TranscodeFailure
from sessionreel.models import AnswerClip, JobState
from sessionreel.retry import RetryPolicy
from sessionreel.transcoder import (
    OUTPUT_PROFILE,
    build_transcode_request,
    generate_edit_atom,
    generate_edit_atom_list,
    generate_input_list,
    job_id_from_name,
    merge_video,
    poll_job_state,
)

from conftest import FakeTranscoder


def _clips(n):
    return [
        AnswerClip(
            answer_id=f"a-{i}", question_id=f"q-{i}", question_title="",
            media_url=f"gs://bucket/org/patient_response/r/u/a-{i}.mp4",
            media_filename=f"a-{i}.mp4", answer_type="video",
        )
        for i in range(1, n + 1)
    ]


async def _no_sleep(delay):
    return None


FAST = RetryPolicy(max_attempts=15, base_delay=0.001)


class TestInputsAndAtoms:
    def test_input_list(self):
        inputs = generate_input_list(_clips(3))
        assert [i.key for i in inputs] == ["input1", "input2", "input3"]
        assert inputs[1].uri == "gs://bucket/org/patient_response/r/u/a-2.mp4"

    def test_atom_list_one_to_one(self):
        atoms = generate_edit_atom_list(_clips(3))
        assert [a.key for a in atoms] == ["atom1", "atom2", "atom3"]
        assert [a.inputs for a in atoms] == [("input1",), ("input2",), ("input3",)]

    def test_empty(self):
        assert generate_input_list([]) == []
        assert generate_edit_atom_list([]) == []

    def test_atom_offsets_only_when_set(self):
        assert generate_edit_atom(0, ["input1"]).to_dict() == {
            "key": "atom1", "inputs": ["input1"],
        }
        atom = generate_edit_atom(1, ["input2"], start_time_offset=1.5, end_time_offset=3.0)
        assert atom.to_dict()["start_time_offset"] == 1.5
        assert atom.to_dict()["end_time_offset"] == 3.0


class TestBuildTranscodeRequest:
    def test_request_shape(self):
        clips = _clips(2)
        request = build_transcode_request(
            "projects/p/locations/us-central1",
            "gs://bucket/org/sessions/",
            generate_input_list(clips),
            generate_edit_atom_list(clips),
            "doc_resp_sec",
        )
        assert request["parent"] == "projects/p/locations/us-central1"
        job = request["job"]
        assert job["output_uri"] == "gs://bucket/org/sessions/"
        config = job["config"]
        assert len(config["inputs"]) == 2
        assert config["edit_list"][1] == {"key": "atom2", "inputs": ["input2"]}
        assert config["mux_streams"][0]["key"] == "doc_resp_sec"
        assert config["mux_streams"][0]["container"] == "mp4"

    def test_output_profile(self):
        request = build_transcode_request("p", "o/", [], [], "name")
        video, audio = request["job"]["config"]["elementary_streams"]
        h264 = video["video_stream"]["h264"]
        assert (h264["width_pixels"], h264["height_pixels"]) == (640, 360)
        assert h264["frame_rate"] == 60
        assert h264["bitrate_bps"] == OUTPUT_PROFILE["video"]["bitrate_bps"] == 550000
        assert audio["audio_stream"] == {"codec": "aac", "bitrate_bps": 64000}


class TestJobIdFromName:
    def test_full_name(self):
        assert job_id_from_name("projects/p/locations/r/jobs/abc123") == "abc123"

    def test_bare_id(self):
        assert job_id_from_name("abc123") == "abc123"


class TestPollJobState:
    @pytest.mark.asyncio
    async def test_succeeds_after_in_progress(self):
        service = FakeTranscoder(["PENDING", "RUNNING", "SUCCEEDED"])
        state = await poll_job_state(service, "job-1", FAST, sleep=_no_sleep)
        assert state == JobState.SUCCEEDED
        assert service.polls == 3

    @pytest.mark.asyncio
    async def test_failed_not_retried(self):
        service = FakeTranscoder(["FAILED"])
        with pytest.raises(TranscodeFailure) as exc_info:
            await poll_job_state(service, "job-1", FAST, sleep=_no_sleep)
        assert exc_info.value.state == "FAILED"
        assert service.polls == 1

    @pytest.mark.asyncio
    async def test_unknown_state_fails(self):
        service = FakeTranscoder(["PENDING", "STATE_UNSPECIFIED"])
        with pytest.raises(TranscodeFailure, match="STATE_UNSPECIFIED"):
            await poll_job_state(service, "job-1", FAST, sleep=_no_sleep)
        assert service.polls == 2

    @pytest.mark.asyncio
    async def test_never_terminal_exhausts(self):
        service = FakeTranscoder(["RUNNING"])
        sleeps = []

        async def sleep(delay):
            sleeps.append(delay)

        with pytest.raises(RetryExhausted, match="max retries exceeded for job job-1"):
            await poll_job_state(service, "job-1", RetryPolicy(3, 0.001), sleep=sleep)
        assert service.polls == 4
        assert len(sleeps) == 3

    @pytest.mark.asyncio
    async def test_zero_budget_polls_once(self):
        service = FakeTranscoder(["PENDING"])
        with pytest.raises(RetryExhausted):
            await poll_job_state(service, "job-1", RetryPolicy(0), sleep=_no_sleep)
        assert service.polls == 1


class TestMergeVideo:
    @pytest.mark.asyncio
    async def test_submits_and_waits(self, tmp_path):
        service = FakeTranscoder(["PENDING", "SUCCEEDED"], job_id="merge-7")
        job = await merge_video(
            service, _clips(3), f"{tmp_path}/sessions/", "doc_resp_sec",
            timeout=30, policy=FAST, sleep=_no_sleep,
        )
        assert job.job_id == "merge-7"
        assert job.state == JobState.SUCCEEDED
        assert len(job.inputs) == 3
        assert len(job.edit_atoms) == 3

        request, timeout = service.requests[0]
        assert timeout == 30
        assert request["parent"] == service.location_path()
        assert (tmp_path / "sessions" / "doc_resp_sec.mp4").exists()

    @pytest.mark.asyncio
    async def test_failure_propagates(self, tmp_path):
        service = FakeTranscoder(["RUNNING", "FAILED"])
        with pytest.raises(TranscodeFailure):
            await merge_video(service, _clips(1), f"{tmp_path}/", "x",
                              policy=FAST, sleep=_no_sleep)

    @pytest.mark.asyncio
    async def test_no_clips(self):
        with pytest.raises(ValueError, match="No clips"):
            await merge_video(FakeTranscoder(), [], "gs://b/", "x")
